"""
FastAPI dependencies.
Source: https://fastapi.tiangolo.com/tutorial/dependencies/
"""

from fastapi import Depends, Request

from edi_pipeline.services.pipeline import Pipeline
from edi_pipeline.services.submission_queue import SubmissionQueue
from edi_pipeline.services.edi.router import EDIRouter


def get_pipeline(request: Request) -> Pipeline:
    """Pipeline attached to the application at startup."""
    return request.app.state.pipeline


def get_queue(pipeline: Pipeline = Depends(get_pipeline)) -> SubmissionQueue:
    return pipeline.queue


def get_router(pipeline: Pipeline = Depends(get_pipeline)) -> EDIRouter:
    return pipeline.router
