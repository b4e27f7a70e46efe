"""
EDI Services.

Provides:
- Insurer rail configuration table
- Mock adjudication responses for sandbox mode
- EDIRouter (import from ``edi_pipeline.services.edi.router``)
"""

from edi_pipeline.services.edi.insurers import (
    INSURER_CONFIGS,
    InsurerDirectory,
    InsurerRailConfig,
    UnknownInsurerError,
    get_insurer_directory,
)
from edi_pipeline.services.edi.responses import MockResponseGenerator

__all__ = [
    "INSURER_CONFIGS",
    "InsurerDirectory",
    "InsurerRailConfig",
    "MockResponseGenerator",
    "UnknownInsurerError",
    "get_insurer_directory",
]
