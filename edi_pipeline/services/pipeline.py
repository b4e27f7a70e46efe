"""
Pipeline composition root.

Builds every service from settings and wires them together. Callers that
need fakes (tests, embedding applications) pass their own collaborators.
"""

import asyncio
import random
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

import httpx

from edi_pipeline.connectors.registry import ConnectorRegistry, build_default_registry
from edi_pipeline.core.config import EDISettings, get_edi_settings
from edi_pipeline.gateways.http_client import create_guarded_client
from edi_pipeline.gateways.network_isolation import NetworkIsolationGateway
from edi_pipeline.services.audit import AuditRecorder, AuditSink, InMemoryAuditLog
from edi_pipeline.services.claim_store import ClaimStore, InMemoryClaimStore
from edi_pipeline.services.edi.insurers import InsurerDirectory, get_insurer_directory
from edi_pipeline.services.edi.router import EDIRouter
from edi_pipeline.services.job_store import JobStore
from edi_pipeline.services.scheduler import ClaimStatusPoller, Scheduler, build_default_scheduler
from edi_pipeline.services.submission_queue import SubmissionQueue
from edi_pipeline.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class Pipeline:
    """All pipeline services, wired."""

    settings: EDISettings
    claim_store: ClaimStore
    audit_sink: AuditSink
    audit: AuditRecorder
    gateway: NetworkIsolationGateway
    http_client: httpx.AsyncClient
    connectors: ConnectorRegistry
    router: EDIRouter
    queue: SubmissionQueue
    poller: ClaimStatusPoller
    scheduler: Scheduler

    async def start(self) -> None:
        await self.queue.start()
        self.scheduler.start()
        logger.info(f"EDI pipeline started in {self.router.mode.value} mode")

    async def stop(self) -> None:
        await self.scheduler.stop()
        await self.queue.stop()
        await self.http_client.aclose()
        logger.info("EDI pipeline stopped")


def build_pipeline(
    settings: Optional[EDISettings] = None,
    claim_store: Optional[ClaimStore] = None,
    audit_sink: Optional[AuditSink] = None,
    job_store: Optional[JobStore] = None,
    insurers: Optional[InsurerDirectory] = None,
    rng: Optional[random.Random] = None,
    clock: Optional[Callable[[], datetime]] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Pipeline:
    """Wire the pipeline from settings and optional collaborators."""
    settings = settings or get_edi_settings()
    claim_store = claim_store if claim_store is not None else InMemoryClaimStore()
    audit_sink = audit_sink if audit_sink is not None else InMemoryAuditLog()
    insurers = insurers or get_insurer_directory()
    rng = rng or random.Random()

    audit = AuditRecorder(audit_sink, enabled=settings.AUDIT_ENABLED)
    gateway = NetworkIsolationGateway(settings, audit, rng=rng, sleep=sleep, clock=clock)
    http_client = create_guarded_client(
        gateway,
        timeout_seconds=settings.CONNECTOR_TIMEOUT_SECONDS,
        transport=transport,
    )
    connectors = build_default_registry(settings, http_client)
    router = EDIRouter(settings, gateway, connectors, claim_store, audit, insurers)
    queue = SubmissionQueue(
        router,
        job_store or JobStore(settings.QUEUE_STATE_PATH),
        claim_store,
        settings,
        clock=clock,
        rng=rng,
    )
    poller = ClaimStatusPoller(router, claim_store, audit, clock=clock)
    scheduler = build_default_scheduler(settings, poller, queue, sleep=sleep)

    return Pipeline(
        settings=settings,
        claim_store=claim_store,
        audit_sink=audit_sink,
        audit=audit,
        gateway=gateway,
        http_client=http_client,
        connectors=connectors,
        router=router,
        queue=queue,
        poller=poller,
        scheduler=scheduler,
    )
