"""
Guarded HTTP client.

Live connectors talk to insurers through an ``httpx.AsyncClient`` whose
request hook runs the network isolation check before any bytes leave the
process. In sandbox mode outgoing requests are also tagged.
Source: https://www.python-httpx.org/advanced/event-hooks/
"""

from datetime import datetime, timezone
from typing import Optional

import httpx

from edi_pipeline.gateways.network_isolation import NetworkIsolationGateway
from edi_pipeline.schemas.claim import ActorIdentity


def create_guarded_client(
    gateway: NetworkIsolationGateway,
    actor: Optional[ActorIdentity] = None,
    timeout_seconds: float = 30.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """
    Build an AsyncClient that refuses blocked hosts.

    Args:
        gateway: Gateway holding the host policy and blocked-attempt log
        actor: Identity recorded on blocked attempts
        timeout_seconds: Per-request timeout
        transport: Optional transport (tests pass ``httpx.MockTransport``)
    """

    async def enforce_host_policy(request: httpx.Request) -> None:
        await gateway.guard(str(request.url), request.method, actor)
        if gateway.is_sandbox_mode:
            request.headers["X-Sandbox-Mode"] = "true"
            request.headers["X-Sandbox-Timestamp"] = datetime.now(timezone.utc).isoformat()

    async def tag_sandbox_response(response: httpx.Response) -> None:
        if gateway.is_sandbox_mode:
            response.headers["X-Sandbox-Response"] = "true"

    return httpx.AsyncClient(
        timeout=timeout_seconds,
        transport=transport,
        event_hooks={
            "request": [enforce_host_policy],
            "response": [tag_sandbox_response],
        },
    )
