"""
Outbound Gateways.

Provides:
- Network isolation for sandbox deployments
- Guarded httpx client for live connectors
"""

from edi_pipeline.gateways.base import (
    GatewayConfig,
    GatewayError,
    GatewayStats,
    GatewayTimeoutError,
    NetworkBlockedError,
    SimulatedTransportError,
)
from edi_pipeline.gateways.http_client import create_guarded_client
from edi_pipeline.gateways.network_isolation import HostDecision, NetworkIsolationGateway

__all__ = [
    "GatewayConfig",
    "GatewayError",
    "GatewayStats",
    "GatewayTimeoutError",
    "HostDecision",
    "NetworkBlockedError",
    "NetworkIsolationGateway",
    "SimulatedTransportError",
    "create_guarded_client",
]
