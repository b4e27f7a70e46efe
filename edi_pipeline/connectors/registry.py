"""
Connector Registry.

Resolves a rail to a fresh connector instance for an organization. A new
connector is built on every attempt so configuration changes take effect
without restarting queued jobs.
"""

from typing import Callable, Optional

import httpx

from edi_pipeline.connectors.base import BaseConnector, ConnectorError
from edi_pipeline.connectors.dental_network import DentalNetworkConnector
from edi_pipeline.connectors.national_eclaims import NationalEClaimsConnector
from edi_pipeline.connectors.portal import PortalConnector
from edi_pipeline.core.config import EDISettings
from edi_pipeline.core.enums import ConnectorErrorCode, Rail

ConnectorFactory = Callable[[str], BaseConnector]


class ConnectorRegistry:
    """Rail to connector factory table."""

    def __init__(self) -> None:
        self._factories: dict[Rail, ConnectorFactory] = {}

    def register(self, rail: Rail, factory: ConnectorFactory) -> None:
        self._factories[rail] = factory

    def create(self, rail: Rail, org_id: str) -> BaseConnector:
        factory = self._factories.get(rail)
        if factory is None:
            raise ConnectorError(
                ConnectorErrorCode.VALIDATION_ERROR,
                f"No connector registered for rail {rail.value}",
            )
        return factory(org_id)

    @property
    def rails(self) -> list[Rail]:
        return list(self._factories)


def build_default_registry(
    settings: EDISettings,
    http_client: Optional[httpx.AsyncClient] = None,
) -> ConnectorRegistry:
    """Registry wired from settings for the three built-in rails."""
    registry = ConnectorRegistry()
    simulate = settings.CONNECTOR_SIMULATE

    registry.register(Rail.PORTAL, lambda org_id: PortalConnector(org_id))
    registry.register(
        Rail.DENTAL_NETWORK,
        lambda org_id: DentalNetworkConnector(
            org_id,
            endpoint=settings.DENTAL_NETWORK_ENDPOINT,
            http_client=http_client,
            simulate=simulate,
        ),
    )
    registry.register(
        Rail.NATIONAL_ECLAIMS,
        lambda org_id: NationalEClaimsConnector(
            org_id,
            endpoint=settings.NATIONAL_ECLAIMS_ENDPOINT,
            http_client=http_client,
            simulate=simulate,
        ),
    )
    return registry
