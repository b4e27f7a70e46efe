"""
Insurer Rail Connectors.

Provides:
- BaseConnector and the ConnectorError taxonomy
- Portal, dental network and national eClaims connectors
- ConnectorRegistry for rail-based dispatch
"""

from edi_pipeline.connectors.base import (
    BaseConnector,
    ConnectorError,
    calculate_backoff_delay,
    classify_http_error,
    should_retry,
)
from edi_pipeline.connectors.dental_network import DentalNetworkConnector
from edi_pipeline.connectors.national_eclaims import NationalEClaimsConnector
from edi_pipeline.connectors.portal import PortalConnector
from edi_pipeline.connectors.registry import ConnectorRegistry, build_default_registry

__all__ = [
    "BaseConnector",
    "ConnectorError",
    "ConnectorRegistry",
    "DentalNetworkConnector",
    "NationalEClaimsConnector",
    "PortalConnector",
    "build_default_registry",
    "calculate_backoff_delay",
    "classify_http_error",
    "should_retry",
]
