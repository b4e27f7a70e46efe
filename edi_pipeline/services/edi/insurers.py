"""
Insurer Rail Configuration.

Maps every supported insurer to the rail it is reached through and to the
adjudication profile used by the sandbox (processing time and outcome rates).
The table is validated once when the directory is built.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from edi_pipeline.core.enums import ConnectorErrorCode, Rail


class UnknownInsurerError(Exception):
    """Raised when an insurer name is not in the rail table."""

    code = ConnectorErrorCode.VALIDATION_ERROR
    retriable = False

    def __init__(self, insurer_name: str):
        super().__init__(f"Unknown insurer: {insurer_name}")
        self.insurer_name = insurer_name


class InsurerConfigError(ValueError):
    """Raised when the rail table itself is inconsistent."""


@dataclass(frozen=True)
class InsurerRailConfig:
    """Immutable per-insurer rail and adjudication profile."""

    name: str
    rail: Rail
    processing_time_ms: int
    approval_rate: float
    info_request_rate: float
    response_formats: tuple[str, ...]
    supported_claim_types: tuple[str, ...]

    def __post_init__(self) -> None:
        if not isinstance(self.rail, Rail):
            raise InsurerConfigError(f"{self.name}: unknown rail {self.rail!r}")
        for label, rate in (
            ("approval_rate", self.approval_rate),
            ("info_request_rate", self.info_request_rate),
        ):
            if not 0.0 <= rate <= 1.0:
                raise InsurerConfigError(f"{self.name}: {label} {rate} outside [0, 1]")
        if self.approval_rate + self.info_request_rate > 1.0 + 1e-9:
            raise InsurerConfigError(
                f"{self.name}: approval_rate + info_request_rate exceeds 1"
            )
        if self.processing_time_ms < 0:
            raise InsurerConfigError(f"{self.name}: negative processing time")
        if not self.response_formats:
            raise InsurerConfigError(f"{self.name}: no response formats")

    @property
    def denial_rate(self) -> float:
        return max(0.0, 1.0 - self.approval_rate - self.info_request_rate)

    @property
    def response_format(self) -> str:
        return self.response_formats[0]


def _insurer(
    name: str,
    rail: Rail,
    processing_time_ms: int,
    approval_rate: float,
    info_request_rate: float,
    response_formats: tuple[str, ...],
    supported_claim_types: tuple[str, ...],
) -> InsurerRailConfig:
    return InsurerRailConfig(
        name=name,
        rail=rail,
        processing_time_ms=processing_time_ms,
        approval_rate=approval_rate,
        info_request_rate=info_request_rate,
        response_formats=response_formats,
        supported_claim_types=supported_claim_types,
    )


_ECL = Rail.NATIONAL_ECLAIMS
_DNT = Rail.DENTAL_NETWORK
_PRT = Rail.PORTAL
_WCB_TYPES = ("workplace_injury", "occupational_disease")

INSURER_CONFIGS: tuple[InsurerRailConfig, ...] = (
    # National eClaims hub
    _insurer("Manulife Financial", _ECL, 3000, 0.85, 0.10, ("JSON", "XML"), ("medical", "dental", "vision", "drug")),
    _insurer("Sun Life Financial", _ECL, 2500, 0.82, 0.12, ("JSON",), ("medical", "dental", "drug")),
    _insurer("Blue Cross Canada", _ECL, 2000, 0.88, 0.08, ("JSON", "XML"), ("medical", "dental", "vision", "drug", "travel")),
    _insurer("Desjardins Group", _ECL, 3500, 0.80, 0.15, ("JSON",), ("medical", "dental", "drug")),
    _insurer("GreenShield Canada", _ECL, 2200, 0.86, 0.09, ("JSON", "XML"), ("medical", "dental", "vision", "drug", "paramedical")),
    _insurer("Canada Life", _ECL, 2800, 0.83, 0.11, ("JSON",), ("medical", "dental", "drug")),
    _insurer("Empire Life", _ECL, 3200, 0.79, 0.14, ("JSON",), ("medical", "dental")),
    _insurer("Industrial Alliance", _ECL, 2600, 0.84, 0.10, ("JSON", "XML"), ("medical", "dental", "drug", "life")),
    _insurer("Equitable Life", _ECL, 3100, 0.81, 0.13, ("JSON",), ("medical", "dental")),
    _insurer("RBC Insurance", _ECL, 2400, 0.87, 0.07, ("JSON", "XML"), ("medical", "dental", "drug", "travel")),
    _insurer("TD Insurance", _ECL, 2300, 0.88, 0.06, ("JSON", "XML"), ("medical", "dental", "drug", "travel")),
    # Dental network
    _insurer("SSQ Insurance", _DNT, 4000, 0.78, 0.16, ("CDAnet",), ("dental",)),
    _insurer("Medavie Blue Cross", _DNT, 3800, 0.82, 0.12, ("CDAnet", "XML"), ("dental", "medical")),
    _insurer("Pacific Blue Cross", _DNT, 3600, 0.85, 0.10, ("CDAnet", "XML"), ("dental", "medical", "vision")),
    _insurer("Alberta Blue Cross", _DNT, 3400, 0.86, 0.09, ("CDAnet", "XML"), ("dental", "medical", "drug")),
    _insurer("Saskatchewan Blue Cross", _DNT, 3700, 0.83, 0.11, ("CDAnet",), ("dental", "medical")),
    _insurer("Manitoba Blue Cross", _DNT, 3500, 0.84, 0.10, ("CDAnet",), ("dental", "medical")),
    # Workers' compensation portals
    _insurer("WSIB Ontario", _PRT, 5000, 0.75, 0.20, ("Portal", "PDF"), _WCB_TYPES),
    _insurer("WorkSafeBC", _PRT, 4800, 0.77, 0.18, ("Portal", "PDF"), _WCB_TYPES),
    _insurer("WCB Alberta", _PRT, 4600, 0.78, 0.17, ("Portal", "PDF"), _WCB_TYPES),
    _insurer("CNESST Quebec", _PRT, 5200, 0.74, 0.22, ("Portal", "PDF"), _WCB_TYPES),
    _insurer("WCB Manitoba", _PRT, 4700, 0.76, 0.19, ("Portal", "PDF"), ("workplace_injury",)),
    _insurer("WCB Saskatchewan", _PRT, 4900, 0.75, 0.20, ("Portal", "PDF"), ("workplace_injury",)),
    _insurer("WorkplaceNL", _PRT, 5100, 0.73, 0.21, ("Portal", "PDF"), _WCB_TYPES),
)


class InsurerDirectory:
    """Lookup table from insurer name to rail configuration."""

    def __init__(self, configs: Iterable[InsurerRailConfig] = INSURER_CONFIGS):
        self._configs: dict[str, InsurerRailConfig] = {}
        for config in configs:
            key = config.name.casefold()
            if key in self._configs:
                raise InsurerConfigError(f"Duplicate insurer: {config.name}")
            self._configs[key] = config

    def lookup(self, insurer_name: str) -> InsurerRailConfig:
        """Config for an insurer; raises ``UnknownInsurerError`` if absent."""
        config = self.get(insurer_name)
        if config is None:
            raise UnknownInsurerError(insurer_name)
        return config

    def get(self, insurer_name: Optional[str]) -> Optional[InsurerRailConfig]:
        if not insurer_name:
            return None
        return self._configs.get(insurer_name.strip().casefold())

    def is_supported(self, insurer_name: str) -> bool:
        return self.get(insurer_name) is not None

    def names(self) -> list[str]:
        return [c.name for c in self._configs.values()]

    def by_rail(self, rail: Rail) -> list[str]:
        return [c.name for c in self._configs.values() if c.rail == rail]

    def __len__(self) -> int:
        return len(self._configs)


_directory: Optional[InsurerDirectory] = None


def get_insurer_directory() -> InsurerDirectory:
    """Get or create the default insurer directory."""
    global _directory
    if _directory is None:
        _directory = InsurerDirectory()
    return _directory
