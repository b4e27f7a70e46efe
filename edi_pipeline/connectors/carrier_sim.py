"""
Deterministic carrier simulator.

The cents of the billed amount pick the outcome, so tests and demos can
steer a claim to a known status:

    .00 -> paid    .13 -> info requested    .99 -> denied    else -> pending
"""

from decimal import ROUND_HALF_UP, Decimal

from edi_pipeline.core.enums import AdjudicationStatus

_OUTCOMES_BY_CENTS = {
    "00": AdjudicationStatus.PAID,
    "13": AdjudicationStatus.INFO_REQUESTED,
    "99": AdjudicationStatus.DENIED,
}


def simulate_outcome(amount: Decimal) -> AdjudicationStatus:
    cents = str(Decimal(amount).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))[-2:]
    return _OUTCOMES_BY_CENTS.get(cents, AdjudicationStatus.PENDING)
