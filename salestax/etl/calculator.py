"""Tax amount calculation."""

from typing import Dict, Iterable, Mapping

from salestax.models import EnrichedRecord


def amounts(charge: float, rates: Mapping[str, float]) -> Dict[str, float]:
    """Compute the tax owed to each jurisdiction.

    Amounts keep full precision; rounding happens when reports are rendered.
    """
    return {jurisdiction: charge * rate for jurisdiction, rate in rates.items()}


def totals(records: Iterable[EnrichedRecord]) -> Dict[str, float]:
    """Sum the tax owed to each jurisdiction across records."""
    result: Dict[str, float] = {}
    for record in records:
        for jurisdiction, amount in record.taxes.items():
            result[jurisdiction] = result.get(jurisdiction, 0.0) + amount
    return result
