"""
Feature normalization helpers.

Every helper maps a raw reading onto a dimensionless value using a fixed
divisor or floor/span. Results are nominally in [0, 1] but only ``capped``
and ``inverse_capped`` bound them; scorers clamp the final sum instead.
"""
from typing import Any, Dict, Mapping, Optional


def capped(value: float, divisor: float) -> float:
    return min(value / divisor, 1.0)


def inverse_capped(value: float, divisor: float) -> float:
    return 1.0 - min(value / divisor, 1.0)


def ratio(value: float, divisor: float) -> float:
    return value / divisor


def inverse_ratio(value: float, divisor: float) -> float:
    return 1.0 - value / divisor


def excess(value: float, floor: float, span: float) -> float:
    """Portion of ``value`` above ``floor``, in units of ``span``."""
    return max(0.0, (value - floor) / span)


def with_defaults(defaults: Mapping[str, Any], values: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Merge caller values over defaults; ``None`` falls back to the default."""
    merged = dict(defaults)
    for name, value in (values or {}).items():
        if value is None and name in defaults:
            continue
        merged[name] = value
    return merged
