"""Small numeric helpers."""

from __future__ import annotations

import math

__all__ = ["percentage", "percent_of"]


def percentage(total: float, amount: float) -> float:
    """Return ``amount`` as a percentage of ``total``.

    Raises ``ValueError`` when ``amount`` exceeds ``total``.
    """
    if total < amount:
        raise ValueError(
            f"assertion failed: total >= amount; total={total}, amount={amount}"
        )
    if total == 0:
        return math.nan
    return (amount / total) * 100.0


def percent_of(amount, total):
    """Return ``amount`` as a percentage of ``total``, keeping integer inputs integral."""
    result = percentage(float(total), float(amount))
    if isinstance(amount, int) and isinstance(total, int):
        return 0 if math.isnan(result) else int(result)
    return result