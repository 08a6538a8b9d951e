"""Growth-curve tables for charting level progressions."""

from __future__ import annotations

import polars as pl

from balancebook.formulas.fn_game import CURVE_TYPES, scale


def generate_curve_data(
    base: float,
    rate: float,
    curve: str,
    max_level: int = 100,
    *,
    max_value: float = 100.0,
    mid: float = 50.0,
) -> pl.DataFrame:
    """``SCALE`` sampled at levels ``1..max_level``.

    Args:
        base: Value at level zero.
        rate: Growth rate.
        curve: One of ``CURVE_TYPES`` (unknown names fall back to linear).
        max_level: Last level, inclusive.
        max_value: S-curve ceiling.
        mid: S-curve midpoint level.

    Returns:
        DataFrame with columns ``level`` and ``value``.
    """
    levels = list(range(1, max_level + 1))
    return pl.DataFrame(
        {
            "level": pl.Series("level", levels, dtype=pl.Int64),
            "value": pl.Series(
                "value",
                [scale(base, float(lv), rate, curve, max_value, mid) for lv in levels],
                dtype=pl.Float64,
            ),
        }
    )


def generate_multiple_curve_data(base: float, rate: float, max_level: int = 100) -> pl.DataFrame:
    """Side-by-side comparison of the four standard curves.

    Logarithmic uses ``rate * 10`` and quadratic ``rate / 10`` so the
    curves land on a comparable scale.
    """
    rates = {
        "linear": rate,
        "exponential": rate,
        "logarithmic": rate * 10,
        "quadratic": rate / 10,
    }
    levels = list(range(1, max_level + 1))
    columns = {"level": pl.Series("level", levels, dtype=pl.Int64)}
    for curve in CURVE_TYPES:
        if curve not in rates:
            continue
        columns[curve] = pl.Series(
            curve,
            [scale(base, float(lv), rates[curve], curve) for lv in levels],
            dtype=pl.Float64,
        )
    return pl.DataFrame(columns)
