import math
from typing import List, Sequence

from carbcalc import ComparisonEntry, round_half_away


def format_number(value, decimals: int = 2) -> str:
    """en-US style: thousands separators, fixed decimals."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        number = 0.0
    if not math.isfinite(number):
        number = 0.0
    return f"{number:,.{decimals}f}"


def format_currency(value) -> str:
    return "US$ " + format_number(value, 2)


def bar_color(width_pct: int) -> str:
    if width_pct <= 25:
        return "green"
    if width_pct <= 75:
        return "yellow"
    if width_pct <= 100:
        return "orange"
    return "red"


def comparison_bars(entries: Sequence[ComparisonEntry]) -> List[dict]:
    """Bar width (0-100, relative to the highest emitter) and colour per comparison entry."""
    max_emission = max([entry.emission_kg for entry in entries] + [0.0])

    bars = []
    for entry in entries:
        width = 0
        if max_emission > 0:
            width = int(round_half_away(entry.emission_kg / max_emission * 100, 0))
        bars.append({"mode": entry.mode, "width_pct": width, "color": bar_color(width)})
    return bars
