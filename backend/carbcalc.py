import logging
import math
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import List, Mapping, Optional

from pydantic import BaseModel, ConfigDict

from carbconfig import DEFAULT_KG_PER_CREDIT, CarbonSettings

logger = logging.getLogger(__name__)

BASELINE_MODE = "car"


class UnknownModeError(KeyError):
    """Transport mode is not present in the emission factor table."""


class EmissionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    mode: str
    distance_km: float
    emission_kg: float


class ComparisonEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    mode: str
    emission_kg: float
    percentage_vs_baseline: Optional[float] = None


class SavingsResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    saved_kg: float
    percentage: float


class CreditPrice(BaseModel):
    model_config = ConfigDict(frozen=True)

    price_min: float
    price_max: float
    price_average: float


class CarbonCreditEstimate(BaseModel):
    model_config = ConfigDict(frozen=True)

    credits_required: float
    price_min: float
    price_max: float
    price_average: float


class TripCalculation(BaseModel):
    model_config = ConfigDict(frozen=True)

    emission: EmissionResult
    comparison: List[ComparisonEntry]
    savings: SavingsResult
    credits: CarbonCreditEstimate


def round_half_away(value: float, places: int = 2) -> float:
    """
    Round to `places` decimals, halves away from zero.

    Works on the shortest decimal repr of the float, so 2.675 -> 2.68 and
    0.125 -> 0.13 (the builtin round() gives 2.67 and 0.12).
    """
    if not math.isfinite(value):
        # overflowed intermediates follow the same coercion as inputs
        return 0.0
    number = Decimal(repr(value))
    with localcontext() as ctx:
        # enough digits for every integer digit plus the kept decimals
        ctx.prec = max(28, number.adjusted() + places + 2)
        return float(number.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP))


def _as_number(value) -> float:
    """Coerce to a finite float; anything else becomes 0.0."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def require_mode(mode: str, factor_table: Mapping[str, float]) -> float:
    """Strict factor lookup for callers that must reject unsupported modes."""
    if mode not in factor_table:
        raise UnknownModeError(mode)
    return factor_table[mode]


def compute_emission(distance_km: float, mode: str, factor_table: Mapping[str, float]) -> EmissionResult:
    """kg CO2 for travelling `distance_km` by `mode`. Unknown modes count as zero-emission."""
    distance = max(_as_number(distance_km), 0.0)

    if mode in factor_table:
        factor = max(_as_number(factor_table[mode]), 0.0)
    else:
        logger.warning("No emission factor for mode %r, using 0", mode)
        factor = 0.0

    emission = _as_number(distance * factor)
    return EmissionResult(mode=mode, distance_km=distance, emission_kg=round_half_away(emission, 2))


def compute_all_modes(
    distance_km: float,
    factor_table: Mapping[str, float],
    baseline_mode: str = BASELINE_MODE,
) -> List[ComparisonEntry]:
    """
    Emission of every configured mode with its share of the baseline mode's
    emission, lowest emitter first. Percentages are None when the baseline
    emits nothing (or is not configured).
    """
    baseline = 0.0
    if baseline_mode in factor_table:
        baseline = compute_emission(distance_km, baseline_mode, factor_table).emission_kg

    entries = []
    for mode in factor_table:
        emission = compute_emission(distance_km, mode, factor_table).emission_kg

        percentage = None
        if baseline > 0:
            percentage = round_half_away(emission / baseline * 100, 2)

        entries.append(ComparisonEntry(mode=mode, emission_kg=emission, percentage_vs_baseline=percentage))

    # sorted() is stable: ties keep table order
    return sorted(entries, key=lambda entry: entry.emission_kg)


def compute_savings(candidate_emission_kg: float, baseline_emission_kg: float) -> SavingsResult:
    """
    Savings of a candidate against a baseline. saved_kg goes negative when the
    candidate emits more; percentage is 0 when there is no baseline to save against.
    """
    baseline = _as_number(baseline_emission_kg)
    candidate = _as_number(candidate_emission_kg)

    saved = baseline - candidate
    percentage = 0.0
    if baseline > 0:
        percentage = round_half_away(saved / baseline * 100, 2)

    return SavingsResult(saved_kg=round_half_away(saved, 2), percentage=percentage)


def compute_carbon_credits(emission_kg: float, kg_per_credit: float = DEFAULT_KG_PER_CREDIT) -> float:
    """Credits needed to offset `emission_kg`, to 4 decimals."""
    per_credit = _as_number(kg_per_credit)
    if per_credit <= 0:
        logger.warning("Invalid kg_per_credit %r, falling back to %s", kg_per_credit, DEFAULT_KG_PER_CREDIT)
        per_credit = DEFAULT_KG_PER_CREDIT

    return round_half_away(_as_number(emission_kg) / per_credit, 4)


def estimate_credit_price(credits: float, price_min_per_credit: float, price_max_per_credit: float) -> CreditPrice:
    """
    Price range for buying `credits`. Expects price_min_per_credit <=
    price_max_per_credit; the order given is passed through unchecked.
    """
    amount = _as_number(credits)
    price_min = amount * _as_number(price_min_per_credit)
    price_max = amount * _as_number(price_max_per_credit)
    price_average = (price_min + price_max) / 2

    return CreditPrice(
        price_min=round_half_away(price_min, 2),
        price_max=round_half_away(price_max, 2),
        price_average=round_half_away(price_average, 2),
    )


def estimate_carbon_credits(emission_kg: float, settings: CarbonSettings) -> CarbonCreditEstimate:
    credits = compute_carbon_credits(emission_kg, settings.kg_per_credit)
    price = estimate_credit_price(credits, settings.price_min_usd, settings.price_max_usd)
    return CarbonCreditEstimate(credits_required=credits, **price.model_dump())


def calculate_trip(distance_km: float, mode: str, settings: CarbonSettings) -> TripCalculation:
    """Everything shown for one trip: selected mode, comparison, savings vs baseline and offset."""
    table = settings.factor_table

    emission = compute_emission(distance_km, mode, table)
    baseline = compute_emission(distance_km, settings.baseline_mode, table)

    return TripCalculation(
        emission=emission,
        comparison=compute_all_modes(distance_km, table, settings.baseline_mode),
        savings=compute_savings(emission.emission_kg, baseline.emission_kg),
        credits=estimate_carbon_credits(emission.emission_kg, settings),
    )
