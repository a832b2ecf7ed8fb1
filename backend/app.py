import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field

from carbcalc import TripCalculation, UnknownModeError, calculate_trip, require_mode
from carbconfig import CarbonSettings, get_settings
from carbview import comparison_bars, format_currency, format_number
from routesdb import DistanceProvider, build_distance_provider

logger = logging.getLogger(__name__)


def configure_logging(settings: CarbonSettings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(get_settings())
    logger.info("✅ Car-bon Route Calculator API started")
    yield


app = FastAPI(title="Car-bon Route Calculator API", lifespan=lifespan)


class TripRequest(BaseModel):
    origin: str
    destination: str
    mode: str
    # set when the user typed the distance instead of looking it up
    distance_km: Optional[float] = Field(default=None, gt=0)


@lru_cache
def get_distance_provider() -> DistanceProvider:
    return build_distance_provider(get_settings())


def build_display(trip: TripCalculation, distance_km: float, settings: CarbonSettings) -> dict:
    """Formatted strings and bar data for the result cards."""
    meta = settings.mode_meta(trip.emission.mode)

    comparison = []
    for entry, bar in zip(trip.comparison, comparison_bars(trip.comparison)):
        entry_meta = settings.mode_meta(entry.mode)
        comparison.append({
            "mode": entry.mode,
            "label": entry_meta.label,
            "icon": entry_meta.icon,
            "emission": format_number(entry.emission_kg, 2) + " kg",
            "vs_baseline": (
                f"{entry.percentage_vs_baseline}% vs {settings.baseline_mode}"
                if entry.percentage_vs_baseline is not None else "—"
            ),
            "width_pct": bar["width_pct"],
            "color": bar["color"],
            "selected": entry.mode == trip.emission.mode,
        })

    return {
        "distance": format_number(distance_km, 2) + " km",
        "emission": format_number(trip.emission.emission_kg, 2) + " kg CO₂",
        "transport": f"{meta.icon} {meta.label}".strip(),
        "comparison": comparison,
        "credits": format_number(trip.credits.credits_required, 4),
        "price_average": format_currency(trip.credits.price_average),
        "price_range": f"{format_currency(trip.credits.price_min)} — {format_currency(trip.credits.price_max)}",
    }


@app.get("/cities")
async def list_cities(provider: DistanceProvider = Depends(get_distance_provider)):
    return {"cities": provider.get_all_cities()}


@app.get("/modes")
async def list_modes(settings: CarbonSettings = Depends(get_settings)):
    modes = []
    for mode, factor in settings.factor_table.items():
        meta = settings.mode_meta(mode)
        modes.append({
            "mode": mode,
            "emission_factor_kg_per_km": factor,
            "label": meta.label,
            "icon": meta.icon,
            "color": meta.color,
        })
    return {"baseline": settings.baseline_mode, "modes": modes}


@app.get("/distance")
def find_distance(
    origin: str,
    destination: str,
    provider: DistanceProvider = Depends(get_distance_provider),
):
    distance = provider.find_distance(origin, destination)
    if distance is None:
        logger.info("❌ Route not found: %s → %s", origin, destination)
        return {"ok": 0, "error": "Route not found"}
    return {"ok": 1, "origin": origin, "destination": destination, "distance_km": distance}


@app.post("/calculate")
def calculate(
    payload: TripRequest,
    settings: CarbonSettings = Depends(get_settings),
    provider: DistanceProvider = Depends(get_distance_provider),
):
    try:
        require_mode(payload.mode, settings.factor_table)
    except UnknownModeError:
        raise HTTPException(status_code=422, detail=f"Unknown transport mode: {payload.mode}")

    distance = payload.distance_km
    if distance is None:
        distance = provider.find_distance(payload.origin, payload.destination)
        if distance is None:
            logger.info("❌ Route not found: %s → %s", payload.origin, payload.destination)
            return {"ok": 0, "error": "Route not found. Enter the distance manually or check the city names."}

    trip = calculate_trip(distance, payload.mode, settings)
    logger.info(
        "🌍 %s → %s, %s km by %s: %s kg CO2",
        payload.origin, payload.destination, distance, payload.mode, trip.emission.emission_kg,
    )

    return {
        "ok": 1,
        "origin": payload.origin,
        "destination": payload.destination,
        "distance_km": distance,
        "mode": payload.mode,
        "result": trip.model_dump(),
        "display": build_display(trip, distance, settings),
    }


@app.get("/")
async def root():
    return {"service": "Car-bon Route Calculator API", "status": "running"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
