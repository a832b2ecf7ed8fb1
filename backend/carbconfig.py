from functools import lru_cache
from types import MappingProxyType
from typing import Dict, Mapping

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_KG_PER_CREDIT = 1000.0


class ConfigurationError(ValueError):
    """Raised when the calculator or a provider is misconfigured."""


class TransportModeMeta(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    icon: str = ""
    color: str = "#6b7280"


class CarbonSettings(BaseSettings):
    """
    Everything the calculator and its shell read at startup.

    Values come from CARBON_* environment variables (or a .env file); dict
    fields are given as JSON, e.g.
    CARBON_EMISSION_FACTORS='{"car": 0.12, "bus": 0.089}'.
    """

    model_config = SettingsConfigDict(
        env_prefix="CARBON_",
        env_file=".env",
        extra="ignore",
        frozen=True,
    )

    # kg CO2 per km
    emission_factors: Dict[str, float] = {
        "bicycle": 0.0,
        "car": 0.12,
        "bus": 0.089,
        "truck": 0.96,
    }
    baseline_mode: str = "car"

    # 1 credit = 1000 kg CO2, priced per credit in USD
    kg_per_credit: float = DEFAULT_KG_PER_CREDIT
    price_min_usd: float = 50.0
    price_max_usd: float = 150.0

    transport_modes: Dict[str, TransportModeMeta] = {
        "bicycle": TransportModeMeta(label="Bicicleta", icon="🚲", color="#3b82f6"),
        "car": TransportModeMeta(label="Carro", icon="🚗", color="#ef4444"),
        "bus": TransportModeMeta(label="Ônibus", icon="🚌", color="#f59e0b"),
        "truck": TransportModeMeta(label="Caminhão", icon="🚚", color="#8b5cf6"),
    }

    distance_provider: str = "static"
    google_maps_api_key: str = ""
    google_maps_timeout: float = 5.0

    log_level: str = "INFO"

    @field_validator("emission_factors")
    @classmethod
    def check_factors(cls, factors: Dict[str, float]) -> Dict[str, float]:
        negative = sorted(mode for mode, factor in factors.items() if factor < 0)
        if negative:
            raise ValueError(f"emission factors must be >= 0, got negative for: {', '.join(negative)}")
        return factors

    @field_validator("kg_per_credit")
    @classmethod
    def check_kg_per_credit(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("kg_per_credit must be > 0")
        return value

    @property
    def factor_table(self) -> Mapping[str, float]:
        """Read-only view of the emission factors, in configured order."""
        return MappingProxyType(dict(self.emission_factors))

    def mode_meta(self, mode: str) -> TransportModeMeta:
        return self.transport_modes.get(mode) or TransportModeMeta(label=mode)


@lru_cache
def get_settings() -> CarbonSettings:
    return CarbonSettings()
