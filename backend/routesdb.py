import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

import httpx

from carbcalc import round_half_away
from carbconfig import CarbonSettings, ConfigurationError

logger = logging.getLogger(__name__)

DISTANCE_MATRIX_URL = "https://maps.googleapis.com/maps/api/distancematrix/json"

# (origin, destination, km) between major Brazilian cities, road distances
ROUTES: Sequence[tuple] = (
    # Southeast
    ("São Paulo, SP", "Campinas, SP", 99),
    ("São Paulo, SP", "Ribeirão Preto, SP", 313),
    ("São Paulo, SP", "São José dos Campos, SP", 97),
    ("São Paulo, SP", "Santos, SP", 72),
    ("Rio de Janeiro, RJ", "Niterói, RJ", 22),
    ("Rio de Janeiro, RJ", "Campos dos Goytacazes, RJ", 279),
    ("Rio de Janeiro, RJ", "Volta Redonda, RJ", 127),
    ("Belo Horizonte, MG", "Uberlândia, MG", 556),
    ("Belo Horizonte, MG", "Juiz de Fora, MG", 272),
    ("Belo Horizonte, MG", "Montes Claros, MG", 422),
    ("Vitória, ES", "Belo Horizonte, MG", 524),
    ("Vitória, ES", "Rio de Janeiro, RJ", 521),
    ("Vitória, ES", "São Paulo, SP", 882),
    # Northeast
    ("Salvador, BA", "Maceió, AL", 632),
    ("Salvador, BA", "Aracaju, SE", 356),
    ("Salvador, BA", "João Pessoa, PB", 949),
    ("Salvador, BA", "Natal, RN", 1126),
    ("Recife, PE", "João Pessoa, PB", 120),
    ("Recife, PE", "Maceió, AL", 257),
    ("Recife, PE", "Natal, RN", 297),
    ("Recife, PE", "Aracaju, SE", 501),
    ("Fortaleza, CE", "Natal, RN", 537),
    ("Fortaleza, CE", "João Pessoa, PB", 688),
    ("Fortaleza, CE", "Teresina, PI", 634),
    ("Fortaleza, CE", "São Luís, MA", 1070),
    ("São Luís, MA", "Teresina, PI", 446),
    ("Maceió, AL", "Aracaju, SE", 294),
    ("Maceió, AL", "João Pessoa, PB", 395),
    ("João Pessoa, PB", "Natal, RN", 185),
    ("Natal, RN", "Mossoró, RN", 281),
    # South
    ("Curitiba, PR", "Porto Alegre, RS", 710),
    ("São Paulo, SP", "Curitiba, PR", 408),
    ("Curitiba, PR", "Rio de Janeiro, RJ", 1100),
    ("Porto Alegre, RS", "Rio de Janeiro, RJ", 1838),
    # Center-West and North
    ("Manaus, AM", "Brasília, DF", 2230),
    ("Manaus, AM", "Belém, PA", 1427),
    ("Brasília, DF", "Goiânia, GO", 209),
    ("Brasília, DF", "Cuiabá, MT", 918),
    ("São Paulo, SP", "Cuiabá, MT", 1715),
    ("Brasília, DF", "Porto Alegre, RS", 2179),
    ("Goiânia, GO", "Belo Horizonte, MG", 699),
    ("Belém, PA", "Fortaleza, CE", 1842),
    ("São Paulo, SP", "Salvador, BA", 2085),
    ("São Paulo, SP", "Recife, PE", 2375),
    ("São Paulo, SP", "Fortaleza, CE", 2865),
    ("Rio de Janeiro, RJ", "Curitiba, PR", 1100),
    ("Rio de Janeiro, RJ", "Porto Alegre, RS", 1838),
    ("Brasília, DF", "Salvador, BA", 1621),
    ("Belo Horizonte, MG", "Brasília, DF", 716),
    ("Brasília, DF", "Rio de Janeiro, RJ", 1150),
    ("São Paulo, SP", "Porto Alegre, RS", 1505),
    ("Manaus, AM", "Rio de Janeiro, RJ", 3580),
    ("Belém, PA", "Rio de Janeiro, RJ", 2870),
    ("Recife, PE", "Rio de Janeiro, RJ", 2346),
    ("Fortaleza, CE", "Brasília, DF", 2264),
)


def _normalize(city: str) -> str:
    return (city or "").strip().lower()


class DistanceProvider(ABC):
    """Looks up the distance in km between two cities."""

    @abstractmethod
    def find_distance(self, origin: str, destination: str) -> Optional[float]:
        """Distance in km, or None when the route is not known."""

    @abstractmethod
    def get_all_cities(self) -> List[str]:
        """Cities offered for autocomplete, sorted."""


class StaticRoutesProvider(DistanceProvider):
    """In-memory route table; lookups work in either direction and ignore case."""

    def __init__(self, routes: Sequence[tuple] = ROUTES):
        self._routes = tuple(routes)
        self._index: Dict[tuple, float] = {}
        for origin, destination, km in self._routes:
            # first entry wins, same as a linear scan
            self._index.setdefault((_normalize(origin), _normalize(destination)), km)
            self._index.setdefault((_normalize(destination), _normalize(origin)), km)

    def find_distance(self, origin: str, destination: str) -> Optional[float]:
        distance = self._index.get((_normalize(origin), _normalize(destination)))
        logger.debug("Static lookup %r -> %r: %s", origin, destination, distance)
        return distance

    def get_all_cities(self) -> List[str]:
        cities = set()
        for origin, destination, _ in self._routes:
            cities.add(origin)
            cities.add(destination)
        return sorted(cities)


class GoogleMapsDistanceProvider(DistanceProvider):
    """
    Road distance from the Google Distance Matrix API.

    Any failure (no key, network error, non-OK status) is logged and reported
    as "not found" so the caller can fall back to manual entry. No retries.
    """

    def __init__(
        self,
        api_key: str,
        timeout: float = 5.0,
        client: Optional[httpx.Client] = None,
        cities: Optional[DistanceProvider] = None,
    ):
        self.api_key = api_key
        self.timeout = timeout
        self._client = client
        self._cities = cities or StaticRoutesProvider()

    def _get(self, params: dict) -> httpx.Response:
        if self._client is not None:
            return self._client.get(DISTANCE_MATRIX_URL, params=params, timeout=self.timeout)
        with httpx.Client(timeout=self.timeout) as client:
            return client.get(DISTANCE_MATRIX_URL, params=params)

    def find_distance(self, origin: str, destination: str) -> Optional[float]:
        origin = (origin or "").strip()
        destination = (destination or "").strip()
        if not origin or not destination:
            return None
        if not self.api_key:
            logger.error("Google Maps API key is not configured")
            return None

        params = {
            "origins": origin,
            "destinations": destination,
            "mode": "driving",
            "units": "metric",
            "key": self.api_key,
        }
        try:
            response = self._get(params)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Distance Matrix request failed for %r -> %r: %s", origin, destination, e)
            return None

        if data.get("status") != "OK":
            logger.warning("Distance Matrix status %s: %s", data.get("status"), data.get("error_message", ""))
            return None

        try:
            element = data["rows"][0]["elements"][0]
        except (KeyError, IndexError, TypeError):
            logger.warning("Distance Matrix returned no elements for %r -> %r", origin, destination)
            return None

        if element.get("status") != "OK" or "distance" not in element:
            logger.info("Route not found %r -> %r (%s)", origin, destination, element.get("status"))
            return None

        km = int(round_half_away(element["distance"]["value"] / 1000, 0))
        logger.debug("Distance Matrix %r -> %r: %s km", origin, destination, km)
        return km

    def get_all_cities(self) -> List[str]:
        return self._cities.get_all_cities()


def build_distance_provider(settings: CarbonSettings) -> DistanceProvider:
    name = settings.distance_provider.strip().lower()
    if name == "static":
        return StaticRoutesProvider()
    if name == "google":
        return GoogleMapsDistanceProvider(settings.google_maps_api_key, timeout=settings.google_maps_timeout)
    raise ConfigurationError(f"Unknown distance provider: {settings.distance_provider!r}")
