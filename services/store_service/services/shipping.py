"""Shipping cost estimation.

Resolution order for a quote:

1. External rate API (only when ``SHIPPING_RATE_API_URL`` is configured).
2. Static city rate table: base rate x weight-category multiplier x courier
   multiplier, rounded up to the next 1000 IDR.
3. Fallback formula when the external lookup fails or the destination is
   unknown:
   ``ceil(base x (1 + max(0, weight - 1) x 0.1) / 1000) x 1000``. The courier
   service only affects the delivery estimate of a fallback quote.

Fallback quotes are logged and flagged with ``used_fallback=True`` so callers
can surface them.
"""

import math
from dataclasses import asdict, dataclass
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional, Protocol, Sequence

import httpx
from libs.common.config import Settings, get_settings
from libs.common.currency import to_money
from libs.common.logging import get_logger
from services.store_service.models import CourierService

logger = get_logger(__name__)

# ============================================================================
# RATE TABLES (IDR, origin Pekanbaru)
# ============================================================================

ORIGIN = {
    "postal_code": "28127",
    "city": "Pekanbaru",
    "province": "Riau",
    "country": "Indonesia",
}

CITY_RATES = {
    "pekanbaru": 8000,
    "dumai": 10000,
    "rengat": 12000,
    "bangkinang": 9000,
    "duri": 11000,
    "batam": 15000,
    "tanjungpinang": 16000,
    "jakarta": 22000,
    "bandung": 24000,
    "surabaya": 28000,
    "medan": 18000,
    "padang": 20000,
    "jambi": 16000,
    "palembang": 20000,
    "lampung": 25000,
    "semarang": 26000,
    "yogyakarta": 27000,
    "makassar": 35000,
    "manado": 40000,
    "pontianak": 22000,
}

# (upper bound kg, category, multiplier); last entry is open-ended
WEIGHT_CATEGORIES = (
    (1.0, "light", 1.0),
    (5.0, "medium", 1.5),
    (math.inf, "heavy", 2.0),
)

COURIER_MULTIPLIERS = {
    CourierService.REGULAR: 1.0,
    CourierService.EXPRESS: 1.5,
    CourierService.SAME_DAY: 2.5,
}

COURIER_LABELS = {
    CourierService.REGULAR: ("Reguler", "Pengiriman standar"),
    CourierService.EXPRESS: ("Express", "Pengiriman cepat"),
    CourierService.SAME_DAY: ("Same Day", "Pengiriman hari yang sama"),
}

# Same day delivery only for major cities
SAME_DAY_CITIES = frozenset({"pekanbaru", "jakarta", "bandung", "surabaya", "medan"})

BASE_DELIVERY_DAYS = {
    "pekanbaru": 1,
    "jakarta": 2,
    "bandung": 2,
    "surabaya": 3,
    "medan": 2,
    "semarang": 3,
    "makassar": 4,
    "yogyakarta": 3,
    "palembang": 2,
    "batam": 2,
}
DEFAULT_DELIVERY_DAYS = 3

# Postal code prefix -> city. Longest prefix wins.
POSTAL_CODE_PREFIXES = {
    "281": "pekanbaru",
    "2828": "dumai",
    "2971": "batam",
    "101": "jakarta",
    "201": "medan",
}

FALLBACK_WEIGHT_STEP = 0.1
ROUNDING_UNIT = 1000


# ============================================================================
# QUOTE
# ============================================================================


@dataclass
class ShippingQuote:
    """A priced shipping option for one destination."""

    cost: Decimal
    etd_min_days: int
    etd_max_days: int
    courier_service: CourierService
    weight: float
    destination: str
    source: str  # rate_api, table, fallback
    used_fallback: bool = False
    base_rate: Optional[int] = None
    weight_category: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["courier_service"] = self.courier_service.value
        return data


# ============================================================================
# WEIGHT STRATEGIES
# ============================================================================


class WeightStrategy(Protocol):
    def weight_of(self, product) -> Optional[float]:
        """Per-unit weight in kg, or None when this strategy has no opinion."""


class DeclaredWeightStrategy:
    """Use the weight recorded on the product."""

    def weight_of(self, product) -> Optional[float]:
        if product.weight is None or product.weight <= 0:
            return None
        return float(product.weight)


class KeywordWeightStrategy:
    """Estimate weight from keywords in the product name.

    Documented heuristic for products without a declared weight. First match in
    table order wins; anything else weighs ``default``.
    """

    KEYWORD_WEIGHTS: Sequence[tuple[tuple[str, ...], float]] = (
        (("sepatu", "shoes"), 0.8),
        (("jersey", "kaos"), 0.3),
        (("raket", "racket"), 0.4),
        (("bola", "ball"), 0.5),
        (("tas", "bag"), 0.6),
        (("helm", "helmet"), 1.2),
    )

    def __init__(self, default: float = 0.5):
        self.default = default

    def weight_of(self, product) -> Optional[float]:
        name = (product.name or "").lower()
        for keywords, weight in self.KEYWORD_WEIGHTS:
            if any(keyword in name for keyword in keywords):
                return weight
        return self.default


class ChainedWeightStrategy:
    """Ask each strategy in turn; first non-None answer wins."""

    def __init__(self, *strategies: WeightStrategy):
        self.strategies = strategies

    def weight_of(self, product) -> Optional[float]:
        for strategy in self.strategies:
            weight = strategy.weight_of(product)
            if weight is not None:
                return weight
        return None


def default_weight_strategy() -> WeightStrategy:
    return ChainedWeightStrategy(DeclaredWeightStrategy(), KeywordWeightStrategy())


def calculate_cart_weight(
    items: Iterable,
    strategy: Optional[WeightStrategy] = None,
    minimum: Optional[float] = None,
) -> float:
    """Total weight (kg) of cart or order items, floored at the configured minimum.

    ``items`` need ``.product`` and ``.quantity``.
    """
    strategy = strategy or default_weight_strategy()
    if minimum is None:
        minimum = get_settings().SHIPPING_MIN_WEIGHT_KG

    total = 0.0
    for item in items:
        weight = strategy.weight_of(item.product) or 0.0
        total += weight * item.quantity
    return max(round(total, 3), minimum)


# ============================================================================
# LOOKUPS
# ============================================================================


def normalize_city(city: str) -> str:
    return "".join(city.lower().split())


def city_from_postal_code(postal_code: str) -> Optional[str]:
    code = postal_code.strip()
    for prefix in sorted(POSTAL_CODE_PREFIXES, key=len, reverse=True):
        if code.startswith(prefix):
            return POSTAL_CODE_PREFIXES[prefix]
    return None


def resolve_destination(destination: str) -> Optional[str]:
    """Map a postal code or city name to a known city key."""
    value = destination.strip()
    if value.isdigit():
        return city_from_postal_code(value)
    city = normalize_city(value)
    return city if city in CITY_RATES else None


def shipping_destination(address: dict) -> str:
    """Pick the destination key for an address: a known postal code, else the city."""
    postal_code = str(address.get("postal_code") or "").strip()
    if postal_code and city_from_postal_code(postal_code):
        return postal_code
    return str(address.get("city") or postal_code)


def weight_category(weight: float) -> tuple[str, float]:
    for upper, category, multiplier in WEIGHT_CATEGORIES:
        if weight <= upper:
            return category, multiplier
    raise ValueError(f"Invalid weight: {weight}")


def estimated_days(city: Optional[str], courier_service: CourierService) -> tuple[int, int]:
    base = BASE_DELIVERY_DAYS.get(city, DEFAULT_DELIVERY_DAYS)
    if courier_service == CourierService.SAME_DAY:
        return 0, 1
    if courier_service == CourierService.EXPRESS:
        return max(1, base - 1), base
    return base, base + 2


def available_courier_services(destination: str) -> list[dict]:
    city = resolve_destination(destination)
    services = [CourierService.REGULAR, CourierService.EXPRESS]
    if city in SAME_DAY_CITIES:
        services.append(CourierService.SAME_DAY)
    return [
        {
            "code": service.value,
            "name": COURIER_LABELS[service][0],
            "description": COURIER_LABELS[service][1],
            "multiplier": COURIER_MULTIPLIERS[service],
        }
        for service in services
    ]


def supported_cities() -> list[str]:
    return list(CITY_RATES)


def _round_up(amount: float) -> int:
    return int(math.ceil(amount / ROUNDING_UNIT) * ROUNDING_UNIT)


def fallback_cost(weight: float, base_cost: int) -> int:
    weight_factor = 1 + max(0.0, weight - 1) * FALLBACK_WEIGHT_STEP
    # Round before ceil so float noise (e.g. 15000.000000002) does not add 1000
    return _round_up(round(base_cost * weight_factor, 6))


# ============================================================================
# ESTIMATOR
# ============================================================================


class ShippingEstimator:
    """Prices shipments from the rate API, the static table, or the fallback formula."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self._transport = transport

    async def estimate(
        self,
        destination: str,
        total_weight: float,
        courier_service: CourierService = CourierService.REGULAR,
    ) -> ShippingQuote:
        courier_service = CourierService(courier_service)
        weight = max(float(total_weight), self.settings.SHIPPING_MIN_WEIGHT_KG)
        city = resolve_destination(destination)

        if self.settings.SHIPPING_RATE_API_URL:
            try:
                return await self._quote_from_api(
                    destination, city, weight, courier_service
                )
            except (
                httpx.HTTPError,
                InvalidOperation,
                KeyError,
                TypeError,
                ValueError,
            ) as exc:
                return self._fallback(
                    destination, city, weight, courier_service, reason=repr(exc)
                )

        if city is None:
            return self._fallback(
                destination, city, weight, courier_service, reason="unknown destination"
            )
        return self._quote_from_table(city, weight, courier_service)

    def _quote_from_table(
        self, city: str, weight: float, courier_service: CourierService
    ) -> ShippingQuote:
        base_rate = CITY_RATES[city]
        category, weight_multiplier = weight_category(weight)
        courier_multiplier = COURIER_MULTIPLIERS[courier_service]
        cost = _round_up(round(base_rate * weight_multiplier * courier_multiplier, 6))
        etd_min, etd_max = estimated_days(city, courier_service)
        return ShippingQuote(
            cost=to_money(cost),
            etd_min_days=etd_min,
            etd_max_days=etd_max,
            courier_service=courier_service,
            weight=weight,
            destination=city,
            source="table",
            base_rate=base_rate,
            weight_category=category,
        )

    async def _quote_from_api(
        self,
        destination: str,
        city: Optional[str],
        weight: float,
        courier_service: CourierService,
    ) -> ShippingQuote:
        headers = {"Content-Type": "application/json"}
        if self.settings.SHIPPING_RATE_API_KEY:
            headers["Authorization"] = f"Bearer {self.settings.SHIPPING_RATE_API_KEY}"

        async with httpx.AsyncClient(
            timeout=self.settings.SHIPPING_TIMEOUT_SECONDS,
            transport=self._transport,
        ) as client:
            response = await client.post(
                self.settings.SHIPPING_RATE_API_URL,
                headers=headers,
                json={
                    "origin": ORIGIN["postal_code"],
                    "destination": destination,
                    "weight": weight,
                    "courier_service": courier_service.value,
                },
            )
            response.raise_for_status()
            data = response.json()

        cost = to_money(data["cost"])
        if not cost.is_finite() or cost < 0:
            raise ValueError(f"invalid shipping cost {cost}")

        default_min, default_max = estimated_days(city, courier_service)
        return ShippingQuote(
            cost=cost,
            etd_min_days=int(data.get("etd_min_days", default_min)),
            etd_max_days=int(data.get("etd_max_days", default_max)),
            courier_service=courier_service,
            weight=weight,
            destination=city or destination,
            source="rate_api",
        )

    def _fallback(
        self,
        destination: str,
        city: Optional[str],
        weight: float,
        courier_service: CourierService,
        *,
        reason: str,
    ) -> ShippingQuote:
        base_cost = self.settings.SHIPPING_FALLBACK_BASE_COST
        cost = fallback_cost(weight, base_cost)
        logger.warning(
            "Shipping estimate fell back to formula",
            extra={
                "extra_fields": {
                    "destination": destination,
                    "weight": weight,
                    "courier_service": courier_service.value,
                    "cost": cost,
                    "reason": reason,
                    "used_fallback": True,
                }
            },
        )
        etd_min, etd_max = estimated_days(city, courier_service)
        return ShippingQuote(
            cost=to_money(cost),
            etd_min_days=etd_min,
            etd_max_days=etd_max,
            courier_service=courier_service,
            weight=weight,
            destination=city or destination,
            source="fallback",
            used_fallback=True,
            base_rate=base_cost,
        )


def get_shipping_estimator() -> ShippingEstimator:
    """FastAPI dependency; tests override it with a fake transport."""
    return ShippingEstimator()
