"""
Pricing Catalog: region plans and gateway price ids.

Prices are defined per region and resolved from a student's country.
The catalog and the gateway price table are plain objects passed into
the services that need them, so tests can use any price fixture.

Usage:
    from core.pricing import PricingCatalog, PlanCode

    catalog = PricingCatalog.default()
    plan = catalog.plan_for_country("AR")   # Latam
    plan.monthly                            # Decimal("30")
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, Optional


class PlanCode(str, Enum):
    GLOBAL = "global"
    EUROPE = "europe"
    LATAM = "latam"
    GUEST = "guest"


class ChargeKind(str, Enum):
    SUBSCRIPTION = "subscription"
    DEGREE = "degree"
    MONTHLY = "monthly"


@dataclass(frozen=True)
class Plan:
    code: PlanCode
    signup: Decimal
    monthly: Decimal
    degree: Decimal

    def price_for(self, kind: ChargeKind) -> Decimal:
        if kind == ChargeKind.SUBSCRIPTION:
            return self.signup
        if kind == ChargeKind.MONTHLY:
            return self.monthly
        return self.degree

    def to_dict(self) -> dict:
        return {
            "plan_code": self.code.value,
            "signup": str(self.signup),
            "monthly": str(self.monthly),
            "degree": str(self.degree),
        }


# ==================== REGION TABLES ====================

LATAM_COUNTRIES = frozenset([
    "AR", "BH", "BO", "BR", "BZ", "CL", "CO", "CR", "EC", "FK", "GF", "GY",
    "GT", "HN", "MX", "NI", "PA", "PY", "PE", "SR", "SV", "UY", "VE",
])

EUROPE_COUNTRIES = frozenset([
    "AT", "BE", "BG", "HR", "CY", "CZ", "DK", "EE", "FI", "FR", "DE", "GR",
    "HU", "IE", "IT", "LV", "LT", "LU", "MT", "NL", "PL", "PT", "RO", "SK",
    "SI", "ES", "SE", "GB",
])

DEFAULT_PLANS: Dict[PlanCode, Plan] = {
    PlanCode.GLOBAL: Plan(PlanCode.GLOBAL, Decimal("200"), Decimal("60"), Decimal("500")),
    PlanCode.EUROPE: Plan(PlanCode.EUROPE, Decimal("150"), Decimal("45"), Decimal("375")),
    PlanCode.LATAM: Plan(PlanCode.LATAM, Decimal("100"), Decimal("30"), Decimal("250")),
    PlanCode.GUEST: Plan(PlanCode.GUEST, Decimal("0"), Decimal("0"), Decimal("0")),
}


class PricingCatalog:
    """Region → plan table."""

    def __init__(
        self,
        plans: Dict[PlanCode, Plan],
        latam: Iterable[str] = LATAM_COUNTRIES,
        europe: Iterable[str] = EUROPE_COUNTRIES,
    ):
        missing = [code for code in PlanCode if code not in plans]
        if missing:
            raise ValueError(f"Catalog is missing plans: {missing}")
        self.plans = dict(plans)
        self.latam = frozenset(c.upper() for c in latam)
        self.europe = frozenset(c.upper() for c in europe)

    @classmethod
    def default(cls) -> "PricingCatalog":
        return cls(DEFAULT_PLANS)

    def plan_code_for_country(self, country: Optional[str]) -> PlanCode:
        code = (country or "").strip().upper()
        if code in self.latam:
            return PlanCode.LATAM
        if code in self.europe:
            return PlanCode.EUROPE
        return PlanCode.GLOBAL

    def plan_for_country(self, country: Optional[str]) -> Plan:
        return self.plans[self.plan_code_for_country(country)]

    def by_code(self, code) -> Plan:
        return self.plans[PlanCode(code)]


# ==================== GATEWAY PRICE IDS ====================

class GatewayPriceTable:
    """
    Maps (plan, charge kind) to a gateway price id.

    Guest accounts have no prices of their own and fall back to the
    Global ones.
    """

    def __init__(self, prices: Dict[PlanCode, Dict[ChargeKind, str]]):
        self.prices = prices

    @classmethod
    def from_settings(cls, ids) -> "GatewayPriceTable":
        prices = {}
        for code in (PlanCode.GLOBAL, PlanCode.EUROPE, PlanCode.LATAM):
            prices[code] = {
                ChargeKind.SUBSCRIPTION: getattr(ids, f"{code.value}_signup"),
                ChargeKind.MONTHLY: getattr(ids, f"{code.value}_monthly"),
                ChargeKind.DEGREE: getattr(ids, f"{code.value}_degree"),
            }
        return cls(prices)

    def by_plan_code(self, code) -> Dict[ChargeKind, str]:
        code = PlanCode(code)
        if code == PlanCode.GUEST:
            code = PlanCode.GLOBAL
        return self.prices[code]

    def price_id(self, code, kind: ChargeKind) -> str:
        return self.by_plan_code(code)[kind]

    def items(self):
        """Yield (plan_code, kind, price_id) for every configured price."""
        for code, by_kind in self.prices.items():
            for kind, price_id in by_kind.items():
                yield code, kind, price_id
