"""Plan catalog: the static table of subscription tiers.

Built once at import time and never mutated. Every entitlement decision reads
from here, so unknown or missing plan ids resolve to the free tier.
"""
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, FrozenSet, List, Mapping, Optional

from core.config import settings

FREE_TIER_ID = "plan-free"
ALL_FEATURES = "all"


@dataclass(frozen=True)
class PlanTier:
    id: str
    name: str
    description: str
    max_products: Optional[int]  # None means unlimited
    max_categories: Optional[int]
    features: FrozenSet[str]
    stripe_price_id: Optional[str] = None

    @property
    def is_paid(self) -> bool:
        return self.id != FREE_TIER_ID

    def includes(self, feature: str) -> bool:
        return ALL_FEATURES in self.features or feature in self.features

    def limit_for(self, resource: str) -> Optional[int]:
        if resource == "product":
            return self.max_products
        if resource == "category":
            return self.max_categories
        raise ValueError(f"Unknown limited resource: {resource}")


_BASE_FEATURES = frozenset({"basic_store", "whatsapp_integration"})

FREE = PlanTier(
    id=FREE_TIER_ID,
    name="free",
    description="Plano Gratuito",
    max_products=10,
    max_categories=3,
    features=_BASE_FEATURES,
)

VITRINE = PlanTier(
    id="plan-vitrine",
    name="vitrine",
    description="Plano Vitrine",
    max_products=20,
    max_categories=5,
    features=_BASE_FEATURES | {"custom_link", "basic_support", "custom_theme_basic"},
    stripe_price_id=settings.STRIPE_PRICE_VITRINE,
)

PRATELEIRA = PlanTier(
    id="plan-prateleira",
    name="prateleira",
    description="Plano Prateleira",
    max_products=50,
    max_categories=10,
    features=_BASE_FEATURES
    | {
        "custom_link",
        "premium_support",
        "basic_reports",
        "payment_integration",
        "custom_theme_advanced",
        "coupons",
        "promotions",
    },
    stripe_price_id=settings.STRIPE_PRICE_PRATELEIRA,
)

MERCADO = PlanTier(
    id="plan-mercado",
    name="mercado",
    description="Plano Mercado",
    max_products=None,
    max_categories=None,
    features=frozenset({ALL_FEATURES}),
    stripe_price_id=settings.STRIPE_PRICE_MERCADO,
)

# Ordered cheapest first
TIERS = (FREE, VITRINE, PRATELEIRA, MERCADO)

PLAN_CATALOG: Mapping[str, PlanTier] = MappingProxyType(
    {"free": FREE, **{tier.id: tier for tier in TIERS}}
)

_PRICE_TO_TIER: Mapping[str, PlanTier] = MappingProxyType(
    {tier.stripe_price_id: tier for tier in TIERS if tier.stripe_price_id}
)


def _build_feature_index() -> Mapping[str, PlanTier]:
    index: Dict[str, PlanTier] = {}
    for tier in TIERS:
        for feature in tier.features:
            if feature != ALL_FEATURES:
                index.setdefault(feature, tier)
    return MappingProxyType(index)


_FEATURE_TO_MIN_TIER = _build_feature_index()
# Cheapest tier carrying the wildcard; answers features no tier lists explicitly
_WILDCARD_TIER = next(tier for tier in TIERS if ALL_FEATURES in tier.features)


def get_tier(plan_id: Optional[str]) -> PlanTier:
    """Return the tier for ``plan_id``; unknown or empty ids map to the free tier."""
    if not plan_id:
        return FREE
    return PLAN_CATALOG.get(plan_id, FREE)


def is_paid_plan(plan_id: Optional[str]) -> bool:
    return get_tier(plan_id).is_paid


def minimal_tier_for(feature: str) -> PlanTier:
    return _FEATURE_TO_MIN_TIER.get(feature, _WILDCARD_TIER)


def list_tiers() -> List[PlanTier]:
    return list(TIERS)


def tier_for_stripe_price(price_id: Optional[str]) -> Optional[PlanTier]:
    if not price_id:
        return None
    return _PRICE_TO_TIER.get(price_id)


def tier_for_checkout_plan(plan_name: str) -> Optional[PlanTier]:
    """Map a checkout plan name (``vitrine``, ``prateleira``, ``mercado``) to a paid tier."""
    tier = PLAN_CATALOG.get(f"plan-{plan_name}")
    if tier is None or not tier.is_paid:
        return None
    return tier


def tier_for_description(text: Optional[str]) -> Optional[PlanTier]:
    """Guess the paid tier from an invoice line description."""
    lowered = (text or "").lower()
    for tier in TIERS:
        if tier.is_paid and tier.name in lowered:
            return tier
    return None
