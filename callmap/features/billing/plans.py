"""Plan catalogue: monthly price (USD) and monthly token quota."""

from typing import Dict

DEFAULT_PLAN = "free"

PLAN_PRICES: Dict[str, int] = {
    "free": 0,
    "pro": 29,
    "team": 99,
    "enterprise": 299,
}

PLAN_QUOTAS: Dict[str, int] = {
    "free": 10_000,
    "pro": 100_000,
    "team": 500_000,
    "enterprise": 10_000_000,
}


def plan_price(plan: str) -> int:
    return PLAN_PRICES.get(plan or DEFAULT_PLAN, 0)


def plan_quota(plan: str) -> int:
    """Unknown plans get the free quota."""
    return PLAN_QUOTAS.get(plan or DEFAULT_PLAN, PLAN_QUOTAS[DEFAULT_PLAN])
