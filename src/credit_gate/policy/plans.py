"""
Plan policy.

Maps a plan tier to its model entitlements and starting balance, and prices
operations. Pure lookups, no I/O.

Usage:
    from credit_gate.policy.plans import resolve_plan, compute_cost

    policy = resolve_plan("Ultimate")
    policy.allows_override         # True
    compute_cost(OperationKind.GENERATION, template_cost=25)  # 25
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Optional

from ..models.account import UNLIMITED_CREDITS, PlanTier
from ..models.transaction import OperationKind


# =============================================================================
# PRICING
# =============================================================================
DEFAULT_GENERATION_COST: int = 10
DEFAULT_PROOFREAD_COST: int = 5


@dataclass(frozen=True)
class Pricing:
    generation_base_cost: int = DEFAULT_GENERATION_COST
    proofread_cost: int = DEFAULT_PROOFREAD_COST

    def __post_init__(self) -> None:
        if self.generation_base_cost <= 0 or self.proofread_cost <= 0:
            raise ValueError("operation costs must be positive")


DEFAULT_PRICING = Pricing()


def compute_cost(
    operation_kind: OperationKind,
    template_cost: Optional[int] = None,
    pricing: Pricing = DEFAULT_PRICING,
) -> int:
    """
    Credits charged for one operation.

    Generation uses the template's own cost when it is a positive number and
    the base cost otherwise; proofreading has a flat cost.
    """
    if operation_kind == OperationKind.PROOFREADING:
        return pricing.proofread_cost
    if template_cost is not None and template_cost > 0:
        return int(template_cost)
    return pricing.generation_base_cost


# =============================================================================
# PLAN DEFINITION
# =============================================================================
@dataclass(frozen=True)
class PlanPolicy:
    """
    Attributes:
        name: Canonical tier name stored on accounts
        default_model: Model key used when no override applies
        selectable_models: Model keys a user may pick; empty = no override
        starting_credits: Balance granted on provisioning or plan change
    """

    name: str
    default_model: str
    selectable_models: FrozenSet[str] = field(default_factory=frozenset)
    starting_credits: int = 0

    def __post_init__(self) -> None:
        if not self.default_model:
            raise ValueError(f"plan {self.name} has no default model")

    @property
    def unlimited_credits(self) -> bool:
        return self.starting_credits == UNLIMITED_CREDITS

    @property
    def allows_override(self) -> bool:
        return bool(self.selectable_models)


PLAN_POLICIES: Dict[str, PlanPolicy] = {
    PlanTier.FREE.value: PlanPolicy(
        name=PlanTier.FREE.value,
        default_model="gpt-3.5-turbo",
        starting_credits=5000,
    ),
    PlanTier.BASIC.value: PlanPolicy(
        name=PlanTier.BASIC.value,
        default_model="gpt-3.5-turbo",
        starting_credits=20000,
    ),
    PlanTier.PREMIUM.value: PlanPolicy(
        name=PlanTier.PREMIUM.value,
        default_model="gpt-3.5-turbo",
        starting_credits=50000,
    ),
    PlanTier.ULTIMATE.value: PlanPolicy(
        name=PlanTier.ULTIMATE.value,
        default_model="gpt-4",
        selectable_models=frozenset({"gpt-4", "gpt-3.5-turbo", "gemini-pro", "claude-2"}),
        starting_credits=UNLIMITED_CREDITS,
    ),
}

FALLBACK_PLAN = PlanTier.FREE.value

_POLICIES_BY_KEY: Dict[str, PlanPolicy] = {
    name.lower(): policy for name, policy in PLAN_POLICIES.items()
}


def find_plan(plan_id: Optional[str]) -> Optional[PlanPolicy]:
    """Exact (case-insensitive) lookup; ``None`` for unknown ids."""
    if not plan_id:
        return None
    return _POLICIES_BY_KEY.get(plan_id.strip().lower())


def resolve_plan(plan_id: Optional[str]) -> PlanPolicy:
    """
    Policy for ``plan_id``. Unknown, legacy or missing ids get the Free
    policy so that a damaged account record is still serviceable.
    """
    return find_plan(plan_id) or PLAN_POLICIES[FALLBACK_PLAN]
