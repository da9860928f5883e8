"""
Model router.

Maps a plan plus the user's model preference to a concrete downstream model.
Each model key carries its provider tag; the executor dispatches on
``ModelSelection.provider_id`` and never inspects model id strings.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

from ..errors import ConfigurationError, UnsupportedModelError
from ..models.transaction import OperationKind
from .plans import PLAN_POLICIES, PlanPolicy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelSelection:
    provider_id: str
    model_id: str
    display_name: str


# model key (as offered to clients and named by plans) -> concrete model
MODEL_CATALOG: Mapping[str, ModelSelection] = {
    "gpt-3.5-turbo": ModelSelection("openai", "gpt-3.5-turbo", "GPT-3.5 Turbo"),
    "gpt-4": ModelSelection("openai", "gpt-4", "GPT-4"),
    "gpt-4-turbo": ModelSelection("openai", "gpt-4-turbo", "GPT-4 Turbo"),
    "gemini-pro": ModelSelection("google", "gemini-1.0-pro", "Gemini Pro"),
    "claude-2": ModelSelection("anthropic", "claude-2", "Claude 2"),
}


class ModelRouter:
    def __init__(
        self,
        registered_providers: Iterable[str],
        catalog: Mapping[str, ModelSelection] = MODEL_CATALOG,
        plans: Mapping[str, PlanPolicy] = PLAN_POLICIES,
    ) -> None:
        self._providers = frozenset(registered_providers)
        self._catalog = dict(catalog)

        # Every plan default must be routable before any request is served.
        for policy in plans.values():
            try:
                self._resolve(policy.default_model)
            except UnsupportedModelError as exc:
                raise ConfigurationError(
                    f"default model {policy.default_model!r} of plan {policy.name} is not routable"
                ) from exc

    def select_model(
        self,
        plan: PlanPolicy,
        user_preference: Optional[str],
        operation_kind: OperationKind,
    ) -> ModelSelection:
        model_key = plan.default_model
        if (
            operation_kind == OperationKind.GENERATION
            and plan.allows_override
            and user_preference
            and user_preference in plan.selectable_models
        ):
            model_key = user_preference

        selection = self._resolve(model_key)
        logger.debug(
            "Model router: plan=%s preference=%s operation=%s -> %s/%s",
            plan.name,
            user_preference,
            operation_kind.value,
            selection.provider_id,
            selection.model_id,
        )
        return selection

    def _resolve(self, model_key: str) -> ModelSelection:
        selection = self._catalog.get(model_key)
        if selection is None or selection.provider_id not in self._providers:
            raise UnsupportedModelError(model_key)
        return selection
