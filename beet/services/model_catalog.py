"""Static registry of the models offered to users.

The catalog maps public model ids to the identifiers the provider
expects, together with their output token ceilings and access tier.
Premium gating lives here so that every turn of every conversation goes
through the same policy.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Iterable

from loguru import logger

from ..models.enums import AccessTier
from ..models.model_descriptor import ModelDescriptor, ModelGroup, ModelOption
from ..utils.error_handler import UnknownModel

DEFAULT_MODEL = "gpt-oss-20b"
DEFAULT_PREMIUM_MODEL = "gpt-oss-120b"

MODELS: tuple[ModelDescriptor, ...] = (
    ModelDescriptor(
        id="gpt-oss-20b",
        upstream_id="openai/gpt-oss-20b",
        label="GPT-OSS 20B",
        access_tier=AccessTier.STANDARD,
        max_output_tokens=10000,
    ),
    ModelDescriptor(
        id="qwen3-coder-30b",
        upstream_id="Qwen/Qwen3-Coder-30B-A3B-Instruct",
        label="Qwen3-Coder 30B",
        access_tier=AccessTier.STANDARD,
        max_output_tokens=20000,
    ),
    ModelDescriptor(
        id="apertus-70b",
        upstream_id="swiss-ai/Apertus-70B-Instruct-2509:publicai",
        label="Swiss AI Apertus 70B",
        access_tier=AccessTier.STANDARD,
        max_output_tokens=6000,
    ),
    ModelDescriptor(
        id="gpt-oss-120b",
        upstream_id="openai/gpt-oss-120b",
        label="GPT-OSS 120B",
        access_tier=AccessTier.PREMIUM,
        max_output_tokens=10000,
    ),
    ModelDescriptor(
        id="qwen3-235b",
        upstream_id="Qwen/Qwen3-235B-A22B-Instruct-2507:fireworks-ai",
        label="Qwen3 235B",
        access_tier=AccessTier.PREMIUM,
        max_output_tokens=20000,
    ),
    ModelDescriptor(
        id="qwen3-coder-480b",
        upstream_id="Qwen/Qwen3-Coder-480B-A35B-Instruct",
        label="Qwen3-Coder 480B",
        access_tier=AccessTier.PREMIUM,
        max_output_tokens=20000,
    ),
    ModelDescriptor(
        id="deepseek-v3-terminus",
        upstream_id="deepseek-ai/DeepSeek-V3.1-Terminus",
        label="DeepSeek V3 Terminus",
        access_tier=AccessTier.PREMIUM,
        max_output_tokens=10000,
    ),
)


class ModelCatalog:
    """Read-only lookup over a fixed set of model descriptors."""

    def __init__(
        self,
        models: Iterable[ModelDescriptor] = MODELS,
        default_model: str = DEFAULT_MODEL,
        default_premium_model: str = DEFAULT_PREMIUM_MODEL,
    ) -> None:
        self._models: dict[str, ModelDescriptor] = {model.id: model for model in models}
        for model_id in (default_model, default_premium_model):
            if model_id not in self._models:
                raise ValueError(f"Default model {model_id!r} is not in the catalog")
        if self._models[default_model].is_premium:
            raise ValueError("The standard default model must not be premium")
        self.default_model = default_model
        self.default_premium_model = default_premium_model

    def resolve(self, model_id: str) -> ModelDescriptor:
        """Return the descriptor for ``model_id``.

        Raises
        ------
        UnknownModel
            If the id is not in the catalog.
        """
        try:
            return self._models[model_id]
        except KeyError:
            raise UnknownModel(model_id) from None

    def default_for(self, is_premium_user: bool) -> ModelDescriptor:
        return self._models[self.default_premium_model if is_premium_user else self.default_model]

    def effective_model(self, requested_id: str | None, is_premium_user: bool) -> ModelDescriptor:
        """Apply premium gating to a requested model.

        With no (or an unknown) model requested the tier default is used.
        A premium model requested by a non-premium caller is silently
        replaced by the standard default.
        """
        if not requested_id or requested_id not in self._models:
            if requested_id:
                logger.warning("Unknown model {!r} requested; using tier default", requested_id)
            return self.default_for(is_premium_user)

        model = self._models[requested_id]
        if model.is_premium and not is_premium_user:
            logger.info(
                "Premium model {} requested by non-premium caller; substituting {}",
                requested_id,
                self.default_model,
            )
            return self._models[self.default_model]
        return model

    def model_groups(self, selected_id: str | None = None, is_premium_user: bool = False) -> list[ModelGroup]:
        """Return the catalog grouped for a model picker.

        Premium callers see the premium group first.  For everyone else
        premium options are present but disabled.
        """
        selected = selected_id or self.default_for(is_premium_user).id
        basic: list[ModelOption] = []
        premium: list[ModelOption] = []
        for model in self._models.values():
            option = ModelOption(
                id=model.id,
                label=model.label,
                access_tier=model.access_tier,
                selected=model.id == selected,
                disabled=model.is_premium and not is_premium_user,
            )
            (premium if model.is_premium else basic).append(option)

        basic_group = ModelGroup(group_name="Basic models", models=basic)
        premium_group = ModelGroup(group_name="Premium models", models=premium)
        if is_premium_user:
            return [premium_group, basic_group]
        return [basic_group, premium_group]


@lru_cache()
def get_model_catalog() -> ModelCatalog:
    """Return the process-wide model catalog."""
    return ModelCatalog()
