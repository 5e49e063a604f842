"""Static description of a model offered by the provider."""

from pydantic import BaseModel, ConfigDict

from .enums import AccessTier


class ModelDescriptor(BaseModel):
    """Catalog entry for one model."""

    model_config = ConfigDict(frozen=True)

    id: str
    upstream_id: str
    label: str
    access_tier: AccessTier = AccessTier.STANDARD
    max_output_tokens: int = 4096

    @property
    def is_premium(self) -> bool:
        return self.access_tier is AccessTier.PREMIUM


class ModelOption(BaseModel):
    """A catalog entry decorated for a model picker."""

    id: str
    label: str
    access_tier: AccessTier
    selected: bool = False
    disabled: bool = False


class ModelGroup(BaseModel):
    """A titled group of model options."""

    group_name: str
    models: list[ModelOption]
