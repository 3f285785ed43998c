"""Registry of backend models with per-model user settings."""

import logging
from typing import List, Optional

from .errors import NotFoundError, ValidationError
from .models import DEFAULT_CONTEXT_LENGTH, AppConfig, ModelDescriptor

logger = logging.getLogger(__name__)


class ModelRegistry:
    """Operates on the model list held by an AppConfig."""

    def __init__(self, config: AppConfig):
        self.config = config

    @property
    def models(self) -> List[ModelDescriptor]:
        return list(self.config.available_models)

    def get(self, name: str) -> ModelDescriptor:
        for model in self.config.available_models:
            if model.name == name:
                return model
        raise NotFoundError(f"No model named {name}")

    def default_model(self) -> Optional[ModelDescriptor]:
        return next((m for m in self.config.available_models if m.is_default), None)

    def enabled_models(self) -> List[ModelDescriptor]:
        return [m for m in self.config.available_models if m.enabled]

    def batch_context_length(self) -> int:
        """Context length to use for a batch: the default model's, or the fallback."""
        default = self.default_model()
        return default.custom_context_length if default else DEFAULT_CONTEXT_LENGTH

    def reconcile(self, fetched: List[ModelDescriptor]) -> List[ModelDescriptor]:
        """
        Replace the registry with a freshly fetched model list.

        Models that were already known keep their enabled flag, context length
        and default flag. New models are enabled and use their native context
        length (or the fallback). At most one model ends up default: the one
        named by the active model, or else the previously flagged one.
        Models missing from the fetch are dropped.

        Args:
            fetched: Models reported by the backend

        Returns:
            The new registry contents
        """
        existing = {m.name: m for m in self.config.available_models}
        active = self.config.active_model_name
        merged = []

        for model in fetched:
            previous = existing.get(model.name)
            if previous is not None:
                merged.append(model.model_copy(update={
                    "enabled": previous.enabled,
                    "custom_context_length": previous.custom_context_length,
                    "is_default": previous.is_default,
                }))
            else:
                merged.append(model.model_copy(update={
                    "enabled": True,
                    "custom_context_length": model.details.context_length or DEFAULT_CONTEXT_LENGTH,
                    "is_default": False,
                }))

        merged_names = {m.name for m in merged}
        if active in merged_names:
            default_name = active
        else:
            default_name = next((m.name for m in merged if m.is_default), None)
        merged = [m.model_copy(update={"is_default": m.name == default_name}) for m in merged]

        dropped = set(existing) - merged_names
        if dropped:
            logger.info("Models no longer available: %s", ", ".join(sorted(dropped)))

        self.config.available_models = merged
        return self.models

    def set_enabled(self, name: str, enabled: bool) -> ModelDescriptor:
        model = self.get(name)
        model.enabled = enabled
        return model

    def toggle_enabled(self, name: str) -> ModelDescriptor:
        model = self.get(name)
        return self.set_enabled(name, not model.enabled)

    def set_context_length(self, name: str, length: int) -> ModelDescriptor:
        if length <= 0:
            raise ValidationError(f"Context length must be positive, got {length}")
        model = self.get(name)
        model.custom_context_length = length
        return model

    def set_active(self, name: str) -> None:
        """Make name the active model; only a model with that name may stay default."""
        self.config.active_model_name = name
        self.config.available_models = [
            m.model_copy(update={"is_default": m.name == name})
            for m in self.config.available_models
        ]

    def set_default(self, name: str) -> ModelDescriptor:
        """Mark one model as default, clear the flag on all others and make it the active model."""
        target = self.get(name)
        self.config.available_models = [
            m.model_copy(update={"is_default": m.name == name})
            for m in self.config.available_models
        ]
        self.config.active_model_name = name
        return self.get(target.name)
