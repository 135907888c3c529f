"""Model resolution.

Chooses the model identifier submitted upstream. Identifiers namespaced under
a vendor the configured provider cannot serve are swapped for a fallback
instead of being sent upstream to be rejected.
"""

import logging

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ModelResolution(BaseModel):
    """Outcome of resolving a requested model.

    Attributes:
        model: Identifier to submit upstream.
        requested: Identifier the client asked for, if any.
        substituted: Whether the fallback replaced the requested identifier.
    """

    model: str
    requested: str | None = None
    substituted: bool = False


class ModelResolver:
    """Fixed-pattern model allow/deny rule."""

    def __init__(
        self,
        default_model: str,
        fallback_model: str,
        blocked_prefixes: tuple[str, ...] = ("google/",),
    ) -> None:
        self._default_model = default_model
        self._fallback_model = fallback_model
        self._blocked_prefixes = tuple(prefix.lower() for prefix in blocked_prefixes)

    def is_blocked(self, model: str) -> bool:
        return model.strip().lower().startswith(self._blocked_prefixes)

    def resolve(self, requested: object | None) -> ModelResolution:
        """Resolve the model for a request.

        Args:
            requested: The model the client asked for, if any.

        Returns:
            ModelResolution naming the model to use.
        """
        if not isinstance(requested, str) or not requested.strip():
            return ModelResolution(model=self._default_model)

        requested = requested.strip()
        if self._blocked_prefixes and self.is_blocked(requested):
            logger.info(f"Model {requested!r} is not supported upstream; using {self._fallback_model!r}")
            return ModelResolution(
                model=self._fallback_model,
                requested=requested,
                substituted=True,
            )

        return ModelResolution(model=requested, requested=requested)
