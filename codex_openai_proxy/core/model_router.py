"""Model name routing: base model plus reasoning-effort suffix."""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Tuple

from codex_openai_proxy.core.exceptions import ModelNotAllowed
from codex_openai_proxy.utils.logger import get_logger

logger = get_logger(__name__)


class ReasoningEffort(str, Enum):
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    XHIGH = "xhigh"


# Suffix -> effort, longest first so '-extra-high' wins over '-high'
SUFFIXES: Tuple[Tuple[str, ReasoningEffort], ...] = tuple(
    sorted(
        (
            ("-extra-high", ReasoningEffort.XHIGH),
            ("-extra_high", ReasoningEffort.XHIGH),
            ("-xhigh", ReasoningEffort.XHIGH),
            ("-high", ReasoningEffort.HIGH),
            ("-medium", ReasoningEffort.MEDIUM),
            ("-low", ReasoningEffort.LOW),
        ),
        key=lambda item: len(item[0]),
        reverse=True,
    )
)

# Advertised variants, in listing order. Aliases are accepted but never listed.
LISTED_EFFORTS = (
    ReasoningEffort.LOW,
    ReasoningEffort.MEDIUM,
    ReasoningEffort.HIGH,
    ReasoningEffort.XHIGH,
)


@dataclass(frozen=True)
class ModelSpec:
    """Resolved backend model and reasoning effort."""

    base_model: str
    effort: ReasoningEffort = ReasoningEffort.NONE

    @property
    def has_reasoning(self) -> bool:
        return self.effort is not ReasoningEffort.NONE


class ModelRouter:
    """Resolves client model names against an immutable allowlist."""

    def __init__(self, allowed_models: Iterable[str]):
        self._allowed: Tuple[str, ...] = tuple(allowed_models)
        self._allowed_set = frozenset(self._allowed)

    @property
    def allowed_models(self) -> Tuple[str, ...]:
        return self._allowed

    def resolve(self, requested: str) -> ModelSpec:
        """
        Split a requested model name into base model and reasoning effort.

        An exact allowlist match always wins, so a base model whose name
        happens to end in a suffix token is never stripped. A suffix is only
        stripped when the remainder is itself allowlisted.

        Args:
            requested: Model name from the client request

        Returns:
            The resolved ModelSpec

        Raises:
            ModelNotAllowed: if no allowlisted base model can be derived
        """
        if requested in self._allowed_set:
            return ModelSpec(base_model=requested)

        for suffix, effort in SUFFIXES:
            if requested.endswith(suffix):
                base = requested[: -len(suffix)]
                if base in self._allowed_set:
                    return ModelSpec(base_model=base, effort=effort)

        logger.warning(f"Rejected model '{requested}'")
        raise ModelNotAllowed(requested, self._allowed)

    def list_available(self) -> List[str]:
        """
        List every advertised model identifier.

        Each base model is followed by its -low, -medium, -high and -xhigh
        variants, in configured order.
        """
        listed: List[str] = []
        for base in self._allowed:
            listed.append(base)
            listed.extend(f"{base}-{effort.value}" for effort in LISTED_EFFORTS)
        return listed

    def is_listed(self, model_id: str) -> bool:
        return model_id in self.list_available()
