"""In-memory registry for remote collaborator callables."""
from typing import Any, Callable, Dict

_REGISTRY: Dict[str, Callable[..., Any]] = {}


def bind_model(key: str, fn: Callable[..., Any]) -> None:
    """Bind a callable implementation to a registry key."""
    _REGISTRY[key] = fn


def unbind_model(key: str) -> None:
    _REGISTRY.pop(key, None)


def clear_models() -> None:
    _REGISTRY.clear()


def is_bound(key: str) -> bool:
    return key in _REGISTRY


def get_model(key: str) -> Callable[..., Any]:
    """Retrieve a callable from the registry.

    Raises:
        KeyError: If no callable has been bound for ``key``. Callers treat
            this as "no remote collaborator configured" and use their local
            fallback.
    """

    if key not in _REGISTRY:
        raise KeyError(f"Model not bound in registry: {key}")
    return _REGISTRY[key]


QUESTION_GEN_KEY = "models.question_generator"
SCORER_KEY = "models.answer_scorer"
SUMMARY_KEY = "models.summarizer"
RESUME_EXTRACTOR_KEY = "models.resume_extractor"
