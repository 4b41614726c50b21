"""Configuration package for the mock-interview service."""
from .legacy import AppConfig, LlmRoute, load_config, resolve_route
from .registry import (
    QUESTION_GEN_KEY,
    RESUME_EXTRACTOR_KEY,
    SCORER_KEY,
    SUMMARY_KEY,
    bind_model,
    clear_models,
    get_model,
    is_bound,
    unbind_model,
)
from .settings import Settings, settings

__all__ = [
    "AppConfig",
    "LlmRoute",
    "load_config",
    "resolve_route",
    "QUESTION_GEN_KEY",
    "RESUME_EXTRACTOR_KEY",
    "SCORER_KEY",
    "SUMMARY_KEY",
    "bind_model",
    "clear_models",
    "get_model",
    "is_bound",
    "unbind_model",
    "Settings",
    "settings",
]
