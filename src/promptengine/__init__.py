"""Prompt Engine - Jinja2 prompt templates with partials and live reload."""

from promptengine._version import __version__
from promptengine.compiler.compiler import Compiler, build_template_set
from promptengine.compiler.renderer import (
    MissingPolicy,
    RenderRequest,
    RenderResponse,
    Renderer,
)
from promptengine.compiler.spec import TemplateSet
from promptengine.config import EngineConfig, load_config
from promptengine.exceptions import (
    DirectoryUnreadableError,
    ExecutionError,
    MissingOrCyclicPartialError,
    PromptEngineError,
    TemplateNotFoundError,
)
from promptengine.reload.coordinator import ReloadCoordinator

__all__ = [
    "__version__",
    "Compiler",
    "build_template_set",
    "MissingPolicy",
    "RenderRequest",
    "RenderResponse",
    "Renderer",
    "TemplateSet",
    "EngineConfig",
    "load_config",
    "DirectoryUnreadableError",
    "ExecutionError",
    "MissingOrCyclicPartialError",
    "PromptEngineError",
    "TemplateNotFoundError",
    "ReloadCoordinator",
]
