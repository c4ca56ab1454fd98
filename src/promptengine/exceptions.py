"""Prompt Engine Exceptions

Custom exceptions for template loading, resolution, rendering and reload.
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence


class PromptEngineError(Exception):
    """Base exception for all prompt engine errors."""

    pass


class ConfigError(PromptEngineError):
    """Raised when the engine configuration cannot be loaded."""

    pass


class DirectoryUnreadableError(PromptEngineError):
    """Raised when the template directory cannot be listed."""

    def __init__(self, path: Path | str, cause: BaseException | None = None):
        self.path = Path(path)
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Template directory is unreadable: {self.path}{detail}")


class TemplateNotFoundError(PromptEngineError):
    """Raised when a template is absent or marked failed in the current set."""

    def __init__(self, name: str, available: Sequence[str] = ()):
        self.name = name
        self.available = list(available)
        super().__init__(f"Template not found: {name}")


class DuplicateTemplateError(PromptEngineError):
    """Raised when two files normalize to the same template name."""

    def __init__(self, name: str, paths: Sequence[Path]):
        self.name = name
        self.paths = list(paths)
        joined = ", ".join(p.name for p in self.paths)
        super().__init__(f"Duplicate template name '{name}': {joined}")


class MissingOrCyclicPartialError(PromptEngineError):
    """Base for partial resolution failures; scoped to one main template."""

    pass


class MissingPartialError(MissingOrCyclicPartialError):
    """Raised when an inclusion names a partial that does not exist."""

    def __init__(self, partial: str, referenced_by: str, main_template: bool = False):
        self.partial = partial
        self.referenced_by = referenced_by
        self.main_template = main_template
        if main_template:
            message = (
                f"'{partial}' referenced by '{referenced_by}' is a main "
                "template, not a partial"
            )
        else:
            message = f"Partial '{partial}' referenced by '{referenced_by}' does not exist"
        super().__init__(message)


class PartialCycleError(MissingOrCyclicPartialError):
    """Raised when partial inclusion loops back onto the current path."""

    def __init__(self, chain: Sequence[str]):
        self.chain = list(chain)
        super().__init__(f"Cyclic partial reference: {' -> '.join(self.chain)}")


class TemplateCompileError(PromptEngineError):
    """Raised when a template or one of its partials fails to lex or compile."""

    def __init__(self, name: str, cause: BaseException):
        self.name = name
        self.cause = cause
        super().__init__(f"Template '{name}' failed to compile: {cause}")


class ExecutionError(PromptEngineError):
    """Raised when executing a compiled template fails."""

    def __init__(self, name: str, cause: BaseException):
        self.name = name
        self.cause = cause
        super().__init__(f"Template '{name}' failed to execute: {cause}")


class WatchFailure(PromptEngineError):
    """Raised when the filesystem watcher cannot be started."""

    def __init__(self, path: Path | str, cause: BaseException | None = None):
        self.path = Path(path)
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Cannot watch template directory {self.path}{detail}")
