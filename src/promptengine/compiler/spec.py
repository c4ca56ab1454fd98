"""Compiler data model - template sources, scans and the live template set."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from jinja2 import Template

from promptengine.exceptions import TemplateNotFoundError


class TemplateKind(str, Enum):
    """Whether a source is directly servable or only includable."""

    MAIN = "main"
    PARTIAL = "partial"


@dataclass(frozen=True)
class TemplateSource:
    """One template file as read from the prompts directory."""

    name: str
    kind: TemplateKind
    path: Path
    raw_text: str = ""
    mtime: float = 0.0
    error: Optional[Exception] = None

    @property
    def is_partial(self) -> bool:
        return self.kind is TemplateKind.PARTIAL


@dataclass(frozen=True)
class TemplateScan:
    """Result of lexing a single template source."""

    variables: Tuple[str, ...] = ()  # free root names, first-seen order
    includes: Tuple[str, ...] = ()  # partial names, first-seen order
    optional_includes: Tuple[str, ...] = ()  # only ever included with "ignore missing"
    description: str = ""


@dataclass(frozen=True)
class Resolution:
    """Resolved requirements of one main template."""

    arguments: Tuple[str, ...]
    partials: Tuple[str, ...]  # reachable partials in discovery order


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one main template."""

    name: str
    arguments: Tuple[str, ...] = ()
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _freeze(mapping: Dict[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True)
class TemplateSet:
    """Immutable, versioned snapshot of the compiled template corpus.

    Every main template of the snapshot has an entry in ``errors`` (None when
    it is ready). Only ready templates have an entry in ``templates``.
    """

    version: int
    directory: Path
    templates: Mapping[str, Template] = field(default_factory=dict)
    descriptions: Mapping[str, str] = field(default_factory=dict)
    arguments: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    errors: Mapping[str, Optional[Exception]] = field(default_factory=dict)
    partials: Tuple[str, ...] = ()
    extensions: Tuple[str, ...] = (".tmpl",)
    built_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        # Read-only views; the snapshot is shared between threads.
        for attr in ("templates", "descriptions", "arguments", "errors"):
            object.__setattr__(self, attr, _freeze(getattr(self, attr)))

    def normalize(self, name: str) -> str:
        """Strip a recognized template extension from a name."""
        for ext in self.extensions:
            if name.endswith(ext) and len(name) > len(ext):
                return name[: -len(ext)]
        return name

    def names(self) -> List[str]:
        """All main template names, ready or failed."""
        return sorted(self.errors)

    def ready(self) -> List[str]:
        """Names of main templates that can be rendered."""
        return sorted(name for name, err in self.errors.items() if err is None)

    def failed(self) -> Dict[str, Exception]:
        """Main templates that failed to load, resolve or compile."""
        return {
            name: err for name, err in sorted(self.errors.items()) if err is not None
        }

    def lookup(self, name: str) -> Tuple[str, Template]:
        """Find a ready template by name (with or without extension).

        Raises:
            TemplateNotFoundError: If the name is absent, a partial, or failed.
        """
        key = self.normalize(name)
        template = self.templates.get(key)
        if template is None:
            raise TemplateNotFoundError(name, available=self.ready())
        return key, template

    def arguments_for(self, name: str) -> Tuple[str, ...]:
        key, _ = self.lookup(name)
        return self.arguments[key]

    def description_for(self, name: str) -> str:
        return self.descriptions.get(self.normalize(name), "")

    def validate(
        self, name: Optional[str] = None, builtins: Optional[Dict[str, Any]] = None
    ) -> List[ValidationResult]:
        """Validate one or all main templates.

        Failed templates report their recorded error. Ready templates are also
        executed with dummy argument values to catch execution errors.

        Args:
            name: Template to validate; all main templates when None.
            builtins: Built-in context values used for the trial execution.

        Raises:
            TemplateNotFoundError: If ``name`` is not a main template.
        """
        if name is None:
            targets = self.names()
        else:
            key = self.normalize(name)
            if key not in self.errors:
                raise TemplateNotFoundError(name, available=self.ready())
            targets = [key]

        results: List[ValidationResult] = []
        for target in targets:
            err = self.errors[target]
            args = self.arguments.get(target, ())
            if err is None:
                context: Dict[str, Any] = dict(builtins or {})
                context.update({arg: "test_value" for arg in args})
                try:
                    self.templates[target].render(context)
                except Exception as e:
                    err = e
            results.append(ValidationResult(name=target, arguments=args, error=err))
        return results
