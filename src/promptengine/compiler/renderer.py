"""Renderer - executes templates of the currently published TemplateSet."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol

from pydantic import BaseModel, Field

from promptengine.compiler.extensions import BUILTIN_DATE
from promptengine.compiler.spec import TemplateSet
from promptengine.config import DEFAULT_DATE_FORMAT
from promptengine.exceptions import ExecutionError, PromptEngineError

log = logging.getLogger(__name__)


class SnapshotSource(Protocol):
    """Anything publishing a current TemplateSet (e.g. ReloadCoordinator)."""

    @property
    def current(self) -> TemplateSet: ...


class MissingPolicy(str, Enum):
    """How arguments without caller or environment value are filled."""

    EMPTY = "empty"  # ""
    PLACEHOLDER = "placeholder"  # "{{ name }}"
    EXAMPLE = "example"  # "example_name"


def fill_missing(name: str, policy: MissingPolicy) -> str:
    if policy is MissingPolicy.PLACEHOLDER:
        return "{{ " + name + " }}"
    if policy is MissingPolicy.EXAMPLE:
        return f"example_{name}"
    return ""


# =============================================================================
# Render boundary models
# =============================================================================


class RenderRequest(BaseModel):
    """Request handed over by a protocol or CLI layer."""

    template_name: str = Field(description="Template to render")
    arguments: dict[str, Any] = Field(
        default_factory=dict, description="Caller-supplied argument values"
    )


class RenderFailure(BaseModel):
    """Structured render failure."""

    kind: str
    message: str
    template: str | None = None


class RenderResponse(BaseModel):
    """Either the rendered text or a structured failure."""

    text: str | None = None
    error: RenderFailure | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class TemplateInfo:
    """Servable template with its resolved arguments."""

    name: str
    description: str
    arguments: tuple[str, ...]
    env_defaults: dict[str, bool] = field(default_factory=dict)

    @staticmethod
    def env_var(argument: str) -> str:
        return argument.upper()


class Renderer:
    """Renders templates against a captured snapshot.

    The snapshot is captured once per call, so a concurrent publish never
    affects a render in progress.

    Usage:
        renderer = Renderer(coordinator)
        text = renderer.render("greeting", {"name": "John"})
    """

    def __init__(
        self,
        source: TemplateSet | SnapshotSource,
        date_format: str = DEFAULT_DATE_FORMAT,
        environ: Mapping[str, str] | None = None,
        clock: Callable[[], datetime] = datetime.now,
        missing: MissingPolicy = MissingPolicy.EMPTY,
    ):
        """Initialize the renderer.

        Args:
            source: A fixed TemplateSet or a publisher of the current one.
            date_format: strftime format of the `date` built-in.
            environ: Environment consulted for argument defaults
                (defaults to os.environ).
            clock: Returns the time used for the `date` built-in.
            missing: Default fill policy for arguments without a value.
        """
        self._source = source
        self.date_format = date_format
        self.environ = os.environ if environ is None else environ
        self.clock = clock
        self.missing = missing

    def snapshot(self) -> TemplateSet:
        """Return the TemplateSet to use for one call."""
        if isinstance(self._source, TemplateSet):
            return self._source
        return self._source.current

    def builtins(self) -> dict[str, Any]:
        """Context values available to every template."""
        return {BUILTIN_DATE: self.clock().strftime(self.date_format)}

    def build_context(
        self,
        argument_names: tuple[str, ...],
        arguments: Mapping[str, Any] | None = None,
        missing: MissingPolicy | None = None,
    ) -> dict[str, Any]:
        """Layer built-ins, environment defaults and caller arguments.

        Precedence (lowest to highest): built-ins, environment variable named
        by the upper-cased argument, caller-supplied value.
        """
        policy = missing or self.missing
        arguments = arguments or {}

        context = self.builtins()
        for name in argument_names:
            env_name = TemplateInfo.env_var(name)
            if env_name in self.environ:
                context[name] = self.environ[env_name]
            elif name not in arguments:
                context[name] = fill_missing(name, policy)
        context.update(arguments)
        return context

    def render(
        self,
        name: str,
        arguments: Mapping[str, Any] | None = None,
        missing: MissingPolicy | None = None,
    ) -> str:
        """Render a template.

        Args:
            name: Template name, with or without extension.
            arguments: Caller-supplied values (highest precedence).
            missing: Fill policy overriding the renderer default.

        Returns:
            Rendered text.

        Raises:
            TemplateNotFoundError: If the template is absent or failed.
            ExecutionError: If executing the template fails.
        """
        snapshot = self.snapshot()
        key, template = snapshot.lookup(name)
        context = self.build_context(snapshot.arguments[key], arguments, missing)

        try:
            return template.render(context)
        except Exception as e:
            log.debug(f"Template '{key}' failed in snapshot v{snapshot.version}: {e}")
            raise ExecutionError(key, e) from e

    def _info(self, snapshot: TemplateSet, name: str) -> TemplateInfo:
        args = snapshot.arguments[name]
        return TemplateInfo(
            name=name,
            description=snapshot.description_for(name),
            arguments=args,
            env_defaults={a: TemplateInfo.env_var(a) in self.environ for a in args},
        )

    def describe(self, name: str) -> TemplateInfo:
        """Describe a servable template and its environment defaults."""
        snapshot = self.snapshot()
        key, _ = snapshot.lookup(name)
        return self._info(snapshot, key)

    def list_templates(self) -> list[TemplateInfo]:
        """Describe every servable template of the current snapshot."""
        snapshot = self.snapshot()
        return [self._info(snapshot, name) for name in snapshot.ready()]

    def handle(self, request: RenderRequest) -> RenderResponse:
        """Serve one render request; engine errors become structured failures."""
        try:
            text = self.render(request.template_name, request.arguments)
        except PromptEngineError as e:
            return RenderResponse(
                error=RenderFailure(
                    kind=type(e).__name__,
                    message=str(e),
                    template=request.template_name,
                )
            )
        return RenderResponse(text=text)
