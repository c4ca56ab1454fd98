"""Jinja2 environment and extensions for prompt templates."""

from datetime import datetime
from typing import Any, Dict, Iterable, Mapping, Optional

from jinja2 import Environment, FunctionLoader, StrictUndefined, Undefined, nodes
from jinja2.ext import Extension
from jinja2.runtime import Context

from promptengine.compiler.loader import normalize_name
from promptengine.config import DEFAULT_DATE_FORMAT

# Context values available to every template without caller input.
BUILTIN_DATE = "date"
BUILTIN_CONTEXT = (BUILTIN_DATE,)


class PartialExtension(Extension):
    """Extension for the {% partial %} inclusion tag.

    Renders a partial either against the full ambient context or against an
    explicit map, so a partial can be reused with aliased arguments.

    Example:
        {% partial "_header" %}
        {% partial "_header" with dict(role=reviewer, task=task) %}
    """

    tags = {"partial"}

    def parse(self, parser):
        """Parse {% partial <name> [with <mapping>] %}."""
        lineno = next(parser.stream).lineno

        name = parser.parse_expression()
        mapping: nodes.Expr = nodes.Const(None)
        if parser.stream.skip_if("name:with"):
            mapping = parser.parse_expression()

        call = self.call_method(
            "_render_partial", [nodes.ContextReference(), name, mapping]
        )
        return nodes.Output([call]).set_lineno(lineno)

    def _render_partial(
        self, context: Context, name: str, mapping: Optional[Mapping[str, Any]]
    ) -> str:
        """Render a partial at template execution time.

        Args:
            context: Context of the including template.
            name: Partial name.
            mapping: Explicit context for the partial; the ambient context is
                used when None. Built-in values stay available underneath it.

        Returns:
            Rendered partial text.
        """
        template = self.environment.get_template(name, parent=context.name)
        if mapping is None:
            variables = context.get_all()
        else:
            variables = {
                key: context[key] for key in BUILTIN_CONTEXT if key in context
            }
            variables.update(mapping)
        return template.render(variables)


def now(fmt: str = DEFAULT_DATE_FORMAT) -> str:
    """Return the current local time formatted with ``fmt``."""
    return datetime.now().strftime(fmt)


def build_environment(
    sources: Mapping[str, str],
    extensions: Iterable[str] = (".tmpl",),
    strict_undefined: bool = True,
) -> Environment:
    """Create the shared Jinja2 Environment of one template set.

    Every source is reachable by its template name, with or without a
    recognized file extension, so main templates can include partials and
    partials can include each other.

    Args:
        sources: Template name to raw source text.
        extensions: Recognized template file extensions.
        strict_undefined: Use StrictUndefined instead of the lenient default.

    Returns:
        Configured Jinja2 Environment.
    """
    exts = tuple(extensions)
    texts: Dict[str, str] = dict(sources)

    def load(name: str) -> Optional[str]:
        return texts.get(normalize_name(name, exts))

    env = Environment(  # nosec B701 - rendering plain-text prompts, not HTML
        loader=FunctionLoader(load),
        extensions=[PartialExtension],
        autoescape=False,
        keep_trailing_newline=True,
        cache_size=-1,
        undefined=StrictUndefined if strict_undefined else Undefined,
    )
    env.globals["now"] = now
    env.globals["dict"] = dict

    return env


def builtin_names(env: Environment) -> frozenset:
    """Names that are never template arguments."""
    return frozenset(env.globals) | frozenset(BUILTIN_CONTEXT)
