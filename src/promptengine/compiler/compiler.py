"""Compiler - turns a prompts directory into an immutable TemplateSet."""

import logging
from typing import Dict, Optional, Tuple

from jinja2 import Environment, Template, TemplateSyntaxError

from promptengine.compiler.extensions import build_environment, builtin_names
from promptengine.compiler.lexer import TemplateScanner
from promptengine.compiler.loader import load_sources
from promptengine.compiler.resolver import Resolver
from promptengine.compiler.spec import TemplateSet, TemplateSource
from promptengine.config import EngineConfig
from promptengine.exceptions import PromptEngineError, TemplateCompileError

log = logging.getLogger(__name__)


class Compiler:
    """Compiles the current contents of a prompts directory.

    Every build produces a new TemplateSet with its own Jinja2 Environment;
    nothing is shared between builds.
    """

    def __init__(self, config: EngineConfig):
        self.config = config

    def build(self, version: int = 1) -> TemplateSet:
        """Load, resolve and compile every main template.

        Failures of a single template (unreadable file, duplicate name,
        missing or cyclic partial, syntax error) are recorded on that template
        only; all other templates of the snapshot stay usable.

        Args:
            version: Version number of the new set.

        Returns:
            Fresh TemplateSet.

        Raises:
            DirectoryUnreadableError: If the prompts directory cannot be read.
        """
        config = self.config
        sources = load_sources(
            config.prompts_dir, config.extensions, config.partial_prefix
        )
        partials = {n: s for n, s in sources.items() if s.is_partial}
        mains = {n: s for n, s in sources.items() if not s.is_partial}

        env = build_environment(
            {n: s.raw_text for n, s in sources.items() if s.error is None},
            extensions=config.extensions,
            strict_undefined=config.strict_undefined,
        )
        builtins = builtin_names(env)
        scanner = TemplateScanner(env, ignore=builtins)
        resolver = Resolver(
            partials, scanner.scan, builtins, config.extensions, mains=mains
        )

        templates: Dict[str, Template] = {}
        arguments: Dict[str, Tuple[str, ...]] = {}
        descriptions: Dict[str, str] = {}
        errors: Dict[str, Optional[Exception]] = {}

        for name, source in mains.items():
            try:
                template, args = self._compile_one(env, resolver, partials, source)
            except PromptEngineError as e:
                log.warning(f"Template '{name}' is unavailable: {e}")
                errors[name] = e
            else:
                templates[name] = template
                arguments[name] = args
                errors[name] = None

            try:
                descriptions[name] = resolver.scan(name, source.raw_text).description
            except TemplateSyntaxError:
                descriptions[name] = ""

        template_set = TemplateSet(
            version=version,
            directory=config.prompts_dir,
            templates=templates,
            descriptions=descriptions,
            arguments=arguments,
            errors=errors,
            partials=tuple(sorted(partials)),
            extensions=tuple(config.extensions),
        )
        log.info(
            f"Built template set v{version}: {len(templates)} ready, "
            f"{len(errors) - len(templates)} failed, {len(partials)} partials"
        )
        return template_set

    def _compile_one(
        self,
        env: Environment,
        resolver: Resolver,
        partials: Dict[str, TemplateSource],
        source: TemplateSource,
    ) -> Tuple[Template, Tuple[str, ...]]:
        """Resolve and compile one main template and its reachable partials.

        Raises:
            PromptEngineError: Scoped failure of this template.
        """
        name = source.name
        if source.error is not None:
            if isinstance(source.error, PromptEngineError):
                raise source.error
            raise TemplateCompileError(name, source.error)

        try:
            resolution = resolver.resolve(name, source.raw_text)
        except TemplateSyntaxError as e:
            raise TemplateCompileError(name, e) from e

        current = name
        try:
            for partial in resolution.partials:
                current = partial
                partial_source = partials[partial]
                if partial_source.error is not None:
                    raise TemplateCompileError(name, partial_source.error)
                env.get_template(partial)
            current = name
            template = env.get_template(name)
        except TemplateSyntaxError as e:
            log.debug(f"Syntax error in '{current}' while compiling '{name}': {e}")
            raise TemplateCompileError(name, e) from e

        return template, resolution.arguments


def build_template_set(config: EngineConfig, version: int = 1) -> TemplateSet:
    """Build a TemplateSet from the configured prompts directory."""
    return Compiler(config).build(version)
