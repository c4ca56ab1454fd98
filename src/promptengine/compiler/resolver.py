"""Resolver - computes the argument list of a main template.

The argument list is the ordered, deduplicated set of free variables of the
template and of every partial reachable from it through inclusion.

Partials are visited depth-first with an explicit stack and an explicit
"on current path" marker set:
- a partial reached again after it was finished (diamond inclusion) is
  skipped, its variables are already accumulated;
- a partial reached while still on the current path is a cycle, reported
  with the exact chain of names from the cycle start back to itself.

Resolution only looks at source text; nothing is executed.
"""

from typing import Callable, Dict, Iterable, Iterator, List, Mapping, Set, Tuple

from promptengine.compiler.loader import normalize_name
from promptengine.compiler.spec import Resolution, TemplateScan, TemplateSource
from promptengine.exceptions import MissingPartialError, PartialCycleError

Scanner = Callable[[str, str], TemplateScan]


class Resolver:
    """Resolves argument lists against the partials of one snapshot.

    Scans are cached, so each source is lexed at most once no matter how many
    main templates include it.
    """

    def __init__(
        self,
        partials: Mapping[str, TemplateSource],
        scanner: Scanner,
        builtins: Iterable[str] = (),
        extensions: Iterable[str] = (".tmpl",),
        mains: Iterable[str] = (),
    ):
        """Initialize the resolver.

        Args:
            partials: Partial name to source.
            scanner: Callable ``(source_text, name) -> TemplateScan``.
            builtins: Names stripped from every argument list.
            extensions: Recognized extensions, stripped from inclusion names.
            mains: Main template names, which cannot be included.
        """
        self.partials = partials
        self.scanner = scanner
        self.builtins = frozenset(builtins)
        self.extensions = tuple(extensions)
        self.mains = frozenset(mains)
        self._scan_cache: Dict[str, TemplateScan] = {}

    def scan(self, name: str, text: str) -> TemplateScan:
        """Scan a source, caching the result by template name."""
        cached = self._scan_cache.get(name)
        if cached is None:
            cached = self.scanner(text, name)
            self._scan_cache[name] = cached
        return cached

    def _includes(self, scan: TemplateScan) -> Iterator[Tuple[str, bool]]:
        optional = set(scan.optional_includes)
        for include in scan.includes:
            yield normalize_name(include, self.extensions), include in optional

    def resolve(self, name: str, text: str) -> Resolution:
        """Resolve the arguments of one main template.

        Args:
            name: Main template name.
            text: Main template source.

        Returns:
            Resolution with the argument list and the reachable partials.

        Raises:
            MissingPartialError: If a reachable inclusion names no partial,
                unless it is marked `ignore missing`.
            PartialCycleError: If a reachable partial includes itself through
                the current path.
            jinja2.TemplateSyntaxError: If a reachable source cannot be lexed.
        """
        variables: Dict[str, None] = {}
        finished: Set[str] = set()
        reached: List[str] = []

        root = self.scan(name, text)
        variables.update(dict.fromkeys(root.variables))

        # Each frame is (template name, iterator over its inclusions); the
        # names of the frames are exactly the partials on the current path.
        path: List[str] = [name]
        on_path: Set[str] = {name}
        stack: List[Tuple[str, Iterator[Tuple[str, bool]]]] = [
            (name, self._includes(root))
        ]

        while stack:
            current, children = stack[-1]
            edge = next(children, None)

            if edge is None:
                stack.pop()
                path.pop()
                on_path.discard(current)
                finished.add(current)
                continue

            child, optional = edge
            if child in on_path:
                start = path.index(child)
                raise PartialCycleError(path[start:] + [child])

            if child in finished:
                continue

            source = self.partials.get(child)
            if source is None:
                if child in self.mains:
                    raise MissingPartialError(child, current, main_template=True)
                if optional:
                    continue  # `ignore missing`
                raise MissingPartialError(child, referenced_by=current)

            scan = self.scan(child, source.raw_text)
            variables.update(dict.fromkeys(scan.variables))
            reached.append(child)

            stack.append((child, self._includes(scan)))
            path.append(child)
            on_path.add(child)

        arguments = tuple(v for v in variables if v not in self.builtins)
        return Resolution(arguments=arguments, partials=tuple(reached))
