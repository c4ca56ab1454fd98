"""Lexer - statically scans template sources for arguments and partials.

Works on the token stream produced by ``Environment.lex`` rather than on the
parsed template tree. Tokens are grouped into tags ({{ }}, {% %}, {# #}), and
each tag is scanned with a stack of scopes holding the names bound by loops,
``set``, ``with``, macros and imports.

A free variable is the leading segment of a value access (``user`` in
``user.email``) that is not bound by an enclosing scope. Attribute names,
filter names, test names, keyword-argument names and keywords are skipped.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple

from jinja2 import Environment

from promptengine.compiler.spec import TemplateScan

Token = Tuple[str, str]  # (token type, raw value)

KEYWORDS = frozenset(
    {
        "and", "or", "not", "in", "is", "if", "else",
        "true", "false", "none", "True", "False", "None",
    }
)

# Names Jinja provides inside special scopes; never arguments.
RESERVED = frozenset({"loop", "self", "super", "caller", "varargs", "kwargs"})

_OPENERS = ("(", "[", "{")
_CLOSERS = (")", "]", "}")

_CONTEXT_MODIFIERS = frozenset(
    {
        ("name", "ignore"),
        ("name", "missing"),
        ("name", "with"),
        ("name", "without"),
        ("name", "context"),
    }
)


@dataclass
class _Tag:
    kind: str  # "data", "variable", "block" or "comment"
    tokens: List[Token] = field(default_factory=list)
    begin: str = ""
    end: str = ""


def _group_tags(raw: Iterable[Tuple[int, str, str]]) -> Iterator[_Tag]:
    """Group raw lexer tokens into tags, dropping whitespace."""
    current: Optional[_Tag] = None
    for _lineno, token_type, value in raw:
        if token_type == "whitespace":
            continue
        if token_type in ("variable_begin", "block_begin", "comment_begin"):
            current = _Tag(kind=token_type[: -len("_begin")], begin=value)
        elif token_type in ("variable_end", "block_end", "comment_end"):
            if current is not None:
                current.end = value
                yield current
            current = None
        elif current is not None:
            current.tokens.append((token_type, value))
        elif token_type == "data":
            yield _Tag(kind="data", tokens=[(token_type, value)])


def _comment_text(tag: _Tag) -> str:
    text = "".join(value for _, value in tag.tokens)
    # Whitespace-control markers adjacent to the delimiters.
    if text[:1] in ("-", "+"):
        text = text[1:]
    if text[-1:] in ("-", "+"):
        text = text[:-1]
    return " ".join(text.split())


def _unquote(raw: str) -> str:
    if len(raw) >= 2 and raw[0] == raw[-1] and raw[0] in ("'", '"'):
        return raw[1:-1]
    return raw


def _find_top(tokens: List[Token], target: Token) -> Optional[int]:
    """Index of the first ``target`` outside any brackets."""
    depth = 0
    for i, tok in enumerate(tokens):
        if tok[0] == "operator":
            if tok[1] in _OPENERS:
                depth += 1
            elif tok[1] in _CLOSERS:
                depth -= 1
        if depth == 0 and tok == target:
            return i
    return None


def _split_top(tokens: List[Token], separator: str = ",") -> List[List[Token]]:
    """Split tokens on a top-level operator."""
    parts: List[List[Token]] = [[]]
    depth = 0
    for tok in tokens:
        if tok[0] == "operator":
            if tok[1] in _OPENERS:
                depth += 1
            elif tok[1] in _CLOSERS:
                depth -= 1
            elif depth == 0 and tok[1] == separator:
                parts.append([])
                continue
        parts[-1].append(tok)
    return [p for p in parts if p]


def _ignores_missing(tokens: List[Token]) -> bool:
    """True for an inclusion marked `ignore missing`."""
    marker = (("name", "ignore"), ("name", "missing"))
    return marker in zip(tokens, tokens[1:])


def _matching_close(tokens: List[Token], start: int) -> int:
    depth = 0
    for i in range(start, len(tokens)):
        tok = tokens[i]
        if tok[0] != "operator":
            continue
        if tok[1] in _OPENERS:
            depth += 1
        elif tok[1] in _CLOSERS:
            depth -= 1
            if depth == 0:
                return i
    return len(tokens) - 1


class _ScanState:
    """Mutable state of one scan: scopes, variables and inclusions."""

    def __init__(self, ignore: Iterable[str]):
        self.ignore = frozenset(ignore)
        self.scopes: List[Set[str]] = [set()]
        self.frames: List[str] = []
        self.variables: Dict[str, None] = {}
        self.includes: Dict[str, None] = {}
        self.required: Set[str] = set()

    # -- scopes ---------------------------------------------------------

    def is_bound(self, name: str) -> bool:
        return any(name in scope for scope in self.scopes)

    def bind(self, names: Iterable[str]) -> None:
        self.scopes[-1].update(names)

    def open(self, tag: str, names: Iterable[str]) -> None:
        self.scopes.append(set(names))
        self.frames.append(tag)

    def close(self, tag: str) -> None:
        if tag not in self.frames:
            return
        while self.frames:
            self.scopes.pop()
            if self.frames.pop() == tag:
                break

    # -- references -----------------------------------------------------

    def reference(self, name: str) -> None:
        if name in KEYWORDS or name in RESERVED or name in self.ignore:
            return
        if self.is_bound(name):
            return
        self.variables.setdefault(name, None)

    def include(self, raw: str, optional: bool = False) -> None:
        name = _unquote(raw)
        self.includes.setdefault(name, None)
        if not optional:
            self.required.add(name)

    def optional_includes(self) -> Tuple[str, ...]:
        return tuple(n for n in self.includes if n not in self.required)

    def expression(self, tokens: List[Token]) -> None:
        """Record the free root names of an expression."""
        depth = 0
        for i, (token_type, value) in enumerate(tokens):
            if token_type == "operator":
                if value in _OPENERS:
                    depth += 1
                elif value in _CLOSERS:
                    depth -= 1
                continue
            if token_type != "name":
                continue

            prev = tokens[i - 1] if i > 0 else None
            nxt = tokens[i + 1] if i + 1 < len(tokens) else None

            if prev is not None and prev[0] == "operator" and prev[1] in (".", "|"):
                continue  # attribute or filter
            if prev == ("name", "is"):
                continue  # test
            if prev == ("name", "not") and i > 1 and tokens[i - 2] == ("name", "is"):
                continue  # negated test
            if nxt == ("operator", "=") and depth > 0:
                continue  # keyword argument
            self.reference(value)

    def parameters(self, tokens: List[Token]) -> List[str]:
        """Parse a parenthesized parameter list; defaults are expressions."""
        if not tokens or tokens[0] != ("operator", "("):
            return []
        close = _matching_close(tokens, 0)
        names: List[str] = []
        for part in _split_top(tokens[1:close]):
            if part[0][0] != "name":
                continue
            names.append(part[0][1])
            if len(part) > 2 and part[1] == ("operator", "="):
                self.expression(part[2:])
        return names

    # -- statements -----------------------------------------------------

    def statement(self, tokens: List[Token]) -> None:
        if not tokens or tokens[0][0] != "name":
            self.expression(tokens)
            return

        keyword, rest = tokens[0][1], tokens[1:]
        handler = getattr(self, f"_stmt_{keyword}", None)
        if handler is not None:
            handler(rest)
        elif keyword.startswith("end"):
            self.close(keyword[3:])
        else:
            # if, elif, else, autoescape and friends
            self.expression(rest)

    def _stmt_for(self, rest: List[Token]) -> None:
        idx_in = _find_top(rest, ("name", "in"))
        if idx_in is None:
            self.expression(rest)
            return

        targets = [value for token_type, value in rest[:idx_in] if token_type == "name"]
        tail = rest[idx_in + 1 :]
        cut = len(tail)
        for marker in (("name", "if"), ("name", "recursive")):
            idx = _find_top(tail, marker)
            if idx is not None:
                cut = min(cut, idx)

        # The iterable is evaluated outside the loop scope.
        self.expression(tail[:cut])
        self.open("for", targets + ["loop"])
        self.expression([tok for tok in tail[cut:] if tok != ("name", "recursive")])

    def _stmt_set(self, rest: List[Token]) -> None:
        idx = _find_top(rest, ("operator", "="))
        if idx is None:
            # Block assignment: {% set name %}...{% endset %}
            if rest and rest[0][0] == "name":
                self.bind([rest[0][1]])
            return

        targets, value = rest[:idx], rest[idx + 1 :]
        self.expression(value)
        if ("operator", ".") in targets:
            # Namespace attribute assignment references the namespace.
            self.expression(targets[:1])
        else:
            self.bind(v for t, v in targets if t == "name")

    def _stmt_with(self, rest: List[Token]) -> None:
        names: List[str] = []
        for part in _split_top(rest):
            if len(part) >= 2 and part[0][0] == "name" and part[1] == ("operator", "="):
                self.expression(part[2:])
                names.append(part[0][1])
            else:
                self.expression(part)
        self.open("with", names)

    def _stmt_macro(self, rest: List[Token]) -> None:
        if not rest or rest[0][0] != "name":
            return
        self.bind([rest[0][1]])
        params = self.parameters(rest[1:])
        self.open("macro", params)

    def _stmt_call(self, rest: List[Token]) -> None:
        params: List[str] = []
        if rest and rest[0] == ("operator", "("):
            close = _matching_close(rest, 0)
            params = self.parameters(rest[: close + 1])
            rest = rest[close + 1 :]
        self.expression(rest)
        self.open("call", params)

    def _stmt_filter(self, rest: List[Token]) -> None:
        self.expression([("operator", "|")] + rest)

    def _stmt_block(self, rest: List[Token]) -> None:
        pass  # block names and modifiers are not values

    def _stmt_include(self, rest: List[Token]) -> None:
        if rest and rest[0][0] == "string":
            self.include(rest[0][1], optional=_ignores_missing(rest))
            rest = rest[1:]
        # Dynamic names are plain expressions and are not followed.
        self.expression([tok for tok in rest if tok not in _CONTEXT_MODIFIERS])

    _stmt_extends = _stmt_include

    def _stmt_partial(self, rest: List[Token]) -> None:
        if rest and rest[0][0] == "string":
            self.include(rest[0][1])
            rest = rest[1:]
        self.expression([tok for tok in rest if tok != ("name", "with")])

    def _stmt_import(self, rest: List[Token]) -> None:
        idx_as = _find_top(rest, ("name", "as"))
        source = rest if idx_as is None else rest[:idx_as]
        if source and source[0][0] == "string":
            self.include(source[0][1])
        else:
            self.expression(source)
        if idx_as is not None and idx_as + 1 < len(rest) and rest[idx_as + 1][0] == "name":
            self.bind([rest[idx_as + 1][1]])

    def _stmt_from(self, rest: List[Token]) -> None:
        idx_import = _find_top(rest, ("name", "import"))
        if idx_import is None:
            self.expression(rest)
            return
        source = rest[:idx_import]
        if source and source[0][0] == "string":
            self.include(source[0][1])
        else:
            self.expression(source)

        names = [tok for tok in rest[idx_import + 1 :] if tok not in _CONTEXT_MODIFIERS]
        for part in _split_top(names):
            if len(part) == 3 and part[1] == ("name", "as"):
                self.bind([part[2][1]])
            elif part[0][0] == "name":
                self.bind([part[0][1]])


class TemplateScanner:
    """Scans template sources using the lexer of a Jinja2 environment."""

    def __init__(self, env: Environment, ignore: Iterable[str] = ()):
        """Initialize the scanner.

        Args:
            env: Environment whose delimiter syntax is used for lexing.
            ignore: Names never reported as variables (built-ins).
        """
        self.env = env
        self.ignore = frozenset(ignore)

    def scan(self, source: str, name: Optional[str] = None) -> TemplateScan:
        """Scan one template source.

        Args:
            source: Raw template text.
            name: Template name, used in syntax error messages.

        Returns:
            TemplateScan with variables and inclusions in first-seen order and
            the description taken from a leading comment.

        Raises:
            jinja2.TemplateSyntaxError: If the source cannot be tokenized.
        """
        state = _ScanState(self.ignore)
        description: Optional[str] = None

        for tag in _group_tags(self.env.lex(source, name=name)):
            if description is None:
                if tag.kind == "data" and not tag.tokens[0][1].strip():
                    pass
                elif tag.kind == "comment":
                    description = _comment_text(tag)
                else:
                    description = ""

            if tag.kind == "variable":
                state.expression(tag.tokens)
            elif tag.kind == "block":
                state.statement(tag.tokens)

        return TemplateScan(
            variables=tuple(state.variables),
            includes=tuple(state.includes),
            optional_includes=state.optional_includes(),
            description=description or "",
        )


def scan_template(source: str, env: Environment, ignore: Iterable[str] = ()) -> TemplateScan:
    """Convenience wrapper around TemplateScanner.scan."""
    return TemplateScanner(env, ignore).scan(source)
