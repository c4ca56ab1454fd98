"""Source loader - reads a prompts directory into TemplateSource entries."""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Sequence

from promptengine.compiler.spec import TemplateKind, TemplateSource
from promptengine.exceptions import DirectoryUnreadableError, DuplicateTemplateError

log = logging.getLogger(__name__)


def normalize_name(name: str, extensions: Iterable[str]) -> str:
    """Strip a recognized template extension from a file or template name."""
    for ext in extensions:
        if name.endswith(ext) and len(name) > len(ext):
            return name[: -len(ext)]
    return name


def _template_files(directory: Path, extensions: Sequence[str]) -> List[Path]:
    try:
        entries = sorted(directory.iterdir(), key=lambda p: p.name)
    except OSError as e:
        raise DirectoryUnreadableError(directory, e) from e

    files = []
    for entry in entries:
        if not any(entry.name.endswith(ext) for ext in extensions):
            continue
        try:
            if not entry.is_file():
                continue
        except OSError:
            # Unstat-able entries are reported by the read below.
            pass
        files.append(entry)
    return files


def _read_source(path: Path, name: str, kind: TemplateKind) -> TemplateSource:
    try:
        mtime = path.stat().st_mtime
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        log.warning(f"Failed to read template file {path}: {e}")
        return TemplateSource(name=name, kind=kind, path=path, error=e)
    return TemplateSource(name=name, kind=kind, path=path, raw_text=text, mtime=mtime)


def load_sources(
    directory: Path,
    extensions: Sequence[str] = (".tmpl",),
    partial_prefix: str = "_",
) -> Dict[str, TemplateSource]:
    """Load every template file of a directory (non-recursive).

    Files are classified as partials by name prefix; everything else is a
    main template. Read failures are attached to the file's entry instead of
    aborting the load. When two files normalize to the same name the first
    one (by file name) is kept and carries a DuplicateTemplateError.

    Args:
        directory: Prompts directory.
        extensions: File extensions recognized as templates.
        partial_prefix: Name prefix marking partials.

    Returns:
        Mapping of template name to TemplateSource, ordered by file name.

    Raises:
        DirectoryUnreadableError: If the directory cannot be listed.
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise DirectoryUnreadableError(directory, NotADirectoryError(str(directory)))

    sources: Dict[str, TemplateSource] = {}
    seen_paths: Dict[str, List[Path]] = {}

    for path in _template_files(directory, extensions):
        name = normalize_name(path.name, extensions)
        if name in seen_paths:
            seen_paths[name].append(path)
            continue
        seen_paths[name] = [path]

        kind = (
            TemplateKind.PARTIAL if name.startswith(partial_prefix) else TemplateKind.MAIN
        )
        sources[name] = _read_source(path, name, kind)

    for name, paths in seen_paths.items():
        if len(paths) > 1:
            first = sources[name]
            log.warning(f"Duplicate template name '{name}' in {directory}")
            sources[name] = TemplateSource(
                name=first.name,
                kind=first.kind,
                path=first.path,
                raw_text=first.raw_text,
                mtime=first.mtime,
                error=DuplicateTemplateError(name, paths),
            )

    log.debug(f"Loaded {len(sources)} template sources from {directory}")
    return sources
