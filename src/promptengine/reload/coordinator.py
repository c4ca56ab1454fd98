"""Reload coordinator - keeps a live TemplateSet in sync with the prompts directory.

Lifecycle:
    1. ``start()`` builds and publishes the first set, then starts watching
       the prompts directory (non-recursive) with a watchdog observer.
    2. Create/modify/delete/move events of template files feed a Debouncer;
       after the quiet period one rebuild runs from the final on-disk state.
    3. A successful rebuild is published by replacing ``current`` in a single
       reference assignment. A failed rebuild keeps the previous set.
    4. ``stop()`` tears down the observer and the debounce timer.

Thread-safety
-------------
Readers only read ``current`` once per call and never lock. Rebuilds are
serialized: a rebuild requested while another one runs is merged into a
single follow-up rebuild.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from enum import Enum
from pathlib import Path
from typing import Any

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from promptengine.compiler.compiler import Compiler
from promptengine.compiler.spec import TemplateSet
from promptengine.config import EngineConfig
from promptengine.exceptions import DirectoryUnreadableError, WatchFailure
from promptengine.reload.debounce import Debouncer, TimerFactory

log = logging.getLogger(__name__)

Listener = Callable[[TemplateSet], None]


class ReloadState(str, Enum):
    IDLE = "idle"
    WATCHING = "watching"
    REBUILDING = "rebuilding"
    PUBLISHED = "published"
    STOPPED = "stopped"


class _TemplateEventHandler(FileSystemEventHandler):
    """Watchdog handler that forwards template file events."""

    def __init__(self, coordinator: ReloadCoordinator):
        super().__init__()
        self._coordinator = coordinator

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._coordinator.notify(event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._coordinator.notify(event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._coordinator.notify(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._coordinator.notify(event.src_path)
            self._coordinator.notify(event.dest_path)


class ReloadCoordinator:
    """Single writer publishing versioned TemplateSets.

    Usage:
        with ReloadCoordinator(config) as coordinator:
            renderer = Renderer(coordinator)
            ...
    """

    def __init__(
        self,
        config: EngineConfig,
        observer_factory: Callable[[], Any] = Observer,
        timer_factory: TimerFactory = threading.Timer,
        compiler: Compiler | None = None,
    ):
        """Initialize the coordinator.

        Args:
            config: Engine configuration.
            observer_factory: Creates the filesystem observer.
            timer_factory: Creates debounce timers.
            compiler: Builds template sets (defaults to Compiler(config)).
        """
        self.config = config
        self._compiler = compiler or Compiler(config)
        self._observer_factory = observer_factory
        self._observer: Any = None

        self._current: TemplateSet | None = None
        self._published = threading.Condition()
        self._lock = threading.Lock()
        self._rebuilding = False
        self._pending = False
        self._listeners: list[Listener] = []

        self._debouncer = Debouncer(config.debounce_seconds, self.rebuild, timer_factory)
        self.state = ReloadState.IDLE
        self.last_error: Exception | None = None
        self._stopped = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def current(self) -> TemplateSet:
        """The published TemplateSet."""
        template_set = self._current
        if template_set is None:
            raise RuntimeError("ReloadCoordinator has not been started")
        return template_set

    @property
    def version(self) -> int:
        template_set = self._current
        return template_set.version if template_set is not None else 0

    @property
    def watching(self) -> bool:
        return self._observer is not None

    def start(self) -> TemplateSet:
        """Build the first set and start watching.

        Returns:
            The first published TemplateSet.

        Raises:
            DirectoryUnreadableError: If the prompts directory cannot be read.
        """
        self._stopped = False
        template_set = self._compiler.build(version=1)
        self._publish(template_set)

        try:
            self._start_observer()
        except WatchFailure as e:
            log.error(f"{e}; live reload disabled, serving template set v1")
            self.last_error = e
        return template_set

    def stop(self) -> None:
        """Stop watching and release resources."""
        self._stopped = True
        observer, self._observer = self._observer, None
        try:
            if observer is not None:
                try:
                    observer.stop()
                    observer.join(timeout=2)
                except RuntimeError as e:
                    log.warning(f"Error stopping template watcher: {e}")
                log.info(f"Stopped watching {self.config.prompts_dir}")
        finally:
            # After the observer, so no late event can re-arm a timer.
            self._debouncer.cancel()
        self.state = ReloadState.STOPPED

    def __enter__(self) -> ReloadCoordinator:
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def add_listener(self, listener: Listener) -> None:
        """Register a callback invoked with every newly published set."""
        self._listeners.append(listener)

    def notify(self, path: str | bytes) -> None:
        """Handle a filesystem notification for ``path``."""
        if isinstance(path, bytes):
            path = path.decode(errors="replace")
        if not self.is_template_path(path):
            return
        log.debug(f"Template change detected: {path}")
        self._debouncer.trigger()

    def is_template_path(self, path: str) -> bool:
        name = Path(path).name
        return any(name.endswith(ext) for ext in self.config.extensions)

    def rebuild(self) -> TemplateSet | None:
        """Rebuild from the current directory contents and publish.

        If a rebuild is already running, the request is merged into one
        follow-up rebuild of that run and None is returned immediately.
        After stop() nothing is rebuilt.

        Returns:
            The last set published by this call, or None.
        """
        with self._lock:
            if self._stopped:
                return None
            if self._rebuilding:
                self._pending = True
                return None
            self._rebuilding = True

        published: TemplateSet | None = None
        try:
            while True:
                self.state = ReloadState.REBUILDING
                version = self.version + 1
                try:
                    template_set = self._compiler.build(version=version)
                except DirectoryUnreadableError as e:
                    log.error(
                        f"Rebuild failed, keeping template set v{self.version}: {e}"
                    )
                    self.last_error = e
                else:
                    self._publish(template_set)
                    published = template_set

                with self._lock:
                    if not self._pending:
                        self._rebuilding = False
                        break
                    self._pending = False
                log.debug("Changes arrived during rebuild, rebuilding again")
        except BaseException:
            with self._lock:
                self._rebuilding = False
            raise

        if not self._stopped:
            self.state = ReloadState.WATCHING if self.watching else ReloadState.PUBLISHED
        return published

    def wait_for_version(self, version: int, timeout: float | None = None) -> bool:
        """Block until a set with at least ``version`` is published."""
        with self._published:
            return self._published.wait_for(lambda: self.version >= version, timeout)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _publish(self, template_set: TemplateSet) -> None:
        with self._published:
            self._current = template_set
            self._published.notify_all()
        self.state = ReloadState.PUBLISHED
        self.last_error = None
        log.info(
            f"Published template set v{template_set.version} "
            f"({len(template_set.ready())} ready)"
        )

        for listener in list(self._listeners):
            try:
                listener(template_set)
            except Exception:
                log.exception("Error in template set listener")

    def _start_observer(self) -> None:
        directory = str(self.config.prompts_dir)
        observer = self._observer_factory()
        try:
            observer.schedule(_TemplateEventHandler(self), directory, recursive=False)
            observer.daemon = True
            observer.start()
        except OSError as e:
            raise WatchFailure(directory, e) from e

        self._observer = observer
        self.state = ReloadState.WATCHING
        log.info(f"Watching {directory} for template changes")
