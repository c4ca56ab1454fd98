"""Shared fixtures: prompts directories, fake timers and fake observers."""

from pathlib import Path
from typing import Callable, Dict, List

import pytest

from promptengine.compiler.extensions import build_environment, builtin_names
from promptengine.compiler.lexer import TemplateScanner
from promptengine.config import EngineConfig


class FakeTimer:
    """Stand-in for threading.Timer that only fires when told to."""

    def __init__(self, delay: float, function: Callable[[], None]):
        self.delay = delay
        self.function = function
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if not self.cancelled:
            self.function()


class FakeTimers(list):
    """Timer factory recording every timer it creates."""

    def __call__(self, delay: float, function: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(delay, function)
        self.append(timer)
        return timer

    @property
    def last(self) -> FakeTimer:
        return self[-1]


class FakeObserver:
    """Stand-in for watchdog's Observer."""

    instances: List["FakeObserver"] = []

    def __init__(self):
        self.schedules = []
        self.daemon = False
        self.started = False
        self.stopped = False
        self.joined = False
        FakeObserver.instances.append(self)

    def schedule(self, handler, path, recursive=False):
        self.schedules.append((handler, path, recursive))

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def join(self, timeout=None):
        self.joined = True

    @property
    def handler(self):
        return self.schedules[0][0]


class BrokenObserver(FakeObserver):
    def schedule(self, handler, path, recursive=False):
        raise OSError("inotify watch limit reached")


@pytest.fixture
def prompts_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "prompts"
    directory.mkdir()
    return directory


@pytest.fixture
def write_prompts(prompts_dir: Path) -> Callable[[Dict[str, str]], Path]:
    """Write ``{file name: content}`` into the prompts directory."""

    def write(files: Dict[str, str]) -> Path:
        for name, content in files.items():
            (prompts_dir / name).write_text(content, encoding="utf-8")
        return prompts_dir

    return write


@pytest.fixture
def config(prompts_dir: Path) -> EngineConfig:
    return EngineConfig(prompts_dir=prompts_dir, debounce_seconds=0.01)


@pytest.fixture
def scanner() -> TemplateScanner:
    env = build_environment({})
    return TemplateScanner(env, ignore=builtin_names(env))


@pytest.fixture
def timers() -> FakeTimers:
    return FakeTimers()


@pytest.fixture
def observers() -> List[FakeObserver]:
    FakeObserver.instances = []
    return FakeObserver.instances


@pytest.fixture(autouse=True)
def restore_package_logger():
    """Undo CLI logging setup so caplog keeps seeing package records."""
    import logging

    logger = logging.getLogger("promptengine")
    saved = (logger.handlers[:], logger.level, logger.propagate)
    yield
    logger.handlers, logger.level, logger.propagate = saved
