"""Tests for loading template sources from a prompts directory."""

import pytest

from promptengine.compiler.loader import load_sources, normalize_name
from promptengine.compiler.spec import TemplateKind
from promptengine.exceptions import DirectoryUnreadableError, DuplicateTemplateError


def test_normalize_name():
    assert normalize_name("greeting.tmpl", [".tmpl"]) == "greeting"
    assert normalize_name("greeting", [".tmpl"]) == "greeting"
    assert normalize_name(".tmpl", [".tmpl"]) == ".tmpl"


def test_loads_mains_and_partials(write_prompts):
    directory = write_prompts(
        {
            "greeting.tmpl": "Hello {{ name }}",
            "_header.tmpl": "# {{ title }}",
            "notes.md": "not a template",
        }
    )
    (directory / "nested.tmpl").mkdir()

    sources = load_sources(directory)

    assert set(sources) == {"greeting", "_header"}
    assert sources["greeting"].kind is TemplateKind.MAIN
    assert sources["_header"].is_partial
    assert sources["greeting"].raw_text == "Hello {{ name }}"
    assert sources["greeting"].error is None


def test_custom_prefix_and_extensions(write_prompts):
    directory = write_prompts({"partial_box.txt": "[box]", "main.txt": "m"})

    sources = load_sources(directory, extensions=[".txt"], partial_prefix="partial_")

    assert sources["partial_box"].is_partial
    assert not sources["main"].is_partial


def test_duplicate_names_keep_first_file(write_prompts):
    directory = write_prompts({"a.tmpl": "first", "a.txt": "second"})

    sources = load_sources(directory, extensions=[".tmpl", ".txt"])

    entry = sources["a"]
    assert entry.raw_text == "first"
    assert isinstance(entry.error, DuplicateTemplateError)
    assert [p.name for p in entry.error.paths] == ["a.tmpl", "a.txt"]


def test_undecodable_file_is_scoped(prompts_dir):
    (prompts_dir / "bad.tmpl").write_bytes(b"\xff\xfe\xfa")
    (prompts_dir / "good.tmpl").write_text("ok")

    sources = load_sources(prompts_dir)

    assert isinstance(sources["bad"].error, UnicodeDecodeError)
    assert sources["good"].error is None


def test_missing_directory_raises(tmp_path):
    with pytest.raises(DirectoryUnreadableError) as exc_info:
        load_sources(tmp_path / "missing")
    assert exc_info.value.path == tmp_path / "missing"


def test_empty_directory(prompts_dir):
    assert load_sources(prompts_dir) == {}
