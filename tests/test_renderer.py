"""Tests for rendering templates of a TemplateSet."""

from datetime import datetime

import pytest

from promptengine.compiler import Compiler, Renderer
from promptengine.compiler.renderer import MissingPolicy, RenderRequest, fill_missing
from promptengine.exceptions import ExecutionError, TemplateNotFoundError

FIXED = datetime(2024, 1, 2, 3, 4, 5)


@pytest.fixture
def template_set(write_prompts, config):
    write_prompts(
        {
            "greeting.tmpl": "{# Greets a person #}\nHello {{ name }}!\nHave a great day!",
            "dated.tmpl": "Generated {{ date }} for {{ name }}",
            "conditional_greeting.tmpl": (
                "Hi {{ name }}{% if show_extra_message %}, nice to see you{% endif %}."
            ),
            "multiple_partials.tmpl": (
                '{% include "_header" %}\n'
                "{% partial '_signature' with dict(who=author) %}"
            ),
            "_header.tmpl": "# {{ title }}",
            "_signature.tmpl": "-- {{ who }}",
            "divide.tmpl": "{{ 10 / divisor }}",
            "profile.tmpl": "Contact: {{ user.email }}",
        }
    )
    return Compiler(config).build()


def make_renderer(template_set, **kwargs):
    kwargs.setdefault("environ", {})
    kwargs.setdefault("clock", lambda: FIXED)
    return Renderer(template_set, **kwargs)


def test_fill_missing():
    assert fill_missing("name", MissingPolicy.EMPTY) == ""
    assert fill_missing("name", MissingPolicy.PLACEHOLDER) == "{{ name }}"
    assert fill_missing("name", MissingPolicy.EXAMPLE) == "example_name"


def test_render_with_arguments(template_set):
    text = make_renderer(template_set).render("greeting", {"name": "John"})
    assert text == "\nHello John!\nHave a great day!"


def test_environment_supplies_defaults(template_set):
    renderer = make_renderer(template_set, environ={"NAME": "Ann"})
    assert renderer.render("greeting").endswith("Hello Ann!\nHave a great day!")


def test_caller_arguments_win_over_environment(template_set):
    renderer = make_renderer(template_set, environ={"NAME": "Ann"})
    text = renderer.render("greeting.tmpl", {"name": "Bob"})
    assert "Hello Bob!" in text


def test_missing_policies(template_set):
    renderer = make_renderer(template_set)
    assert "Hello !" in renderer.render("greeting")
    assert "Hello {{ name }}!" in renderer.render(
        "greeting", missing=MissingPolicy.PLACEHOLDER
    )
    assert "Hello example_name!" in renderer.render(
        "greeting", missing=MissingPolicy.EXAMPLE
    )


def test_date_builtin(template_set):
    text = make_renderer(template_set).render("dated", {"name": "x"})
    assert text == "Generated 2024-01-02 03:04:05 for x"


def test_date_format_is_configurable(template_set):
    renderer = make_renderer(template_set, date_format="%Y/%m/%d")
    assert renderer.render("dated", {"name": "x"}) == "Generated 2024/01/02 for x"


def test_conditional(template_set):
    renderer = make_renderer(template_set)
    assert (
        renderer.render("conditional_greeting", {"name": "Jo", "show_extra_message": "true"})
        == "Hi Jo, nice to see you."
    )
    assert renderer.render("conditional_greeting", {"name": "Jo"}) == "Hi Jo."


def test_multiple_partials(template_set):
    renderer = make_renderer(template_set)
    text = renderer.render("multiple_partials", {"title": "Report", "author": "Kim"})
    assert text == "# Report\n-- Kim"
    assert template_set.arguments_for("multiple_partials") == ("author", "title", "who")


def test_execution_error_is_wrapped(template_set):
    renderer = make_renderer(template_set)
    with pytest.raises(ExecutionError) as exc_info:
        renderer.render("divide", {"divisor": 0})
    assert exc_info.value.name == "divide"
    assert isinstance(exc_info.value.cause, ZeroDivisionError)


def test_unknown_template(template_set):
    renderer = make_renderer(template_set)
    with pytest.raises(TemplateNotFoundError) as exc_info:
        renderer.render("nonexistent")
    assert "greeting" in exc_info.value.available


def test_partial_cannot_be_rendered_directly(template_set):
    with pytest.raises(TemplateNotFoundError):
        make_renderer(template_set).render("_header")


def test_describe(template_set):
    renderer = make_renderer(template_set, environ={"NAME": "Ann"})
    info = renderer.describe("greeting")
    assert info.description == "Greets a person"
    assert info.arguments == ("name",)
    assert info.env_defaults == {"name": True}


def test_list_templates(template_set):
    names = [info.name for info in make_renderer(template_set).list_templates()]
    assert names == sorted(names)
    assert "greeting" in names
    assert "_header" not in names


def test_handle_success(template_set):
    response = make_renderer(template_set).handle(
        RenderRequest(template_name="greeting", arguments={"name": "John"})
    )
    assert response.ok
    assert "Hello John!" in response.text


def test_handle_failure(template_set):
    response = make_renderer(template_set).handle(
        RenderRequest(template_name="missing")
    )
    assert not response.ok
    assert response.text is None
    assert response.error.kind == "TemplateNotFoundError"
    assert response.error.template == "missing"


def test_absent_field_is_an_execution_error(template_set):
    """Accessing a field the supplied data lacks fails without partial output."""
    renderer = make_renderer(template_set)
    with pytest.raises(ExecutionError) as exc_info:
        renderer.render("profile", {"user": {"name": "Kim"}})
    assert exc_info.value.name == "profile"


def test_inline_greeting_renders_exactly(write_prompts, config):
    write_prompts({"hello.tmpl": "Hello {{name}}!"})
    template_set = Compiler(config).build()

    assert make_renderer(template_set).render("hello", {"name": "John"}) == "Hello John!"
    with_env = make_renderer(template_set, environ={"NAME": "Ann"})
    assert with_env.render("hello") == "Hello Ann!"
    assert with_env.render("hello", {"name": "John"}) == "Hello John!"


def test_builtins_reach_partials_with_explicit_mapping(write_prompts, config):
    """A partial given an explicit map still sees the date built-in."""
    write_prompts(
        {
            "signed.tmpl": "{% partial '_stamp' with dict(who=author) %}",
            "_stamp.tmpl": "-- {{ who }} at {{ date }}",
        }
    )
    template_set = Compiler(config).build()

    assert template_set.arguments_for("signed") == ("author", "who")
    text = make_renderer(template_set).render("signed", {"author": "Kim"})
    assert text == "-- Kim at 2024-01-02 03:04:05"
