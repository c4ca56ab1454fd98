"""Prompt Engine CLI Main Entry Point

Operator tooling over a prompts directory of Jinja2 templates.

Usage:
    prompt-engine list [--detailed]                 # List templates
    prompt-engine validate <name> | --all           # Compile and trial-render
    prompt-engine render <name> [-a key=value]...   # Render to stdout
    prompt-engine watch                             # Live-reload and log publishes
    prompt-engine -p path/to/prompts <command>      # Use another directory
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import typer

from promptengine._version import __version__
from promptengine.cli.errors import exit_with_error, handle_error
from promptengine.cli.utils import get_config, setup_logging
from promptengine.compiler.compiler import Compiler
from promptengine.compiler.renderer import MissingPolicy, Renderer
from promptengine.compiler.spec import TemplateSet
from promptengine.config import EngineConfig
from promptengine.exceptions import PromptEngineError
from promptengine.reload.coordinator import ReloadCoordinator


@dataclass
class CliState:
    prompts_dir: Optional[Path] = None
    config_path: Optional[Path] = None
    verbose: bool = False

    def config(self) -> EngineConfig:
        return get_config(self.config_path, self.prompts_dir)


typer_app = typer.Typer(add_completion=False)


@typer_app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    prompts: Optional[Path] = typer.Option(
        None, "-p", "--prompts", help="Directory containing templates."
    ),
    config_path: Optional[Path] = typer.Option(
        None, "-c", "--config", help="Path to prompt-engine.yaml."
    ),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose output."),
    version: bool = typer.Option(False, "--version", help="Show version and exit."),
) -> None:
    """Prompt template engine with partials and live reload."""
    if version:
        typer.echo(f"prompt-engine {__version__}")
        raise typer.Exit()

    setup_logging(verbose)
    ctx.obj = CliState(prompts_dir=prompts, config_path=config_path, verbose=verbose)

    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def _load(state: CliState) -> Tuple[EngineConfig, TemplateSet]:
    try:
        config = state.config()
        return config, Compiler(config).build()
    except PromptEngineError as e:
        handle_error(e)


def parse_arguments(pairs: Optional[List[str]]) -> Dict[str, str]:
    """Parse repeated ``key=value`` options into a mapping."""
    arguments: Dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            exit_with_error(f"Invalid argument '{pair}', expected key=value")
        arguments[key] = value
    return arguments


@typer_app.command("list")
def list_command(
    ctx: typer.Context,
    detailed: bool = typer.Option(
        False, "--detailed", help="Show arguments and errors of each template."
    ),
) -> None:
    """List available templates."""
    state: CliState = ctx.obj
    config, template_set = _load(state)

    names = template_set.names()
    if not names:
        typer.echo(f"No templates found in {config.prompts_dir}")
        return

    typer.echo(f"Available templates in {config.prompts_dir}:")
    for name in names:
        error = template_set.errors[name]
        if detailed:
            if error is not None:
                typer.echo(f"  ✗ {name} (error: {error})")
                continue
            args = template_set.arguments[name]
            if args:
                typer.echo(f"  ✓ {name} ({len(args)} variables: {', '.join(args)})")
            else:
                typer.echo(f"  ✓ {name} (no variables)")
        else:
            description = template_set.description_for(name)
            if error is not None:
                typer.echo(f"  {name} [failed]")
            elif description:
                typer.echo(f"  {name:<20} - {description}")
            else:
                typer.echo(f"  {name}")

    if state.verbose and template_set.partials:
        typer.echo("\nAvailable partials:")
        for partial in template_set.partials:
            typer.echo(f"  {partial}")


@typer_app.command("validate")
def validate_command(
    ctx: typer.Context,
    name: Optional[str] = typer.Argument(None, help="Template to validate."),
    all_templates: bool = typer.Option(False, "--all", help="Validate all templates."),
) -> None:
    """Validate template syntax, partials and execution."""
    state: CliState = ctx.obj
    if not all_templates and name is None:
        exit_with_error(
            "template name is required, or use --all to validate all templates"
        )

    config, template_set = _load(state)
    renderer = Renderer(template_set, date_format=config.date_format)
    try:
        results = template_set.validate(
            None if all_templates else name, builtins=renderer.builtins()
        )
    except PromptEngineError as e:
        handle_error(e)

    has_errors = False
    for result in results:
        if not result.ok:
            has_errors = True
            typer.echo(f"✗ {result.name} - Error: {result.error}")
        elif state.verbose and result.arguments:
            typer.echo(
                f"✓ {result.name} - Valid (variables: {', '.join(result.arguments)})"
            )
        else:
            typer.echo(f"✓ {result.name} - Valid")

    if has_errors:
        exit_with_error("some templates have validation errors")


@typer_app.command("render")
def render_command(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Template to render."),
    arg: Optional[List[str]] = typer.Option(
        None, "-a", "--arg", help="Argument value as key=value (repeatable)."
    ),
    show_vars: bool = typer.Option(
        False, "--show-vars", help="Show template variables before rendering."
    ),
    example: bool = typer.Option(
        False, "--example", help="Fill missing arguments with example values."
    ),
) -> None:
    """Render a template to stdout.

    Arguments without a value come from the environment variable of the
    upper-cased argument name, else a placeholder (or example value).
    """
    state: CliState = ctx.obj
    arguments = parse_arguments(arg)
    config, template_set = _load(state)

    policy = MissingPolicy.EXAMPLE if example else MissingPolicy.PLACEHOLDER
    renderer = Renderer(template_set, date_format=config.date_format, missing=policy)

    try:
        if show_vars:
            info = renderer.describe(name)
            typer.echo(f"Template variables for {info.name}:", err=True)
            if not info.arguments:
                typer.echo("  No variables required", err=True)
            for argument in info.arguments:
                env_var = info.env_var(argument)
                if argument in arguments:
                    source = "from --arg"
                elif info.env_defaults[argument]:
                    source = f"from env: {env_var}"
                else:
                    source = f"missing, env: {env_var}"
                typer.echo(f"  {argument} ({source})", err=True)
            typer.echo("Built-in: date\n", err=True)

        text = renderer.render(name, arguments)
    except PromptEngineError as e:
        handle_error(e)

    typer.echo(text, nl=False)


def _block_until_interrupted(poll: float = 1.0) -> None:
    while True:
        time.sleep(poll)


@typer_app.command("watch")
def watch_command(ctx: typer.Context) -> None:
    """Keep a live template set and report every publish until interrupted."""
    state: CliState = ctx.obj
    try:
        config = state.config()
    except PromptEngineError as e:
        handle_error(e)

    def report(template_set: TemplateSet) -> None:
        failed = template_set.failed()
        typer.echo(
            f"v{template_set.version}: {len(template_set.ready())} ready, "
            f"{len(failed)} failed"
        )
        for name, error in failed.items():
            typer.echo(f"  ✗ {name}: {error}")

    coordinator = ReloadCoordinator(config)
    coordinator.add_listener(report)
    try:
        with coordinator:
            typer.echo(f"Watching {config.prompts_dir} (Ctrl+C to stop)")
            _block_until_interrupted()
    except KeyboardInterrupt:
        typer.echo("Stopped")
    except PromptEngineError as e:
        handle_error(e)


def app() -> None:
    """Entry point for the CLI."""
    typer_app()


if __name__ == "__main__":
    app()
