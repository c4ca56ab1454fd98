"""Shared error handling for the prompt-engine CLI."""

import sys
from typing import NoReturn

import typer

from promptengine.exceptions import PromptEngineError, TemplateNotFoundError


def exit_with_error(message: str, exit_code: int = 1) -> NoReturn:
    """Exit the program with an error message."""
    typer.echo(f"Error: {message}", err=True)
    sys.exit(exit_code)


def handle_error(error: Exception) -> NoReturn:
    """Report an error and exit with status 1."""
    if isinstance(error, TemplateNotFoundError) and error.available:
        exit_with_error(f"{error}\nAvailable: {', '.join(error.available)}")
    if isinstance(error, PromptEngineError):
        exit_with_error(str(error))
    # Unexpected error
    typer.echo(f"Unexpected error: {error}", err=True)
    sys.exit(1)
