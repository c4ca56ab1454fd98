"""Template compiler - turns a prompts directory into renderable snapshots."""

from promptengine.compiler.compiler import Compiler
from promptengine.compiler.renderer import Renderer
from promptengine.compiler.spec import TemplateSet

__all__ = ["Compiler", "Renderer", "TemplateSet"]
