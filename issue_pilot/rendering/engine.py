"""Sandboxed Jinja2 rendering for model prompts.

Prompts are plain-text Jinja2 templates shipped with the package under
``issue_pilot/templates/prompts``. The environment is sandboxed and uses
StrictUndefined, so a template referring to a missing field fails loudly
instead of sending the model a prompt with holes in it.

Key Exports:
    PromptRenderer: Renders ChangeRequest / DiffCommentRequest prompts.
    build_prompt: Module-level shortcut using the packaged templates.

Example:
    >>> from issue_pilot.rendering.engine import PromptRenderer
    >>> renderer = PromptRenderer()
    >>> prompt = renderer.code_change_prompt(request)
"""

from dataclasses import asdict
from pathlib import Path
from typing import Any, cast

from jinja2 import FileSystemLoader, StrictUndefined, TemplateNotFound
from jinja2.sandbox import SandboxedEnvironment

from issue_pilot.models.domain import ChangeRequest, DiffCommentRequest
from issue_pilot.parsing.response import ANSWER_SENTINEL

CODE_CHANGE_TEMPLATE = "prompts/code_change_request.j2"
DIFF_COMMENT_TEMPLATE = "prompts/diff_comment_request.j2"


class PromptRenderer:
    """Render prompts from the packaged (or a custom) template directory.

    Attributes:
        template_dir: Resolved path to the template directory.
        env: The SandboxedEnvironment instance.
    """

    def __init__(self, template_dir: Path | None = None) -> None:
        """Initialize the renderer.

        Args:
            template_dir: Root directory for templates. If None, uses the
                package's built-in templates directory.

        Raises:
            ValueError: If template_dir doesn't exist or isn't a directory.
        """
        if template_dir is None:
            template_dir = Path(__file__).parent.parent / "templates"

        self.template_dir = template_dir.resolve()

        if not self.template_dir.exists():
            raise ValueError(f"Template directory does not exist: {self.template_dir}")
        if not self.template_dir.is_dir():
            raise ValueError(f"Template path is not a directory: {self.template_dir}")

        self.env = SandboxedEnvironment(
            loader=FileSystemLoader(str(self.template_dir)),
            undefined=StrictUndefined,
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )
        self.env.globals.update({"answer_sentinel": ANSWER_SENTINEL})

    def validate_template_path(self, template_path: str) -> Path:
        """Ensure a template path resolves inside the template directory.

        Raises:
            ValueError: If path escapes the template directory.
            TemplateNotFound: If the template file doesn't exist.
        """
        requested_path = (self.template_dir / template_path).resolve()

        try:
            requested_path.relative_to(self.template_dir)
        except ValueError as e:
            raise ValueError(f"Template path escapes template directory: {template_path}") from e

        if not requested_path.exists():
            raise TemplateNotFound(template_path)

        return requested_path

    def render(self, template_path: str, context: dict[str, Any]) -> str:
        """Render a template with the given context.

        Raises:
            TemplateNotFound: If template doesn't exist.
            jinja2.UndefinedError: If the template uses undefined variables.
        """
        self.validate_template_path(template_path)
        template = self.env.get_template(template_path)
        return cast(str, template.render(**context))

    def code_change_prompt(self, request: ChangeRequest) -> str:
        """Render the prompt for an issue-level change request."""
        return self.render(CODE_CHANGE_TEMPLATE, asdict(request))

    def diff_comment_prompt(self, request: DiffCommentRequest) -> str:
        """Render the prompt for a single review comment."""
        return self.render(DIFF_COMMENT_TEMPLATE, asdict(request))


_default_renderer: PromptRenderer | None = None


def _renderer() -> PromptRenderer:
    global _default_renderer
    if _default_renderer is None:
        _default_renderer = PromptRenderer()
    return _default_renderer


def build_prompt(request: ChangeRequest) -> str:
    """Render a ChangeRequest with the packaged template."""
    return _renderer().code_change_prompt(request)


def build_diff_comment_prompt(request: DiffCommentRequest) -> str:
    """Render a DiffCommentRequest with the packaged template."""
    return _renderer().diff_comment_prompt(request)
