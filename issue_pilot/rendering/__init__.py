"""Prompt rendering for model requests."""

from issue_pilot.rendering.engine import PromptRenderer, build_diff_comment_prompt, build_prompt

__all__ = ["PromptRenderer", "build_diff_comment_prompt", "build_prompt"]
