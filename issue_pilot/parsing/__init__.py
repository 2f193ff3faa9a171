"""Text grammars shared with issue authors and the language model.

Key Exports:
    parse_directive: Issue body -> Directive
    parse_change_response: Model completion -> ChangeResponse
    parse_diff_comment_response: Model completion -> DiffCommentResponse
"""

from issue_pilot.parsing.directive import DIRECTIVE_DELIMITER, parse_directive
from issue_pilot.parsing.response import (
    ANSWER_SENTINEL,
    parse_change_response,
    parse_diff_comment_response,
    render_change_response,
    render_diff_comment_response,
)

__all__ = [
    "ANSWER_SENTINEL",
    "DIRECTIVE_DELIMITER",
    "parse_change_response",
    "parse_diff_comment_response",
    "parse_directive",
    "render_change_response",
    "render_diff_comment_response",
]
