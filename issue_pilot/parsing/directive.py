"""Issue body directive parsing.

An issue body is free prose, optionally followed by a trailer introduced by
a line containing only ``---``. The trailer is line-oriented ``key: value``
configuration::

    Add a quote from Frodo to the readme.
    ---
    base: develop
    files: README.md, docs/index.html

Recognized keys (case-insensitive):
    - ``base``: branch to start from and target with the pull request
    - ``files``: comma-separated repository paths; may be repeated

Anything else in the trailer is ignored. Windows line endings are accepted.
Parsing never fails.
"""

import re

from issue_pilot.models.domain import DEFAULT_BASE_BRANCH, Directive

DIRECTIVE_DELIMITER = "---"

_DELIMITER_LINE = re.compile(rf"^[ \t]*{re.escape(DIRECTIVE_DELIMITER)}[ \t]*$", re.MULTILINE)


def parse_directive(body: str) -> Directive:
    """Parse an issue body into a Directive.

    Args:
        body: Raw issue body

    Returns:
        Directive with trimmed instruction text. Without a trailer the base
        branch is ``main`` and the file list is empty.
    """
    text = (body or "").replace("\r\n", "\n")
    sections = _DELIMITER_LINE.split(text, maxsplit=1)
    directive = Directive(instruction_text=sections[0].strip())

    if len(sections) < 2:
        return directive

    for line in sections[1].splitlines():
        key, sep, value = line.partition(":")
        key = key.strip().lower()
        if not sep or not key:
            continue

        if key == "base":
            branch = value.strip()
            if branch:
                directive.base_branch = branch
        elif key == "files":
            directive.file_paths.extend(path.strip() for path in value.split(",") if path.strip())

    return directive


__all__ = ["DEFAULT_BASE_BRANCH", "DIRECTIVE_DELIMITER", "parse_directive"]
