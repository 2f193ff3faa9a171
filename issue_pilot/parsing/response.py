"""Best-effort parsers for model completions.

The model is asked to answer in a loose text grammar::

    name: path/to/file.py
    contents:
    ```python
    ...
    ```
    name: other.txt
    contents: hello
    notes: what changed and why

and, for review comments, either ``!`` followed by a plain answer, or one
``name:``/``contents:`` pair followed by ``response:`` and the reply text.

Completions are not guaranteed to follow the grammar. Every parser here
degrades to fewer extracted files instead of raising, because a rejected
answer still costs a full round trip to the model. Segments that could not
be used are reported in ``ChangeResponse.malformed_segments``.

Markers match case-insensitively at the start of a word, so ``filename:``
is not mistaken for ``name:``.

The trailing ``notes:`` or ``response:`` marker is looked for only after the
last ``contents:`` segment, skipping a fenced block that opens it. A marker
at the start of a line wins over one in running text; otherwise the first
one found splits. Prose that mentions the marker again stays in the notes.

Escaped ``\\n`` and quotes are unescaped only in single-line contents.
Contents spanning several lines are kept verbatim, so escape sequences in
string literals of source files are not rewritten.
"""

import re
from dataclasses import dataclass, field

from issue_pilot.models.domain import (
    ChangeResponse,
    DiffCommentResponse,
    File,
    ResponseType,
)

ANSWER_SENTINEL = "!"
FENCE = "```"

NAME_MARKER = re.compile(r"\bname:", re.IGNORECASE)
CONTENTS_MARKER = re.compile(r"\bcontents:", re.IGNORECASE)
NOTES_MARKER = re.compile(r"\bnotes:", re.IGNORECASE)
RESPONSE_MARKER = re.compile(r"\bresponse:", re.IGNORECASE)

_ESCAPES = (("\\n", "\n"), ('\\"', '"'), ("\\'", "'"))


@dataclass
class ParsedFiles:
    files: list[File] = field(default_factory=list)
    malformed: list[str] = field(default_factory=list)


def parse_change_response(raw: str) -> ChangeResponse:
    """Parse a completion for a ChangeRequest.

    Everything after the trailing ``notes:`` marker becomes the notes; the
    text before it is split into files. A missing notes marker yields empty
    notes, and a files section without any ``name:`` marker yields no files.
    """
    files_section, notes = _split_trailer(raw or "", NOTES_MARKER)
    parsed = parse_files(files_section)

    return ChangeResponse(
        files=parsed.files,
        notes=notes,
        malformed_segments=parsed.malformed,
    )


def parse_diff_comment_response(raw: str) -> DiffCommentResponse:
    """Parse a completion for a DiffCommentRequest.

    A reply starting with ``!`` is a plain answer. Otherwise the text before
    the trailing ``response:`` marker is parsed for a file (only the first one is
    used) and the text after it is the answer. A reply that yields no file
    is treated as a plain answer.
    """
    text = (raw or "").strip()

    if text.startswith(ANSWER_SENTINEL):
        return DiffCommentResponse(type=ResponseType.ANSWER, answer=text[len(ANSWER_SENTINEL) :].strip())

    files_section, answer = _split_trailer(text, RESPONSE_MARKER)
    parsed = parse_files(files_section)

    if not parsed.files:
        return DiffCommentResponse(type=ResponseType.ANSWER, answer=answer or text)

    return DiffCommentResponse(
        type=ResponseType.CODE_CHANGE,
        answer=answer,
        file=parsed.files[0],
    )


def parse_files(section: str) -> ParsedFiles:
    """Split a files section into File objects.

    The text before the first ``name:`` marker is preamble and discarded.
    Each following chunk is split on its first ``contents:`` marker into a
    path and contents. Chunks without the marker, or with an empty path,
    are collected as malformed.
    """
    parsed = ParsedFiles()
    chunks = NAME_MARKER.split(section)

    for chunk in chunks[1:]:
        parts = CONTENTS_MARKER.split(chunk, maxsplit=1)
        if len(parts) < 2:
            parsed.malformed.append(chunk.strip())
            continue

        path = _clean_path(parts[0])
        if not path:
            parsed.malformed.append(chunk.strip())
            continue

        parsed.files.append(File(path=path, contents=clean_contents(parts[1])))

    return parsed


def clean_contents(text: str) -> str:
    """Unescape, strip code fences and trim a raw contents segment."""
    return _strip_fences(_unescape(text)).strip()


def render_change_response(response: ChangeResponse) -> str:
    """Human-readable summary of a ChangeResponse."""
    out = f"Notes:\n{response.notes}\n\nFiles:\n"
    for f in response.files:
        out += f"{f.path}:\n{FENCE}\n{f.contents}\n{FENCE}\n"
    if response.malformed_segments:
        out += f"\nDropped {len(response.malformed_segments)} malformed segment(s)\n"
    return out


def render_diff_comment_response(response: DiffCommentResponse) -> str:
    """Human-readable summary of a DiffCommentResponse."""
    file = response.file
    if file is None or response.type != ResponseType.CODE_CHANGE:
        return f"Type: Answer\n{response.answer}"

    return (
        "Type: Code Change\n"
        f"Response:\n{response.answer}\n\n"
        f"Files:\n{file.path}:\n{FENCE}\n{file.contents}\n{FENCE}\n"
    )


def _split_trailer(text: str, marker: re.Pattern[str]) -> tuple[str, str]:
    matches = list(marker.finditer(text, _trailer_search_start(text)))
    if not matches:
        return text, ""
    at_line_start = [m for m in matches if not text[text.rfind("\n", 0, m.start()) + 1 : m.start()].strip()]
    split = (at_line_start or matches)[0]
    return text[: split.start()], text[split.end() :].strip()


def _trailer_search_start(text: str) -> int:
    last_contents = None
    for last_contents in CONTENTS_MARKER.finditer(text):
        pass
    if last_contents is None:
        return 0

    start = last_contents.end()
    rest = text[start:]
    if not rest.lstrip().startswith(FENCE):
        return start

    fence_open = start + len(rest) - len(rest.lstrip())
    fence_close = text.find(FENCE, fence_open + len(FENCE))
    return fence_close + len(FENCE) if fence_close != -1 else start


def _unescape(text: str) -> str:
    # Contents that already span several lines are taken verbatim so that
    # escape sequences inside source code (e.g. "\n" in a string literal)
    # survive.
    if "\n" in text.strip():
        return text
    for escaped, plain in _ESCAPES:
        text = text.replace(escaped, plain)
    return text


def _strip_fences(text: str) -> str:
    text = text.strip()
    if text.startswith(FENCE):
        newline = text.find("\n")
        if newline == -1:
            return text.strip("`")
        text = text[newline + 1 :]
    if text.rstrip().endswith(FENCE):
        text = text.rstrip()[: -len(FENCE)]
    return text


def _clean_path(text: str) -> str:
    return text.strip().strip("`\"'").strip()
