"""Line-oriented go.mod editor.

The file is kept as its list of lines and every edit rewrites whole lines,
so untouched declarations keep their exact bytes, comments and alignment
included. The go toolchain does the heavy lifting; this only fixes up
``// indirect`` markers after it has run.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

_INDIRECT = "indirect"


@dataclass
class _Entry:
    index: int  # line number (0-based)
    verb: str  # require | replace | exclude | retract | module | go | ...
    tokens: list[str]  # tokens after the verb
    comment: str | None  # text after "//", None when the line has no comment
    in_block: bool


@dataclass
class _Block:
    verb: str
    open: int
    close: int


def _unquote(token: str) -> str:
    if len(token) >= 2 and token[0] == token[-1] and token[0] in "\"`":
        return token[1:-1]
    return token


def _split_comment(line: str) -> tuple[str, str | None]:
    code, sep, comment = line.partition("//")
    return code, (comment.strip() if sep else None)


def _is_indirect(comment: str | None) -> bool:
    if comment is None:
        return False
    return comment == _INDIRECT or comment.startswith(_INDIRECT + ";")


def _comment_with_indirect(comment: str | None, indirect: bool) -> str | None:
    """Add or remove the ``indirect`` marker, keeping any other comment text."""
    if _is_indirect(comment):
        if indirect:
            return comment
        rest = (comment or "")[len(_INDIRECT) :].lstrip(";").strip()
        return rest or None
    if indirect:
        return f"{_INDIRECT}; {comment}" if comment else _INDIRECT
    return comment


class ModFile:
    """Ordered line structure over a go.mod body supporting localized edits."""

    def __init__(self, text: str) -> None:
        self._lines = text.splitlines(keepends=True)

    def render(self) -> str:
        return "".join(self._lines)

    def set_indirect(self, path: str, indirect: bool) -> None:
        for entry in self._require_entries(path):
            comment = _comment_with_indirect(entry.comment, indirect)
            if comment != entry.comment:
                self._rewrite_require(entry, entry.tokens[1], comment)

    # ── internals ────────────────────────────────────────────────────────

    def _require_entries(self, path: str) -> list[_Entry]:
        return [
            e
            for e in self._entries()
            if e.verb == "require" and len(e.tokens) >= 2 and _unquote(e.tokens[0]) == path
        ]

    def _scan(self) -> Iterator[_Entry | _Block]:
        block: _Block | None = None
        for index, raw in enumerate(self._lines):
            code, comment = _split_comment(raw.rstrip("\r\n"))
            tokens = code.split()
            if block is not None:
                if tokens[:1] == [")"]:
                    block.close = index
                    yield block
                    block = None
                elif tokens:
                    yield _Entry(index, block.verb, tokens, comment, True)
                continue
            if not tokens:
                continue
            if tokens[1:] == ["("]:
                block = _Block(tokens[0], index, -1)
                continue
            yield _Entry(index, tokens[0], tokens[1:], comment, False)

    def _entries(self) -> list[_Entry]:
        return [item for item in self._scan() if isinstance(item, _Entry)]

    def _rewrite_require(self, entry: _Entry, version: str, comment: str | None) -> None:
        raw = self._lines[entry.index]
        body = raw.rstrip("\r\n")
        newline = raw[len(body) :]
        indent = body[: len(body) - len(body.lstrip())]
        prefix = "" if entry.in_block else "require "
        suffix = f" // {comment}" if comment else ""
        self._lines[entry.index] = f"{indent}{prefix}{entry.tokens[0]} {version}{suffix}{newline}"
