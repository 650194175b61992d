"""Mention grammar and pure text replacement for accepted suggestions."""

from __future__ import annotations

from dataclasses import dataclass
import re

MENTION_KEYWORDS: tuple[str, ...] = ("problems", "terminal", "git-changes")

# @/path, @scheme://x, @<7-40 hex>, or a keyword; trailing punctuation is not
# part of the token when followed by whitespace or end of text.
MENTION_PATTERN = re.compile(
    r"@((?:/|\w+://)\S+?|[a-f0-9]{7,40}\b|(?:"
    + "|".join(re.escape(k) for k in MENTION_KEYWORDS)
    + r")\b)(?=[.,;:!?]?(?:\s|$))"
)


@dataclass(frozen=True)
class InsertResult:
    text: str
    cursor: int


@dataclass(frozen=True)
class MentionSpan:
    start: int
    end: int
    value: str


def find_mentions(text: str) -> list[MentionSpan]:
    """Return every well-formed mention in ``text`` in order."""
    return [
        MentionSpan(start=match.start(), end=match.end(), value=match.group(1))
        for match in MENTION_PATTERN.finditer(text)
    ]


def _trailing_token_end(text: str, start: int) -> int:
    end = start
    while end < len(text) and not text[end].isspace():
        end += 1
    return end


def insert_mention(text: str, cursor: int, value: str) -> InsertResult:
    """Replace the mention being typed at ``cursor`` with ``@value ``.

    The replaced span runs from the nearest ``@`` before the cursor through
    the cursor and any non-whitespace directly after it.  Without an ``@``
    the mention is inserted at the cursor.
    """
    if not 0 <= cursor <= len(text):
        raise ValueError(f"cursor {cursor} outside text of length {len(text)}")
    token = f"@{value} "
    anchor = text.rfind("@", 0, cursor)
    if anchor == -1:
        return InsertResult(text=text[:cursor] + token + text[cursor:], cursor=cursor + len(token))
    end = _trailing_token_end(text, cursor)
    return InsertResult(
        text=text[:anchor] + token + text[end:],
        cursor=anchor + len(token),
    )


def insert_slash_command(text: str, cursor: int, command: str) -> InsertResult:
    """Replace the whole current line with ``command ``."""
    if not 0 <= cursor <= len(text):
        raise ValueError(f"cursor {cursor} outside text of length {len(text)}")
    line_start = text.rfind("\n", 0, cursor) + 1
    line_end = text.find("\n", cursor)
    if line_end == -1:
        line_end = len(text)
    token = f"{command} "
    return InsertResult(
        text=text[:line_start] + token + text[line_end:],
        cursor=line_start + len(token),
    )


def insert_paths(text: str, cursor: int, paths: list[str]) -> InsertResult:
    """Insert ``@path`` mentions for dropped paths at ``cursor``.

    A separating space is added before the mentions when the preceding
    character is not whitespace, and after them unless whitespace already
    follows, so the cursor never lands inside a new mention.
    """
    if not 0 <= cursor <= len(text):
        raise ValueError(f"cursor {cursor} outside text of length {len(text)}")
    if not paths:
        return InsertResult(text=text, cursor=cursor)
    before, after = text[:cursor], text[cursor:]
    mentions = " ".join(f"@{path}" for path in paths)
    space_before = " " if before and not before[-1].isspace() else ""
    space_after = "" if after and after[0].isspace() else " "
    inserted = space_before + mentions + space_after
    return InsertResult(text=before + inserted + after, cursor=cursor + len(inserted))
