import re
import logging
from typing import Iterable, Optional

logger = logging.getLogger("blocks")

# Tokens that always start a new record. Comma-record kinds carry their comma,
# KEY=VALUE kinds carry their "=".
DEFAULT_LEADERS: tuple[str, ...] = (
    "SECTION,",
    "SLOT,",
    "SUMMARY,",
    "COMP,",
    "IMG,",
    "VERSION=",
    "VIEWPORT_MODE=",
    "FLOW=",
    "PAGE_STYLE=",
    "IMG_BUDGET=",
)


def _marker(prefix: str, tag: str) -> re.Pattern:
    # BEGIN_S3 must not match BEGIN_S3_LAYOUT
    return re.compile(rf"{prefix}_{re.escape(tag)}(?![A-Za-z0-9_])")


def extract(text: str, tag: str) -> Optional[str]:
    """
    Return the body of the first ``BEGIN_<tag>`` block in *text*.

    A block whose ``END_<tag>`` marker is missing yields everything after the
    start marker, since replies are regularly cut off by token limits.

    Returns:
        The trimmed block body, or None when the start marker is absent.
    """
    if not text:
        return None

    begin = _marker("BEGIN", tag).search(text)
    if not begin:
        return None

    end = _marker("END", tag).search(text, begin.end())
    if end:
        return text[begin.end():end.start()].strip()

    logger.warning(f"[extract] END_{tag} missing, keeping {len(text) - begin.end()} trailing chars")
    return text[begin.end():].strip()


def extract_all(text: str, tags: Iterable[str]) -> dict[str, Optional[str]]:
    """Extract several independently tagged blocks from the same text."""
    return {tag: extract(text, tag) for tag in tags}


def _starts_leader(text: str, pos: int, leaders: tuple[str, ...]) -> bool:
    # SUBSECTION, or IMG_SECTION, is part of a longer token
    if pos > 0 and (text[pos - 1].isupper() or text[pos - 1] == "_"):
        return False
    return any(text.startswith(leader, pos) for leader in leaders)


def split_records(block_text: str, leaders: Iterable[str] = DEFAULT_LEADERS) -> list[str]:
    """
    Split a block into lines holding exactly one record each.

    Models sometimes glue records together (``VERSION=x SECTION, id=a, ...``).
    A line break is inserted before every record-leading token that is not
    inside a double-quoted value, then the text is split, trimmed and empty
    lines are dropped.
    """
    if not block_text:
        return []

    leaders = tuple(leaders)
    out: list[str] = []
    in_quotes = False
    for pos, char in enumerate(block_text):
        if char == "\n":
            in_quotes = False
        elif char == '"':
            in_quotes = not in_quotes
        elif not in_quotes and _starts_leader(block_text, pos, leaders):
            out.append("\n")
        out.append(char)

    return [line.strip() for line in "".join(out).split("\n") if line.strip()]
