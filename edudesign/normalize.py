import re

# Placeholder used while the full-width comma is in flight; must never occur in real replies.
FULL_WIDTH_COMMA_TOKEN = "__FULL_WIDTH_COMMA__"

_CODE_FENCE = re.compile(r"`{3,}[a-z0-9_+-]*")
_HTML_TAG = re.compile(r"<[^>\n]*>")
_TAB_RUN = re.compile(r"[\t\f]+")
_UPPER_UNIT = re.compile(r"(\d)(PX|PT)\b")


def _strip_markup(text: str) -> str:
    # Removing a tag can glue backticks into a new fence, so repeat until stable.
    while True:
        stripped = _HTML_TAG.sub("", _CODE_FENCE.sub("", text))
        if stripped == text:
            return stripped
        text = stripped


def normalize(text: str) -> str:
    """
    Clean a raw model reply before any structural parsing.

    The function is total: it never raises and always returns a string. Line
    breaks are preserved one-for-one (CRLF and lone CR become LF), so block and
    record positions computed on the result map to lines of the reply.

    Args:
        text: Raw reply text as returned by the text-generation collaborator.

    Returns:
        The normalized text.
    """
    if not text:
        return ""

    normalized = text.replace("\r\n", "\n").replace("\r", "\n")

    normalized = normalized.replace("，", FULL_WIDTH_COMMA_TOKEN)

    normalized = normalized.replace("“", '"').replace("”", '"')
    normalized = normalized.replace("‘", "'").replace("’", "'")

    normalized = _strip_markup(normalized)

    normalized = normalized.replace("：", ":")
    normalized = _TAB_RUN.sub(" ", normalized)

    normalized = _UPPER_UNIT.sub(lambda m: m.group(1) + m.group(2).lower(), normalized)

    normalized = normalized.replace(FULL_WIDTH_COMMA_TOKEN, ",")
    return normalized
