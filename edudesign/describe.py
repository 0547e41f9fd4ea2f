from edudesign.models import LayoutMeta, ParseResult, Section, Slot

_ROLE_SENTENCES = {
    "intro": "the title and subtitle are emphasized.",
    "keyMessage": "the key message is delivered as a card.",
    "content": "the main learning content is laid out step by step.",
    "compare": "comparison points are presented side by side.",
    "bridge": "a link to the next lesson is provided.",
}


def _position(index: int, total: int) -> str:
    if index == 0:
        return "At the top of the page"
    if index == total - 1:
        return "At the bottom"
    return "In the middle"


def _arrangement(section: Section) -> str:
    hint = section.hint or "the content"
    if "+" in section.grid:
        return f"a split left/right layout holds {hint}"
    if section.grid == "1-12":
        return f"{hint} spans the full width"
    return f"{hint} is centered"


def plain_description(topic: str, layout_mode: str = "scrollable") -> str:
    """Short description used when no section could be parsed."""
    mode = (
        "The scrollable layout presents the key sections one after another."
        if layout_mode == "scrollable"
        else "All key information fits on a single screen."
    )
    return (
        f'An intro area at the top introduces "{topic}", followed by the key message, '
        f"the main content, a short comparison and a summary. {mode}"
    )


def describe_layout(result: ParseResult, topic: str = "") -> str:
    """
    Render a parsed layout as a few English sentences, one per section,
    followed by the image count and the viewport mode.
    """
    sections = result.of_kind(Section)
    meta = result.first(LayoutMeta)
    layout_mode = meta.viewport_mode if meta else "scrollable"
    if not sections:
        return plain_description(topic, layout_mode)

    sentences = []
    for index, section in enumerate(sections):
        role_sentence = _ROLE_SENTENCES.get(section.role, "the core content is delivered.")
        sentences.append(f"{_position(index, len(sections))}, {_arrangement(section)} and {role_sentence}")

    images = [slot for slot in result.of_kind(Slot) if slot.type == "image"]
    if images:
        sentences.append(f"{len(images)} image(s) support visual learning.")

    if layout_mode == "scrollable":
        sentences.append("The layout scrolls, leaving enough room for the content.")
    else:
        sentences.append("Everything is arranged within a fixed viewport.")
    return " ".join(sentences)
