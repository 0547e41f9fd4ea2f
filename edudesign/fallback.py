import json
import logging
from typing import Optional

from edudesign.config import PipelineConfig
from edudesign.models import Entity, PageContext, Section
from edudesign.normalize import normalize
from edudesign.schema import VISUAL_IDENTITY_PAIRS

logger = logging.getLogger("fallback")

# id, role, grid, gapBelow of the canonical five-section page
MINIMAL_SECTIONS: tuple[tuple[str, str, str, int], ...] = (
    ("secA", "intro", "1-12", 64),
    ("secB", "keyMessage", "2-11", 64),
    ("secC", "content", "8+4", 96),
    ("secD", "compare", "1-12", 64),
    ("secE", "bridge", "3-10", 80),
)

DEFAULT_PAGE_STYLE = "pattern=baseline,motif=plain,rhythm=balanced,asymmetry=moderate"
DEFAULT_ANIMATION = "Sections fade in from 12px below as they enter the viewport (300ms ease-out); no looping motion."
DEFAULT_INTERACTION = "Cards lift slightly on hover and show a focus ring on keyboard focus; images open a caption on click."


def compute_page_flow(index: int, total: int) -> str:
    """
    Canonical flow label for the page at *index* of *total*.

    The first page introduces, the last one bridges to what comes next, and
    pages in between walk through key message, content and comparison.
    """
    if index <= 0:
        return "A:intro"
    if index >= total - 1:
        return "E:bridge"
    if index == 1:
        return "B:keyMessage"
    if index == 2:
        return "C:content"
    return "D:compare"


def minimal_sections() -> list[Section]:
    return [
        Section(id=section_id, role=role, grid=grid, gap_below=gap)
        for section_id, role, grid, gap in MINIMAL_SECTIONS
    ]


def _quoted(text: str, limit: int = 80) -> str:
    # normalize() turns smart quotes into ASCII ones
    return '"' + normalize(text or "").replace('"', "'").replace("\n", " ")[:limit] + '"'


#######################
# CANONICAL TEXT
#######################


def slots_text(sections: list[Section]) -> str:
    """Slot records for *sections*: a heading in the first one and an image beside each content 8+4 section."""
    lines = []
    if sections:
        first = sections[0].id
        lines.append(f"SLOT, id={first}-h1, section={first}, type=heading, variant=H1")

    image_number = 0
    for section in sections:
        if section.role == "content" and section.grid == "8+4" and image_number < 3:
            image_number += 1
            lines.append(
                f"SLOT, id={section.id}-right, section={section.id}, type=image, variant=diagram, "
                f"gridSpan=right, slotRef=IMG{image_number}, width=520, height=320"
            )
    return "\n".join(lines)


def layout_text(context: PageContext, config: Optional[PipelineConfig] = None) -> str:
    """A complete, policy-compliant layout reply for *context*."""
    sections = minimal_sections()
    topic = context.topic or f"Page {context.page_number}"

    section_lines = []
    for section in sections:
        line = f"SECTION, id={section.id}, role={section.role}, grid={section.grid}, height=auto, gapBelow={section.gap_below}"
        if section.role == "intro":
            line += f", hint={_quoted(topic)}"
        section_lines.append(line)

    slot_lines = slots_text(sections)
    slot_count = slot_lines.count("SLOT,")
    image_count = slot_lines.count("type=image")

    return "\n".join([
        "BEGIN_S3_LAYOUT",
        "VERSION=wire.v1",
        f"VIEWPORT_MODE={context.layout_mode}",
        f"FLOW={context.flow}",
        f"PAGE_STYLE={DEFAULT_PAGE_STYLE}",
        f"IMG_BUDGET={image_count}",
        *section_lines,
        "END_S3_LAYOUT",
        "BEGIN_S3_SLOTS",
        slot_lines,
        f"SUMMARY, sections={len(sections)}, slots={slot_count}, imageSlots={image_count}",
        "END_S3_SLOTS",
    ])


def component_plan_text(context: PageContext, config: Optional[PipelineConfig] = None) -> str:
    """One component per known section, plus an image for the first content 8+4 section."""
    sections = context.sections or minimal_sections()
    topic = context.topic or f"Page {context.page_number}"

    lines = ["BEGIN_S4", "VERSION=plan.v1"]
    image_added = False
    for number, section in enumerate(sections, start=1):
        comp_id = f"c{number}"
        split = section.grid == "8+4"
        span = ", gridSpan=left" if split else ""

        if section.role == "intro":
            lines.append(f"COMP, id={comp_id}, type=heading, variant=H1, section={section.id}, role=intro{span}, text={_quoted(topic)}")
        elif section.role == "keyMessage":
            lines.append(f"COMP, id={comp_id}, type=card, variant=none, section={section.id}, role=content{span}, text={_quoted('Key message: ' + topic)}")
        else:
            lines.append(f"COMP, id={comp_id}, type=paragraph, variant=Body, section={section.id}, role=content{span}, text={_quoted(topic + ' explained step by step')}")

        if split and section.role == "content" and not image_added:
            image_added = True
            lines.append(f"COMP, id={comp_id}-img, type=image, variant=none, section={section.id}, role=content, gridSpan=right, src=image_1.png, slotRef=IMG1")
            lines.append(
                f"IMG, filename=image_1.png, section={section.id}, purpose=diagram, place=right, width=520, height=320, "
                f"alt={_quoted('Diagram of ' + topic)}, caption={_quoted(topic)}"
            )

    lines.append("END_S4")
    return "\n".join(lines)


def visual_identity_text(context: PageContext, config: Optional[PipelineConfig] = None) -> str:
    lines = ["BEGIN_S2", "VERSION=vi.v1"]
    for spec in VISUAL_IDENTITY_PAIRS.fields:
        lines.append(f"{spec.name}={spec.default_for(context, config)}")
    lines.append("END_S2")
    return "\n".join(lines)


def motion_text(context: PageContext, config: Optional[PipelineConfig] = None) -> str:
    return json.dumps({"animationDescription": DEFAULT_ANIMATION, "interactionDescription": DEFAULT_INTERACTION})


def synthesize_minimal(
    stage: str,
    context: Optional[PageContext] = None,
    config: Optional[PipelineConfig] = None,
) -> list[Entity]:
    """
    Minimal but complete entity set for *stage*.

    The canonical text is decoded by the stage's own decoder, so the result is
    exactly what the validator accepts for model replies.
    """
    from edudesign.decoders import get_decoder

    return get_decoder(stage, config).fallback(context or PageContext(), "requested").entities
