from typing import Callable, Literal, Optional

from pydantic import BaseModel, ConfigDict

from edudesign import fallback
from edudesign.config import PipelineConfig
from edudesign.models import (
    Component,
    Entity,
    ImagePlacement,
    LayoutMeta,
    LayoutSummary,
    MotionSpec,
    PageContext,
    Section,
    Slot,
)
from edudesign.records import Record
from edudesign.schema import (
    COMPONENT_BLOCK,
    LAYOUT_BLOCK,
    SLOTS_BLOCK,
    VISUAL_IDENTITY_BLOCK,
    BlockSchema,
)
from edudesign.validate import parse_int

#######################
# STAGE DESCRIPTION
#######################


class BlockSpec(BaseModel):
    """
    One tagged block a stage reads.

    A missing ``required`` block sends the whole stage to its fallback. A
    missing optional block, or one that yields no ``primary`` entity, is
    rebuilt with ``derive`` when one is given.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    block: BlockSchema
    required: bool = True
    primary: Optional[type[Entity]] = None
    derive: Optional[Callable[[list[Entity]], str]] = None

    @property
    def tag(self) -> str:
        return self.block.tag


class Stage(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    protocol: Literal["line", "json"] = "line"
    blocks: tuple[BlockSpec, ...] = ()
    json_model: Optional[type[Entity]] = None
    fallback_text: Callable[[PageContext, Optional[PipelineConfig]], str]
    limits: Optional[Callable[[list[Entity]], dict[str, int]]] = None
    finish: Optional[Callable[[list[Entity], list[Record], list[str]], list[Entity]]] = None


#######################
# LAYOUT HOOKS
#######################


def _layout_limits(entities: list[Entity]) -> dict[str, int]:
    for entity in entities:
        if isinstance(entity, LayoutMeta):
            return {"image_slots": entity.img_budget}
    return {}


def _derive_slots(entities: list[Entity]) -> str:
    return fallback.slots_text([entity for entity in entities if isinstance(entity, Section)])


def _recompute_summary(entities: list[Entity], records: list[Record], diagnostics: list[str]) -> list[Entity]:
    """Replace the model's SUMMARY counts with counts of what was actually produced."""
    slots = [entity for entity in entities if isinstance(entity, Slot)]
    summary = LayoutSummary(
        id="summary",
        sections=sum(1 for entity in entities if isinstance(entity, Section)),
        slots=len(slots),
        image_slots=sum(1 for slot in slots if slot.type == "image"),
    )

    recomputed = {"sections": summary.sections, "slots": summary.slots, "imageSlots": summary.image_slots}
    for record in records:
        if record.kind != "SUMMARY":
            continue
        for name, actual in recomputed.items():
            claimed = parse_int(record.get(name))
            if claimed is not None and claimed != actual:
                diagnostics.append(f"SUMMARY: {name}={claimed} reported, {actual} produced")
        break

    return entities + [summary]


#######################
# COMPONENT PLAN HOOKS
#######################


def _check_image_consistency(entities: list[Entity], records: list[Record], diagnostics: list[str]) -> list[Entity]:
    """Every image component should point at an IMG line and every IMG line should be used."""
    image_components = [entity for entity in entities if isinstance(entity, Component) and entity.type == "image"]
    images = [entity for entity in entities if isinstance(entity, ImagePlacement)]
    filenames = {image.filename for image in images}
    sources = {component.src for component in image_components if component.src}

    if len(image_components) != len(images):
        diagnostics.append(f"IMG: {len(image_components)} image component(s) but {len(images)} IMG line(s)")
    for component in image_components:
        if component.src and component.src not in filenames:
            diagnostics.append(f"COMP {component.id}: src '{component.src}' has no IMG line")
    for image in images:
        if image_components and image.filename not in sources:
            diagnostics.append(f"IMG {image.filename}: no image component uses it")
    return entities


#######################
# STAGES
#######################

STAGES: dict[str, Stage] = {
    "visual_identity": Stage(
        name="visual_identity",
        blocks=(BlockSpec(block=VISUAL_IDENTITY_BLOCK),),
        fallback_text=fallback.visual_identity_text,
    ),
    "layout": Stage(
        name="layout",
        blocks=(
            BlockSpec(block=LAYOUT_BLOCK, primary=Section),
            BlockSpec(block=SLOTS_BLOCK, required=False, primary=Slot, derive=_derive_slots),
        ),
        fallback_text=fallback.layout_text,
        limits=_layout_limits,
        finish=_recompute_summary,
    ),
    "component_plan": Stage(
        name="component_plan",
        blocks=(BlockSpec(block=COMPONENT_BLOCK, primary=Component),),
        fallback_text=fallback.component_plan_text,
        finish=_check_image_consistency,
    ),
    "motion": Stage(
        name="motion",
        protocol="json",
        json_model=MotionSpec,
        fallback_text=fallback.motion_text,
    ),
}


def get_stage(name: str) -> Stage:
    """Raises KeyError for an unknown stage name."""
    return STAGES[name]
