from typing import ClassVar, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, SerializeAsAny
from pydantic.alias_generators import to_camel


#######################
# DOMAIN ENTITIES
#######################


class Entity(BaseModel):
    """Base for every validated record. Serialized with the camelCase names of the wire format."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    kind: ClassVar[str] = ""
    id: str


class Section(Entity):
    kind: ClassVar[str] = "SECTION"

    role: str = "content"
    grid: str = "1-12"
    height: str = "auto"
    gap_below: int = 64
    hint: str = ""


class Slot(Entity):
    kind: ClassVar[str] = "SLOT"

    section: str
    type: str = "paragraph"
    variant: Optional[str] = None
    grid_span: Optional[str] = None
    slot_ref: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None


class Component(Entity):
    kind: ClassVar[str] = "COMP"

    section: str
    type: str = "paragraph"
    variant: Optional[str] = None
    role: str = "content"
    grid_span: Optional[str] = None
    text: Optional[str] = None
    src: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    slot_ref: Optional[str] = None


class ImagePlacement(Entity):
    kind: ClassVar[str] = "IMG"

    filename: str
    section: str
    purpose: str = "diagram"
    place: str = "center"
    width: int = 520
    height: int = 320
    alt: str = ""
    caption: str = ""
    description: str = ""
    ai_prompt: str = ""
    style: str = ""


class StyleToken(Entity):
    kind: ClassVar[str] = "TOKEN"

    group: str
    value: str


class LayoutMeta(Entity):
    kind: ClassVar[str] = "LAYOUT"

    version: str = "wire.v1"
    viewport_mode: str = "scrollable"
    flow: str = ""
    page_style: dict[str, str] = Field(default_factory=dict)
    img_budget: int = 2


class LayoutSummary(Entity):
    kind: ClassVar[str] = "SUMMARY"

    sections: int = 0
    slots: int = 0
    image_slots: int = 0


class MotionSpec(Entity):
    kind: ClassVar[str] = "MOTION"

    id: str = "motion"
    animation_description: str = ""
    interaction_description: str = ""


#######################
# PIPELINE VALUES
#######################


class PageContext(BaseModel):
    """What the pipeline knows about the logical unit (page) a reply belongs to."""
    page_number: int = 1
    index: int = 0
    total: int = 1
    topic: str = ""
    layout_mode: Literal["scrollable", "fixed"] = "scrollable"
    sections: list[Section] = Field(default_factory=list, description="Sections produced by an earlier stage")

    @property
    def flow(self) -> str:
        from edudesign.fallback import compute_page_flow
        return compute_page_flow(self.index, self.total)


class ParseResult(BaseModel):
    stage: str = ""
    entities: list[SerializeAsAny[Entity]] = Field(default_factory=list)
    diagnostics: list[str] = Field(default_factory=list)
    used_fallback: bool = False
    ordinal: Optional[int] = None
    error: Optional[str] = None

    def of_kind(self, model: type[Entity]) -> list:
        return [entity for entity in self.entities if isinstance(entity, model)]

    def first(self, model: type[Entity]):
        found = self.of_kind(model)
        return found[0] if found else None


class Unit(BaseModel):
    ordinal: int = Field(description="Declared position of the unit in the batch, e.g. the page number")
    prompt: str
    context: PageContext = Field(default_factory=PageContext)


class Reply(BaseModel):
    """An already-received reply for the unit at ``ordinal``."""
    ordinal: int
    text: str
    context: PageContext = Field(default_factory=PageContext)


class Generation(BaseModel):
    text: str
