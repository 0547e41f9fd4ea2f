from typing import Any, Callable, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from edudesign.config import BRAND_COLOR, PipelineConfig
from edudesign.models import (
    Component,
    Entity,
    ImagePlacement,
    LayoutMeta,
    PageContext,
    Section,
    Slot,
    StyleToken,
)

FieldType = Literal["text", "enum", "int", "snap", "color", "ref", "forced", "pairs", "list"]

#######################
# SCHEMA DESCRIPTION
#######################


class FieldSpec(BaseModel):
    """
    Coercion rule for one attribute.

    ``name`` is the attribute (or ``KEY`` for pair records) as written by the
    model; ``attr`` is the wire name of the entity field it fills and defaults
    to ``name``.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    type: FieldType = "text"
    attr: Optional[str] = None
    allowed: tuple = ()
    default: Any = None
    default_factory: Optional[Callable[[PageContext], Any]] = None
    min: Optional[int] = None
    max: Optional[int] = None
    below_min: Literal["clamp", "default"] = "clamp"
    max_length: Optional[int] = None
    max_items: Optional[int] = None
    required: bool = False
    ref_kind: Optional[str] = None
    group: Optional[str] = None
    unit: str = ""
    # PipelineConfig attribute that overrides `default`
    config_default: Optional[str] = None

    @property
    def target(self) -> str:
        return self.attr or self.name

    def default_for(self, context: PageContext, config: Optional[PipelineConfig] = None) -> Any:
        if self.config_default is not None and config is not None:
            return getattr(config, self.config_default)
        if self.default_factory is not None:
            return self.default_factory(context)
        return self.default


class RecordSchema(BaseModel):
    """How comma-records of one kind become entities."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: str
    entity: type[Entity]
    fields: tuple[FieldSpec, ...]
    id_field: str = "id"
    limit: Optional[str] = Field(default=None, description="Key in the config/context limits holding the bound")
    limit_when: Optional[tuple[str, str]] = Field(default=None, description="Only entities with this attr value count against the bound")
    post: Optional[Callable[..., None]] = Field(default=None, description="Cross-field hook: post(values, known, notes)")


class PairSchema(BaseModel):
    """
    How ``KEY=VALUE`` records of a block become entities.

    ``merge`` folds every key into one entity with id ``entity_id``; ``tokens``
    turns every key into its own StyleToken.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    mode: Literal["merge", "tokens"] = "merge"
    entity: type[Entity] = StyleToken
    entity_id: str = ""
    fields: tuple[FieldSpec, ...]


class BlockSchema(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    tag: str
    records: tuple[RecordSchema, ...] = ()
    pairs: Optional[PairSchema] = None
    ignored: tuple[str, ...] = ()
    leaders: tuple[str, ...] = ()

    def record_schema(self, kind: str) -> Optional[RecordSchema]:
        for schema in self.records:
            if schema.kind == kind:
                return schema
        return None

    def understands(self, kind: str) -> bool:
        if self.record_schema(kind) is not None:
            return True
        return self.pairs is not None and any(spec.name == kind for spec in self.pairs.fields)


#######################
# LAYOUT (S3)
#######################

GRIDS = ("1-12", "8+4", "2-11", "3-10")
ROLES = ("intro", "keyMessage", "content", "compare", "bridge")
GAPS = (64, 80, 96)
SLOT_TYPES = ("heading", "paragraph", "card", "image", "caption")
GRID_SPANS = ("left", "right")
SLOT_REFS = ("IMG1", "IMG2", "IMG3")
VIEWPORT_MODES = ("scrollable", "fixed")

SECTION_SCHEMA = RecordSchema(
    kind="SECTION",
    entity=Section,
    fields=(
        FieldSpec(name="id", required=True),
        FieldSpec(name="role", type="enum", allowed=ROLES, default="content"),
        FieldSpec(name="grid", type="enum", allowed=GRIDS, default="1-12"),
        FieldSpec(name="height", type="forced", default="auto"),
        FieldSpec(name="gapBelow", type="snap", allowed=GAPS, default=64),
        FieldSpec(name="hint", default="", max_length=120),
    ),
)

SLOT_SCHEMA = RecordSchema(
    kind="SLOT",
    entity=Slot,
    fields=(
        FieldSpec(name="id", required=True),
        FieldSpec(name="section", type="ref", ref_kind="SECTION", required=True),
        FieldSpec(name="type", type="enum", allowed=SLOT_TYPES, default="paragraph"),
        FieldSpec(name="variant"),
        FieldSpec(name="gridSpan", type="enum", allowed=GRID_SPANS),
        FieldSpec(name="slotRef", type="enum", allowed=SLOT_REFS),
        FieldSpec(name="width", type="int", min=1),
        FieldSpec(name="height", type="int", min=1),
    ),
    limit="image_slots",
    limit_when=("type", "image"),
)

LAYOUT_PAIRS = PairSchema(
    mode="merge",
    entity=LayoutMeta,
    entity_id="layout",
    fields=(
        FieldSpec(name="VERSION", attr="version", default="wire.v1"),
        FieldSpec(name="VIEWPORT_MODE", attr="viewportMode", type="enum", allowed=VIEWPORT_MODES,
                  default_factory=lambda context: context.layout_mode),
        FieldSpec(name="FLOW", attr="flow", default_factory=lambda context: context.flow),
        FieldSpec(name="PAGE_STYLE", attr="pageStyle", type="pairs"),
        FieldSpec(name="IMG_BUDGET", attr="imgBudget", type="int", min=0, max=3, default=2),
    ),
)

LAYOUT_BLOCK = BlockSchema(
    tag="S3_LAYOUT",
    records=(SECTION_SCHEMA,),
    pairs=LAYOUT_PAIRS,
    ignored=("SUMMARY",),
    leaders=("SECTION,", "SUMMARY,", "VERSION=", "VIEWPORT_MODE=", "FLOW=", "PAGE_STYLE=", "IMG_BUDGET="),
)

SLOTS_BLOCK = BlockSchema(
    tag="S3_SLOTS",
    records=(SLOT_SCHEMA,),
    ignored=("SUMMARY",),
    leaders=("SLOT,", "SUMMARY,"),
)

#######################
# COMPONENT PLAN (S4)
#######################

COMPONENT_TYPES = ("heading", "paragraph", "card", "image")
IMAGE_PURPOSES = ("diagram", "illustration", "comparison")
IMAGE_PLACES = ("left", "right", "center")


def _span_in_split_section(values: dict, known: dict[str, dict[str, Entity]], notes: list[str]) -> None:
    section = known.get("SECTION", {}).get(values.get("section"))
    if section is not None and section.grid == "8+4" and not values.get("gridSpan"):
        values["gridSpan"] = "left"
        notes.append("gridSpan missing in 8+4 section, set to 'left'")


COMPONENT_SCHEMA = RecordSchema(
    kind="COMP",
    entity=Component,
    fields=(
        FieldSpec(name="id", required=True),
        FieldSpec(name="type", type="enum", allowed=COMPONENT_TYPES, default="paragraph", required=True),
        FieldSpec(name="variant"),
        FieldSpec(name="section", type="ref", ref_kind="SECTION", required=True),
        FieldSpec(name="role", default="content"),
        FieldSpec(name="gridSpan", type="enum", allowed=GRID_SPANS),
        FieldSpec(name="text", max_length=600),
        FieldSpec(name="src"),
        FieldSpec(name="width", type="int", min=1),
        FieldSpec(name="height", type="int", min=1),
        FieldSpec(name="slotRef", type="enum", allowed=SLOT_REFS),
    ),
    post=_span_in_split_section,
)

IMAGE_SCHEMA = RecordSchema(
    kind="IMG",
    entity=ImagePlacement,
    id_field="filename",
    fields=(
        FieldSpec(name="filename", required=True),
        FieldSpec(name="section", type="ref", ref_kind="SECTION", required=True),
        FieldSpec(name="purpose", type="enum", allowed=IMAGE_PURPOSES, default="diagram"),
        FieldSpec(name="place", type="enum", allowed=IMAGE_PLACES, default="center"),
        # values of 100 and below are relative units or typos, not pixels
        FieldSpec(name="width", type="int", min=100, below_min="default", default=520),
        FieldSpec(name="height", type="int", min=100, below_min="default", default=320),
        FieldSpec(name="alt", default="", max_length=80),
        FieldSpec(name="caption", default="", max_length=80),
        FieldSpec(name="description", default="Image description"),
        FieldSpec(name="aiPrompt", default="Create a relevant educational image"),
        FieldSpec(name="style", default="modern educational"),
    ),
    limit="IMG",
)

COMPONENT_BLOCK = BlockSchema(
    tag="S4",
    records=(COMPONENT_SCHEMA, IMAGE_SCHEMA),
    ignored=("VERSION",),
    leaders=("COMP,", "IMG,", "VERSION="),
)

#######################
# VISUAL IDENTITY (S2)
#######################

DEFAULT_MOOD = "clear, friendly, curious, calm"
DEFAULT_COMPONENT_STYLE = "Rounded corners of 20-28px with low shadows; information grouped in chips; body readability first"

VISUAL_IDENTITY_PAIRS = PairSchema(
    mode="tokens",
    fields=(
        FieldSpec(name="MOOD", type="list", max_items=4, default=DEFAULT_MOOD, required=True, group="mood"),
        FieldSpec(name="COLOR_PRIMARY", type="color", default=BRAND_COLOR, config_default="brand_color", required=True, group="color"),
        FieldSpec(name="COLOR_SECONDARY", type="color", default="#E9F4FF", required=True, group="color"),
        FieldSpec(name="COLOR_ACCENT", type="color", default="#FFCC00", required=True, group="color"),
        FieldSpec(name="COLOR_TEXT", type="color", default="#0F172A", required=True, group="color"),
        FieldSpec(name="COLOR_BACKGROUND", type="color", default="#FFFFFF", required=True, group="color"),
        FieldSpec(name="FONT_HEADING", default="Pretendard", required=True, group="font"),
        FieldSpec(name="FONT_BODY", default="Noto Sans KR", required=True, group="font"),
        # 18pt is the smallest size readable on a classroom screen
        FieldSpec(name="BASE_SIZE", type="int", min=18, max=28, default=20, unit="pt", required=True, group="size"),
        FieldSpec(name="COMPONENT_STYLE", default=DEFAULT_COMPONENT_STYLE, max_length=600, required=True, group="style"),
    ),
)

VISUAL_IDENTITY_BLOCK = BlockSchema(
    tag="S2",
    pairs=VISUAL_IDENTITY_PAIRS,
    ignored=("VERSION",),
    leaders=tuple(f"{spec.name}=" for spec in VISUAL_IDENTITY_PAIRS.fields) + ("VERSION=",),
)
