"""Tests for the line-protocol and JSON decoders."""

from conftest import LAYOUT_REPLY

from edudesign.decoders import JsonDecoder, LineProtocolDecoder, first_json_object, get_decoder
from edudesign.models import (
    Component,
    ImagePlacement,
    LayoutMeta,
    LayoutSummary,
    MotionSpec,
    PageContext,
    Section,
    Slot,
)

COMPONENT_REPLY = """BEGIN_S4
VERSION=plan.v1
COMP, id=c1, type=heading, variant=H1, section=secA, role=intro, text="Welcome, learners"
COMP, id=c2, type=paragraph, variant=Body, section=secB, role=content, text="Body"
COMP, id=c3, type=image, section=secB, gridSpan=right, src=image_1.png
COMP, id=c4, type=paragraph, section=secZ, text="orphan"
IMG, filename=image_1.png, section=secB, purpose=diagram, place=right, width=50, height=320
IMG, filename=image_2.png, section=secB, purpose=chart, place=left
IMG, filename=image_3.png, section=secA
END_S4"""


class TestDispatch:
    def test_protocols(self) -> None:
        assert isinstance(get_decoder("layout"), LineProtocolDecoder)
        assert isinstance(get_decoder("visual_identity"), LineProtocolDecoder)
        assert isinstance(get_decoder("component_plan"), LineProtocolDecoder)
        assert isinstance(get_decoder("motion"), JsonDecoder)


class TestLayoutDecoder:
    def test_clean_reply(self) -> None:
        result = get_decoder("layout").decode(LAYOUT_REPLY, PageContext())

        assert result.used_fallback is False
        assert result.diagnostics == []
        assert [section.id for section in result.of_kind(Section)] == ["secA", "secB"]
        assert [slot.id for slot in result.of_kind(Slot)] == ["secA-h1", "secB-left", "secB-right"]
        meta = result.first(LayoutMeta)
        assert meta.page_style["pattern"] == "zigzag"
        assert result.of_kind(Section)[0].hint == "Title, subtitle"

    def test_concatenated_and_full_width_records(self) -> None:
        reply = (
            "BEGIN_S3_LAYOUT\n"
            "VERSION=wire.v1 SECTION，id=secA，role=intro SECTION, id=secB, role=bridge, grid=3-10\n"
            "END_S3_LAYOUT"
        )
        result = get_decoder("layout").decode(reply)
        assert [section.id for section in result.of_kind(Section)] == ["secA", "secB"]

    def test_truncated_reply(self) -> None:
        reply = LAYOUT_REPLY.split("SUMMARY")[0]
        result = get_decoder("layout").decode(reply)
        assert result.used_fallback is False
        assert len(result.of_kind(Slot)) == 3

    def test_missing_slots_are_derived(self) -> None:
        reply = (
            "BEGIN_S3_LAYOUT\n"
            "SECTION, id=secA, role=intro\n"
            "SECTION, id=secC, role=content, grid=8+4\n"
            "END_S3_LAYOUT"
        )
        result = get_decoder("layout").decode(reply)
        assert result.used_fallback is False
        assert [slot.id for slot in result.of_kind(Slot)] == ["secA-h1", "secC-right"]
        assert result.diagnostics == ["S3_SLOTS missing, derived from parsed entities"]

    def test_empty_slots_block_is_derived(self) -> None:
        reply = (
            "BEGIN_S3_LAYOUT\n"
            "SECTION, id=secA, role=intro\n"
            "SECTION, id=secC, role=content, grid=8+4\n"
            "END_S3_LAYOUT\n"
            "BEGIN_S3_SLOTS\n"
            "END_S3_SLOTS"
        )
        result = get_decoder("layout").decode(reply)
        assert result.used_fallback is False
        assert [slot.id for slot in result.of_kind(Slot)] == ["secA-h1", "secC-right"]
        assert result.diagnostics == ["S3_SLOTS yielded no SLOT entities, derived from parsed entities"]

    def test_slots_all_dropped_are_derived(self) -> None:
        reply = (
            "BEGIN_S3_LAYOUT\n"
            "SECTION, id=secA, role=intro\n"
            "END_S3_LAYOUT\n"
            "BEGIN_S3_SLOTS\n"
            "SLOT, id=s1, section=secQ, type=heading\n"
            "END_S3_SLOTS"
        )
        result = get_decoder("layout").decode(reply)
        assert [slot.id for slot in result.of_kind(Slot)] == ["secA-h1"]
        assert result.diagnostics[-1] == "S3_SLOTS yielded no SLOT entities, derived from parsed entities"
        assert any("s1" in note and "secQ" in note for note in result.diagnostics)

    def test_summary_is_recomputed(self) -> None:
        reply = LAYOUT_REPLY.replace("slots=3", "slots=7")
        result = get_decoder("layout").decode(reply)
        summary = result.first(LayoutSummary)
        assert summary.slots == 3
        assert summary.sections == 2
        assert summary.image_slots == 1
        assert result.diagnostics == ["SUMMARY: slots=7 reported, 3 produced"]

    def test_image_budget_bounds_image_slots(self) -> None:
        reply = LAYOUT_REPLY.replace("IMG_BUDGET=2", "IMG_BUDGET=0")
        result = get_decoder("layout").decode(reply)
        assert [slot.id for slot in result.of_kind(Slot)] == ["secA-h1", "secB-left"]
        assert any("secB-right" in note and "truncated" in note for note in result.diagnostics)

    def test_referential_integrity(self) -> None:
        reply = LAYOUT_REPLY.replace("SLOT, id=secB-left, section=secB", "SLOT, id=secB-left, section=secQ")
        result = get_decoder("layout").decode(reply)
        section_ids = {section.id for section in result.of_kind(Section)}
        assert all(slot.section in section_ids for slot in result.of_kind(Slot))
        assert "secB-left" not in {slot.id for slot in result.of_kind(Slot)}


class TestComponentPlanDecoder:
    def context(self) -> PageContext:
        return PageContext(sections=[Section(id="secA", role="intro"), Section(id="secB", role="content", grid="8+4")])

    def test_reply(self) -> None:
        result = get_decoder("component_plan").decode(COMPONENT_REPLY, self.context())
        assert result.used_fallback is False

        components = {component.id: component for component in result.of_kind(Component)}
        assert list(components) == ["c1", "c2", "c3"]
        assert components["c1"].text == "Welcome, learners"
        assert components["c2"].grid_span == "left"

        images = result.of_kind(ImagePlacement)
        assert [image.filename for image in images] == ["image_1.png", "image_2.png"]
        assert images[0].width == 520
        assert images[1].purpose == "diagram"

        notes = result.diagnostics
        assert any(note.startswith("COMP c4") and "secZ" in note for note in notes)
        assert any(note.startswith("IMG image_3.png") and "truncated" in note for note in notes)
        assert "IMG: 1 image component(s) but 2 IMG line(s)" in notes
        assert "IMG image_2.png: no image component uses it" in notes

    def test_only_version_falls_back(self) -> None:
        result = get_decoder("component_plan").decode("BEGIN_S4\nVERSION=plan.v1\nEND_S4", self.context())
        assert result.used_fallback is True


class TestJsonDecoder:
    def test_first_json_object(self) -> None:
        assert first_json_object('x {"a": "}"} {"b": 1}') == '{"a": "}"}'
        assert first_json_object('{"a": {"b": 1}} tail') == '{"a": {"b": 1}}'
        assert first_json_object('{"a": 1') is None
        assert first_json_object("none") is None

    def test_reply_with_prose_and_fence(self) -> None:
        reply = 'Sure!\n```json\n{"animationDescription": "Cards slide in", "interactionDescription": "Hover “lifts” cards"}\n```'
        result = get_decoder("motion").decode(reply)
        motion = result.first(MotionSpec)
        assert motion.animation_description == "Cards slide in"
        assert motion.interaction_description == "Hover “lifts” cards"
        assert result.diagnostics == []
        assert result.used_fallback is False

    def test_empty_field_gets_default(self) -> None:
        result = get_decoder("motion").decode('{"animationDescription": "", "interactionDescription": "Tap to flip"}')
        motion = result.first(MotionSpec)
        assert motion.animation_description
        assert motion.interaction_description == "Tap to flip"
        assert result.diagnostics == ["MOTION: animationDescription empty, default used"]

    def test_wrong_types_fall_back(self) -> None:
        result = get_decoder("motion").decode('{"animationDescription": 5, "interactionDescription": []}')
        assert result.used_fallback is True
        assert result.diagnostics[0].startswith("fallback used: invalid JSON reply")

    def test_unbalanced_json_falls_back(self) -> None:
        result = get_decoder("motion").decode('{"animationDescription": "x"')
        assert result.used_fallback is True
