import re
import logging
from typing import Any, Iterable, Optional

from edudesign.config import PipelineConfig
from edudesign.models import Entity, PageContext, StyleToken
from edudesign.records import Record, parse_pairs
from edudesign.schema import LAYOUT_BLOCK, BlockSchema, FieldSpec, PairSchema, RecordSchema

logger = logging.getLogger("validate")

_HEX6 = re.compile(r"^#?([0-9A-Fa-f]{6})$")
_HEX3 = re.compile(r"^#([0-9A-Fa-f]{3})$")
_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")

# id -> entity, per record kind
Known = dict[str, dict[str, Entity]]


#######################
# COERCION HELPERS
#######################


def normalize_color(value: Optional[str]) -> Optional[str]:
    """
    Bring a color into ``#RRGGBB`` form.

    ``#abc`` expands to ``#aabbcc`` keeping the case as written; a bare
    ``e9f4ff`` gets its ``#`` and is upper-cased. Anything else returns None.
    """
    if not value:
        return None
    value = value.strip().strip("'\"")

    short = _HEX3.match(value)
    if short:
        return "#" + "".join(char * 2 for char in short.group(1))

    full = _HEX6.match(value)
    if full:
        if value.startswith("#"):
            return value
        return "#" + full.group(1).upper()
    return None


def snap_to_allowed(value: int, allowed: Iterable[int]) -> int:
    """Nearest allowed value; a tie resolves to the lower one (72 -> 64 on {64, 80})."""
    return min(sorted(allowed), key=lambda candidate: abs(candidate - value))


def parse_int(value: Any) -> Optional[int]:
    """Leading integer of a value such as ``"70"`` or ``"20px"``; None when there is none."""
    if value is None:
        return None
    if isinstance(value, int):
        return value
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else None


def _match_enum(value: str, allowed: Iterable[str]) -> Optional[str]:
    lowered = value.strip().lower()
    for candidate in allowed:
        if str(candidate).lower() == lowered:
            return candidate
    return None


class _Dropped(Exception):
    """Raised inside the validator when a record cannot become an entity."""


#######################
# VALIDATOR
#######################


class Validator:
    """
    Coerces parsed records of one block into domain entities.

    Every policy violation is corrected to a safe value and noted in the
    diagnostics; ``validate`` never raises for anything found in the records.
    """

    def __init__(self, block: BlockSchema, config: Optional[PipelineConfig] = None):
        self.block = block
        self.config = config or PipelineConfig()

    def validate(
        self,
        records: Iterable[Record],
        context: Optional[PageContext] = None,
        known: Optional[Known] = None,
        limits: Optional[dict[str, int]] = None,
    ) -> tuple[list[Entity], list[str]]:
        """
        Args:
            records: Records of this block, in reply order.
            context: The logical unit the reply belongs to.
            known: Entities produced by earlier blocks of the same reply. It is
                updated in place with what this call produces. Sections from
                ``context.sections`` are added when absent.
            limits: Bounds overriding ``config.limits`` for this call.

        Returns:
            The entities (pair entities first, then records in reply order)
            and the diagnostics.
        """
        func_name = "validate"
        context = context or PageContext()
        known = known if known is not None else {}
        sections = known.setdefault("SECTION", {})
        for section in context.sections:
            sections.setdefault(section.id, section)
        bounds = {**self.config.limits, **(limits or {})}

        diagnostics: list[str] = []
        pair_records: list[Record] = []
        entities: list[Entity] = []
        produced: dict[str, set[str]] = {}
        counts: dict[str, int] = {}

        for record in records:
            if record.shape == "pair" and self.block.pairs and self._pair_spec(record.kind):
                pair_records.append(record)
                continue
            if record.kind in self.block.ignored:
                continue
            schema = self.block.record_schema(record.kind)
            if schema is None:
                diagnostics.append(f"{record.kind or 'record'}: unknown record kind ignored ('{record.line[:60]}')")
                continue

            entity = self._validate_record(record, schema, context, known, produced, bounds, counts, diagnostics)
            if entity is not None:
                entities.append(entity)
                known.setdefault(schema.kind, {})[entity.id] = entity

        pair_entities: list[Entity] = []
        if self.block.pairs:
            pair_entities = self._validate_pairs(pair_records, self.block.pairs, context, diagnostics)

        if diagnostics:
            logger.warning(f"[{func_name}] {self.block.tag}: {len(diagnostics)} correction(s) applied")
        return pair_entities + entities, diagnostics

    #######################
    # COMMA RECORDS
    #######################

    def _validate_record(
        self,
        record: Record,
        schema: RecordSchema,
        context: PageContext,
        known: Known,
        produced: dict[str, set[str]],
        bounds: dict[str, int],
        counts: dict[str, int],
        diagnostics: list[str],
    ) -> Optional[Entity]:
        entity_id = (record.get(schema.id_field) or "").strip()
        label = f"{schema.kind} {entity_id}" if entity_id else schema.kind
        notes: list[str] = []

        for name in record.duplicates:
            notes.append(f"duplicate attribute '{name}' ignored")

        try:
            if not entity_id:
                raise _Dropped(f"missing required field '{schema.id_field}', dropped")
            if entity_id in produced.get(schema.kind, set()):
                raise _Dropped(f"duplicate id '{entity_id}', dropped")

            values: dict[str, Any] = {}
            for spec in schema.fields:
                value = self._coerce(spec, record.get(spec.name), context, known, notes)
                if value is not None:
                    values[spec.target] = value
            if schema.post is not None:
                schema.post(values, known, notes)

            if schema.limit and self._counts_against_limit(schema, values):
                bound = bounds.get(schema.limit)
                seen = counts.get(schema.limit, 0)
                if bound is not None and seen >= bound:
                    raise _Dropped(f"beyond limit of {bound} ({schema.limit}), truncated")
                counts[schema.limit] = seen + 1

            values["id"] = entity_id
            entity = schema.entity.model_validate(values)
        except _Dropped as reason:
            diagnostics.extend(f"{label}: {note}" for note in notes)
            diagnostics.append(f"{label}: {reason}")
            return None

        produced.setdefault(schema.kind, set()).add(entity_id)
        diagnostics.extend(f"{label}: {note}" for note in notes)
        return entity

    @staticmethod
    def _counts_against_limit(schema: RecordSchema, values: dict[str, Any]) -> bool:
        if schema.limit_when is None:
            return True
        attr, expected = schema.limit_when
        return values.get(attr) == expected

    #######################
    # KEY=VALUE RECORDS
    #######################

    def _pair_spec(self, key: str) -> Optional[FieldSpec]:
        for spec in self.block.pairs.fields:
            if spec.name == key:
                return spec
        return None

    def _validate_pairs(
        self,
        records: list[Record],
        pairs: PairSchema,
        context: PageContext,
        diagnostics: list[str],
    ) -> list[Entity]:
        raw: dict[str, str] = {}
        for record in records:
            if record.kind in raw:
                diagnostics.append(f"{record.kind}: repeated key ignored")
                continue
            raw[record.kind] = record.value

        values: list[tuple[FieldSpec, Any]] = []
        for spec in pairs.fields:
            notes: list[str] = []
            given = raw.get(spec.name)
            if not (given or "").strip() and spec.required:
                notes.append(f"missing, default '{spec.default_for(context, self.config)}' used")
            value = self._coerce(spec, given, context, {}, notes)
            diagnostics.extend(f"{spec.name}: {note}" for note in notes)
            if value is not None:
                values.append((spec, value))

        if pairs.mode == "merge":
            data = {spec.target: value for spec, value in values}
            data["id"] = pairs.entity_id
            return [pairs.entity.model_validate(data)]

        tokens: list[Entity] = []
        for spec, value in values:
            if isinstance(value, list):
                value = ", ".join(value)
            elif isinstance(value, int):
                value = f"{value}{spec.unit}"
            tokens.append(StyleToken(id=spec.name, group=spec.group or "", value=str(value)))
        return tokens

    #######################
    # FIELDS
    #######################

    def _coerce(
        self,
        spec: FieldSpec,
        raw: Optional[str],
        context: PageContext,
        known: Known,
        notes: list[str],
    ) -> Any:
        name = spec.name
        default = spec.default_for(context, self.config)
        if raw is not None:
            raw = raw.strip()
        missing = raw is None or raw == ""

        if spec.type == "forced":
            if not missing and raw.lower() != str(default).lower():
                notes.append(f"{name} forced to {default} (was '{raw}')")
            return default

        if missing:
            if spec.required and default is None:
                raise _Dropped(f"missing required field '{name}', dropped")
            if spec.type == "pairs":
                return {}
            if spec.type == "list" and default is not None:
                return self._coerce_list(spec, default, notes)
            return default

        if spec.type == "text":
            if spec.max_length is not None and len(raw) > spec.max_length:
                notes.append(f"{name} cut to {spec.max_length} characters")
                return raw[:spec.max_length]
            return raw

        if spec.type == "enum":
            matched = _match_enum(raw, spec.allowed)
            if matched is None:
                if default is None:
                    notes.append(f"invalid {name} '{raw}' ignored")
                else:
                    notes.append(f"invalid {name} corrected ('{raw}' -> '{default}')")
                return default
            return matched

        if spec.type == "snap":
            number = parse_int(raw)
            if number is None:
                notes.append(f"{name} '{raw}' is not a number, using {default}")
                return default
            return snap_to_allowed(number, spec.allowed)

        if spec.type == "int":
            return self._coerce_int(spec, raw, default, notes)

        if spec.type == "color":
            color = normalize_color(raw)
            if color is None:
                replacement = default or self.config.brand_color
                notes.append(f"invalid color '{raw}' replaced with {replacement}")
                return replacement
            return color

        if spec.type == "ref":
            if raw not in known.get(spec.ref_kind, {}):
                raise _Dropped(f"{name} '{raw}' does not name a known {spec.ref_kind}, dropped")
            return raw

        if spec.type == "pairs":
            return parse_pairs(raw)

        if spec.type == "list":
            return self._coerce_list(spec, raw, notes)

        raise ValueError(f"Unknown field type: {spec.type}")

    @staticmethod
    def _coerce_int(spec: FieldSpec, raw: str, default: Any, notes: list[str]) -> Optional[int]:
        number = parse_int(raw)
        if number is None:
            notes.append(f"{spec.name} '{raw}' is not a number, using {default}")
            return default
        if spec.min is not None and number < spec.min:
            if spec.below_min == "default" and default is not None:
                notes.append(f"{spec.name} {number} below {spec.min}, using {default}")
                return default
            notes.append(f"{spec.name} {number} clamped to {spec.min}")
            return spec.min
        if spec.max is not None and number > spec.max:
            notes.append(f"{spec.name} {number} clamped to {spec.max}")
            return spec.max
        return number

    @staticmethod
    def _coerce_list(spec: FieldSpec, raw: str, notes: list[str]) -> list[str]:
        items = [item.strip() for item in raw.split(",") if item.strip()]
        if spec.max_items is not None and len(items) > spec.max_items:
            notes.append(f"kept first {spec.max_items} of {len(items)} items")
            items = items[:spec.max_items]
        return items


def validate(
    records: Iterable[Record],
    context: Optional[PageContext] = None,
    block: Optional[BlockSchema] = None,
    config: Optional[PipelineConfig] = None,
    known: Optional[Known] = None,
    limits: Optional[dict[str, int]] = None,
) -> tuple[list[Entity], list[str]]:
    """Validate records against *block* (the layout block when omitted)."""
    return Validator(block or LAYOUT_BLOCK, config).validate(records, context, known=known, limits=limits)
