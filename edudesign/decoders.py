import logging
from abc import ABC, abstractmethod
from typing import Optional

from pydantic import ValidationError

from edudesign.blocks import extract_all, split_records
from edudesign.config import PipelineConfig
from edudesign.fallback import minimal_sections
from edudesign.models import Entity, PageContext, ParseResult
from edudesign.normalize import normalize
from edudesign.records import Record, parse_lines
from edudesign.stages import BlockSpec, Stage, get_stage
from edudesign.validate import Known, Validator

logger = logging.getLogger("decoders")

FALLBACK_NOTE = "fallback used"


#######################
# DECODER INTERFACE
#######################


class Decoder(ABC):
    """
    Turns one raw reply into a ParseResult for a stage.

    ``decode`` never raises for malformed reply text: whatever cannot be
    recovered is replaced by the stage fallback.
    """

    def __init__(self, stage: Stage, config: Optional[PipelineConfig] = None):
        self.stage = stage
        self.config = config or PipelineConfig()

    @abstractmethod
    def _decode(self, text: str, context: PageContext) -> tuple[Optional[ParseResult], str]:
        """Decode prepared *text*; returns (None, reason) when the stage must fall back."""

    def prepare(self, raw_reply: str) -> str:
        return normalize(raw_reply)

    def decode(self, raw_reply: str, context: Optional[PageContext] = None) -> ParseResult:
        func_name = "decode"
        context = context or PageContext()
        result, reason = self._decode(self.prepare(raw_reply), context)
        if result is None:
            logger.warning(f"[{func_name}] {self.stage.name} page {context.page_number}: {reason}, using fallback")
            return self.fallback(context, reason)

        logger.info(
            f"[{func_name}] {self.stage.name} page {context.page_number}: "
            f"{len(result.entities)} entities, {len(result.diagnostics)} diagnostics"
        )
        return result

    def fallback(self, context: Optional[PageContext] = None, reason: str = "") -> ParseResult:
        """
        The stage's canonical minimal result for *context*.

        The canonical text goes through the same decoding path as model
        replies, so the only diagnostic on success is the fallback note.
        """
        func_name = "fallback"
        context = context or PageContext()
        if not context.sections:
            context = context.model_copy(update={"sections": minimal_sections()})

        result, failure = self._decode(self.prepare(self.stage.fallback_text(context, self.config)), context)
        if result is None:
            # Canonical text always decodes; reaching this is a schema/fallback mismatch
            logger.error(f"[{func_name}] {self.stage.name}: canonical text rejected ({failure})")
            raise RuntimeError(f"Fallback for stage '{self.stage.name}' does not decode: {failure}")

        note = f"{FALLBACK_NOTE}: {reason}" if reason else FALLBACK_NOTE
        result.diagnostics.insert(0, note)
        result.used_fallback = True
        return result


#######################
# LINE PROTOCOL
#######################


class LineProtocolDecoder(Decoder):
    """Decoder for ``BEGIN_<TAG> ... END_<TAG>`` blocks of line records."""

    def _decode(self, text: str, context: PageContext) -> tuple[Optional[ParseResult], str]:
        bodies = extract_all(text, [spec.tag for spec in self.stage.blocks])
        for spec in self.stage.blocks:
            if spec.required and bodies[spec.tag] is None:
                return None, f"BEGIN_{spec.tag} missing"

        known: Known = {}
        entities: list[Entity] = []
        diagnostics: list[str] = []
        all_records: list[Record] = []

        for spec in self.stage.blocks:
            body = bodies[spec.tag]
            derived = body is None
            if derived:
                if spec.derive is None:
                    continue
                body = spec.derive(entities)
                diagnostics.append(f"{spec.tag} missing, derived from parsed entities")

            records = parse_lines(split_records(body, spec.block.leaders))
            if spec.required and not any(spec.block.understands(record.kind) for record in records):
                return None, f"{spec.tag} holds no usable records"
            all_records.extend(records)

            produced, notes = self._validate_block(spec, records, context, known, entities)
            diagnostics.extend(notes)
            if spec.primary is not None and not _has_kind(produced, spec.primary):
                if spec.derive is None or derived:
                    return None, f"{spec.tag} yielded no {spec.primary.kind} entities"
                diagnostics.append(f"{spec.tag} yielded no {spec.primary.kind} entities, derived from parsed entities")
                records = parse_lines(split_records(spec.derive(entities), spec.block.leaders))
                all_records.extend(records)
                produced, notes = self._validate_block(spec, records, context, known, entities)
                diagnostics.extend(notes)

            entities.extend(produced)

        if self.stage.finish is not None:
            entities = self.stage.finish(entities, all_records, diagnostics)

        return ParseResult(stage=self.stage.name, entities=entities, diagnostics=diagnostics), ""

    def _validate_block(
        self,
        spec: BlockSpec,
        records: list[Record],
        context: PageContext,
        known: Known,
        entities: list[Entity],
    ) -> tuple[list[Entity], list[str]]:
        limits = self.stage.limits(entities) if self.stage.limits else None
        return Validator(spec.block, self.config).validate(records, context, known=known, limits=limits)


def _has_kind(entities: list[Entity], model: type[Entity]) -> bool:
    return any(isinstance(entity, model) for entity in entities)


#######################
# JSON
#######################


def first_json_object(text: str) -> Optional[str]:
    """The first balanced ``{...}`` object in *text*, ignoring braces inside strings."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for pos in range(start, len(text)):
            char = text[pos]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
            elif char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start:pos + 1]
        start = text.find("{", start + 1)
    return None


class JsonDecoder(Decoder):
    """Decoder for stages whose reply is a single JSON object."""

    def prepare(self, raw_reply: str) -> str:
        # Smart quotes inside JSON strings are content, not delimiters
        return raw_reply or ""

    def _decode(self, text: str, context: PageContext) -> tuple[Optional[ParseResult], str]:
        model = self.stage.json_model
        candidate = first_json_object(text)
        if candidate is None:
            return None, "no JSON object found"

        try:
            entity = model.model_validate_json(candidate)
        except ValidationError as e:
            return None, f"invalid JSON reply ({e.error_count()} error(s))"

        diagnostics: list[str] = []
        defaults = model.model_validate_json(self.stage.fallback_text(context, self.config))
        text_fields = [name for name in model.model_fields if name != "id"]
        updates = {}
        for name in text_fields:
            if not getattr(entity, name).strip():
                updates[name] = getattr(defaults, name)
                diagnostics.append(f"{model.kind}: {model.model_fields[name].alias or name} empty, default used")
        if len(updates) == len(text_fields):
            return None, "JSON reply has no usable field"
        if updates:
            entity = entity.model_copy(update=updates)

        return ParseResult(stage=self.stage.name, entities=[entity], diagnostics=diagnostics), ""


#######################
# DISPATCH
#######################

_DECODERS: dict[str, type[Decoder]] = {
    "line": LineProtocolDecoder,
    "json": JsonDecoder,
}


def get_decoder(stage_name: str, config: Optional[PipelineConfig] = None) -> Decoder:
    """Decoder for *stage_name*, chosen by the protocol the stage declares. Raises KeyError for unknown stages."""
    stage = get_stage(stage_name)
    return _DECODERS[stage.protocol](stage, config)
