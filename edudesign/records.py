import re
import logging
from typing import Iterable, Literal, Optional

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger("records")

_KEY_VALUE = re.compile(r"^([A-Z][A-Z0-9_]*)\s*=(.*)$", re.DOTALL)
# Leading kind token: "SECTION, id=..." and the sloppier "SECTION id=..."
_KIND = re.compile(r"^([A-Za-z][A-Za-z0-9_]*)\s*(?:,|\s+(?=\w+\s*=))")
_ATTRIBUTE = re.compile(r'(\w+)\s*=\s*("([^"]*)"|[^,]+)')


class Record(BaseModel):
    """
    One parsed line: a record kind plus its attributes.

    ``KEY=VALUE`` lines (shape ``pair``) become a record of kind ``KEY`` with
    the single attribute ``value``. Comma-records (shape ``comma``) become a
    record of their leading kind token with every ``attr=value`` pair as an
    attribute.
    """
    model_config = ConfigDict(frozen=True)

    kind: str
    shape: Literal["pair", "comma"] = "comma"
    attrs: dict[str, str]
    line: str = ""
    duplicates: tuple[str, ...] = ()

    @property
    def value(self) -> str:
        return self.attrs.get("value", "")

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.attrs.get(name, default)


def _parse_comma_record(line: str) -> Optional[Record]:
    kind_match = _KIND.match(line)
    kind = kind_match.group(1).upper() if kind_match else ""
    body = line[kind_match.end():] if kind_match else line

    attrs: dict[str, str] = {}
    duplicates: list[str] = []
    for match in _ATTRIBUTE.finditer(body):
        name = match.group(1)
        value = match.group(3) if match.group(3) is not None else match.group(2)
        if name in attrs:
            duplicates.append(name)
            continue
        attrs[name] = value.strip()

    if not attrs:
        return None
    return Record(kind=kind, shape="comma", attrs=attrs, line=line, duplicates=tuple(duplicates))


def parse_line(line: str) -> Optional[Record]:
    """
    Parse a single record line; returns None for lines carrying no attribute.

    Never raises: a line that matches neither grammar is simply dropped by the
    caller.
    """
    line = (line or "").strip()
    if not line:
        return None

    key_value = _KEY_VALUE.match(line)
    if key_value:
        return Record(kind=key_value.group(1), shape="pair", attrs={"value": key_value.group(2).strip()}, line=line)

    return _parse_comma_record(line)


def parse_lines(lines: Iterable[str]) -> list[Record]:
    records = []
    for line in lines:
        record = parse_line(line)
        if record is None:
            logger.debug(f"[parse_lines] Dropping line without attributes: '{line[:80]}'")
            continue
        records.append(record)
    return records


def parse_pairs(text: str) -> dict[str, str]:
    """Parse a nested ``a=1,b=2`` value such as ``PAGE_STYLE``."""
    pairs: dict[str, str] = {}
    for chunk in (text or "").split(","):
        key, sep, value = chunk.partition("=")
        if sep and key.strip() and value.strip():
            pairs.setdefault(key.strip(), value.strip())
    return pairs
