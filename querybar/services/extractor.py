import re
from typing import Literal

from querybar.core.config import settings
from querybar.core.errors import MalformedLogMessage
from querybar.schemas.log_entry import LogEntry

# Order of fields in a logged message
FIELD_ORDER = ("time", "mem", "method", "sql")

# Leading number, the way a numeric cast reads "0.0021 sec"
_NUMBER_RE = re.compile(r"^\s*[-+]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?")

FieldPart = Literal["key", "value", "field"]
FIELD_PARTS = ("key", "value", "field")


def _to_float(raw: str) -> float:
    m = _NUMBER_RE.match(raw)
    if not m:
        return 0.0
    try:
        return float(m.group(0))
    except ValueError:
        return 0.0


class FieldExtractor:
    """
    Reads the fields back out of a delimited query log message.

    A message looks like ``time:::0.0021|||mem:::1.25|||method:::find|||sql:::SELECT 1``:
    the outer glue separates fields, the inner glue separates a field's key
    from its value.
    """

    def __init__(
        self,
        outer: str | None = None,
        inner: str | None = None,
        fields: tuple[str, ...] = FIELD_ORDER,
    ):
        self.outer = outer if outer is not None else settings.OUTER_GLUE
        self.inner = inner if inner is not None else settings.INNER_GLUE
        if not self.outer or not self.inner:
            raise ValueError("Delimiters must be non-empty")
        self.fields = tuple(fields)
        self.field_idx = {name: idx for idx, name in enumerate(self.fields)}

    def extract(self, entry: LogEntry, what: str, part: FieldPart = "value") -> str:
        if part not in FIELD_PARTS:
            raise ValueError(f"Unknown field part {part!r}, expected one of {FIELD_PARTS}")
        idx = self.field_idx.get(what)
        if idx is None:
            return ""

        segments = entry.message.split(self.outer)
        if len(segments) != len(self.fields):
            raise MalformedLogMessage(
                entry.message,
                f"expected {len(self.fields)} fields, got {len(segments)}",
            )

        segment = segments[idx]
        if part == "field":
            return segment
        if self.inner not in segment:
            raise MalformedLogMessage(entry.message, f"field {what!r} has no key/value separator")
        key, value = segment.split(self.inner, 1)
        return key if part == "key" else value

    def extract_time(self, entry: LogEntry) -> float:
        """Query duration in seconds."""
        return _to_float(self.extract(entry, "time"))

    def extract_mem(self, entry: LogEntry) -> float:
        """Process memory in MB when the query finished."""
        return _to_float(self.extract(entry, "mem"))

    def extract_method(self, entry: LogEntry) -> str:
        return self.extract(entry, "method")

    def extract_sql(self, entry: LogEntry) -> str:
        return self.extract(entry, "sql")

    def format(self, **values: object) -> str:
        """Builds a message in field order. Every configured field is required."""
        missing = [name for name in self.fields if name not in values]
        if missing:
            raise ValueError(f"Missing fields: {missing}")
        return self.outer.join(f"{name}{self.inner}{values[name]}" for name in self.fields)
