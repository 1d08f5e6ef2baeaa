"""Fields, attributes and metadata of instrumented spans, and their styled rendering."""

from __future__ import annotations

import dataclasses
import enum
import logging
import re
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Iterable

from .wire import AttributeMessage, FieldMessage, Location, MetadataMessage, ValueKind

__all__ = [
    "Color",
    "Modifier",
    "Style",
    "Span",
    "Styles",
    "Metadata",
    "FieldValue",
    "Field",
    "Attribute",
    "make_formatted_fields",
    "make_formatted_attributes",
    "truncate_registry_path",
    "format_location",
    "pb_duration",
]

log = logging.getLogger(__name__)

_REGISTRY_PATH = re.compile(r".*/\.cargo(/registry/src/[^/]*/|/git/checkouts/)")


class Color(enum.Enum):
    BLACK = "black"
    RED = "red"
    GREEN = "green"
    YELLOW = "yellow"
    BLUE = "blue"
    MAGENTA = "magenta"
    CYAN = "cyan"
    GRAY = "gray"
    DARK_GRAY = "dark_gray"
    LIGHT_RED = "light_red"
    LIGHT_GREEN = "light_green"
    LIGHT_YELLOW = "light_yellow"
    LIGHT_BLUE = "light_blue"
    LIGHT_MAGENTA = "light_magenta"
    LIGHT_CYAN = "light_cyan"
    WHITE = "white"


class Modifier(enum.Flag):
    NONE = 0
    BOLD = enum.auto()
    DIM = enum.auto()
    ITALIC = enum.auto()
    UNDERLINED = enum.auto()
    REVERSED = enum.auto()


@dataclass(frozen=True)
class Style:
    """A foreground colour and a set of text modifiers."""

    fg: Color | None = None
    modifiers: Modifier = Modifier.NONE

    def add_modifier(self, modifier: Modifier) -> "Style":
        return dataclasses.replace(self, modifiers=self.modifiers | modifier)


@dataclass(frozen=True)
class Span:
    """A piece of text with a single style."""

    content: str
    style: Style = Style()

    @classmethod
    def styled(cls, content: str, style: Style) -> "Span":
        return cls(content, style)

    @classmethod
    def raw(cls, content: str) -> "Span":
        return cls(content)


@dataclass(frozen=True)
class Styles:
    """Display capabilities: whether colours and UTF-8 symbols may be used."""

    utf8: bool = True
    colors: bool = True

    def fg(self, color: Color) -> Style:
        return Style(fg=color) if self.colors else Style()

    def if_utf8(self, utf8: str, ascii: str) -> str:
        return utf8 if self.utf8 else ascii


@dataclass
class Metadata:
    """The target and field names of a span's callsite."""

    id: int
    target: str = ""
    field_names: list[str] = field(default_factory=list)

    @classmethod
    def from_proto(cls, pb: MetadataMessage, id: int) -> "Metadata":
        return cls(id=id, target=pb.target, field_names=list(pb.field_names))


_KIND_RANK = {
    ValueKind.BOOL: 0,
    ValueKind.STR: 1,
    ValueKind.U64: 2,
    ValueKind.I64: 3,
    ValueKind.DEBUG: 4,
}


@dataclass(frozen=True)
class FieldValue:
    """A typed field value."""

    kind: ValueKind
    value: Any

    @classmethod
    def from_proto(cls, pb: FieldMessage) -> "FieldValue":
        if pb.kind is None:
            raise ValueError("field has no value")
        if pb.kind is ValueKind.BOOL:
            return cls(pb.kind, bool(pb.value))
        if pb.kind in (ValueKind.U64, ValueKind.I64):
            return cls(pb.kind, int(pb.value))
        return cls(pb.kind, str(pb.value))

    def ensure_nonempty(self) -> "FieldValue | None":
        """Return ``None`` for an empty string value, else ``self``."""
        if self.kind in (ValueKind.STR, ValueKind.DEBUG) and not self.value:
            return None
        return self

    def truncate_registry_path(self) -> "FieldValue":
        """Shorten package-registry paths in string values."""
        if self.kind in (ValueKind.STR, ValueKind.DEBUG):
            return FieldValue(ValueKind.DEBUG, truncate_registry_path(self.value))
        return self

    def __str__(self) -> str:
        if self.kind is ValueKind.BOOL:
            return "true" if self.value else "false"
        return str(self.value)

    def _key(self) -> tuple:
        return (_KIND_RANK[self.kind], self.value)

    def __lt__(self, other: "FieldValue") -> bool:
        return self._key() < other._key()

    def __le__(self, other: "FieldValue") -> bool:
        return self._key() <= other._key()

    def __gt__(self, other: "FieldValue") -> bool:
        return self._key() > other._key()

    def __ge__(self, other: "FieldValue") -> bool:
        return self._key() >= other._key()


@dataclass(frozen=True)
class Field:
    """A named field value; ordered by name with the task name first and location last."""

    SPAWN_LOCATION = "spawn.location"
    NAME = "task.name"
    TASK_ID = "task.id"

    name: str
    value: FieldValue

    @classmethod
    def from_proto(cls, pb: FieldMessage, meta: Metadata) -> "Field | None":
        """Resolve a wire field against ``meta``; ``None`` if malformed or empty."""
        if pb.name is None:
            return None
        if isinstance(pb.name, str):
            name = pb.name
        else:
            idx = pb.name
            if pb.metadata_id != meta.id:
                log.warning(
                    "skipping malformed field name (metadata id mismatch): "
                    "task.meta_id=%s field.meta.id=%s field.name_index=%s",
                    meta.id,
                    pb.metadata_id,
                    idx,
                )
                return None
            if not 0 <= idx < len(meta.field_names):
                log.warning(
                    "missing field name for index: task.meta_id=%s field.name_index=%s",
                    meta.id,
                    idx,
                )
                return None
            name = meta.field_names[idx]

        if pb.kind is None:
            log.warning("missing field value for field %r", name)
            return None
        value = FieldValue.from_proto(pb).ensure_nonempty()
        if value is None:
            return None
        if name == cls.SPAWN_LOCATION:
            value = value.truncate_registry_path()
        return cls(name, value)

    def _key(self) -> tuple:
        if self.name == Field.NAME:
            return (0, "")
        if self.name == Field.SPAWN_LOCATION:
            return (2, "")
        return (1, self.name)

    def __lt__(self, other: "Field") -> bool:
        return self._key() < other._key()

    def __le__(self, other: "Field") -> bool:
        return self._key() <= other._key()

    def __gt__(self, other: "Field") -> bool:
        return self._key() > other._key()

    def __ge__(self, other: "Field") -> bool:
        return self._key() >= other._key()


@dataclass(frozen=True)
class Attribute:
    """A field with an optional unit; ordered by field, then by unit."""

    field: Field
    unit: str | None = None

    @classmethod
    def from_proto(cls, pb: AttributeMessage, meta: Metadata) -> "Attribute | None":
        if pb.field is None:
            return None
        resolved = Field.from_proto(pb.field, meta)
        if resolved is None:
            return None
        return cls(resolved, pb.unit)

    def _key(self) -> tuple:
        unit_key = (0, "") if self.unit is None else (1, self.unit)
        return (self.field._key(), unit_key)

    def __lt__(self, other: "Attribute") -> bool:
        return self._key() < other._key()

    def __le__(self, other: "Attribute") -> bool:
        return self._key() <= other._key()

    def __gt__(self, other: "Attribute") -> bool:
        return self._key() > other._key()

    def __ge__(self, other: "Attribute") -> bool:
        return self._key() >= other._key()


def _key_styles(styles: Styles) -> tuple[Style, Style, Style]:
    key_style = styles.fg(Color.LIGHT_BLUE).add_modifier(Modifier.BOLD)
    delim_style = styles.fg(Color.LIGHT_BLUE).add_modifier(Modifier.DIM)
    val_style = styles.fg(Color.YELLOW)
    return key_style, delim_style, val_style


def make_formatted_fields(styles: Styles, fields: Iterable[Field]) -> list[list[Span]]:
    """Render sorted fields as ``name=value `` span lines."""
    key_style, delim_style, val_style = _key_styles(styles)
    return [
        [
            Span.styled(f.name, key_style),
            Span.styled("=", delim_style),
            Span.styled(f"{f.value} ", val_style),
        ]
        for f in sorted(fields)
    ]


def make_formatted_attributes(
    styles: Styles, attributes: Iterable[Attribute]
) -> list[list[Span]]:
    """Render sorted attributes as ``name=value[unit] `` span lines."""
    key_style, delim_style, val_style = _key_styles(styles)
    unit_style = styles.fg(Color.LIGHT_BLUE)
    formatted = []
    for attr in sorted(attributes):
        elems = [
            Span.styled(attr.field.name, key_style),
            Span.styled("=", delim_style),
            Span.styled(str(attr.field.value), val_style),
        ]
        if attr.unit is not None:
            elems.append(Span.styled(attr.unit, unit_style))
        elems.append(Span.raw(" "))
        formatted.append(elems)
    return formatted


def truncate_registry_path(s: str) -> str:
    """Replace a package-registry or git-checkout prefix with ``<cargo>/``."""
    return _REGISTRY_PATH.sub("<cargo>/", s, count=1)


def format_location(loc: Location | None) -> str:
    """Format a source location for display, shortening registry paths."""
    if loc is None:
        return "<unknown location>"
    if loc.file is not None:
        loc = dataclasses.replace(loc, file=truncate_registry_path(loc.file))
    return f"{loc} "


def pb_duration(seconds: int, nanos: int) -> timedelta:
    """Convert a wire duration to a ``timedelta``; negative parts are rejected."""
    if seconds < 0 or nanos < 0:
        raise ValueError("duration should not be negative!")
    return timedelta(seconds=seconds, microseconds=nanos / 1000)