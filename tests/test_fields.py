from datetime import timedelta

import pytest

from consolestate.fields import (
    Attribute,
    Color,
    Field,
    FieldValue,
    Metadata,
    Modifier,
    Span,
    Style,
    Styles,
    format_location,
    make_formatted_attributes,
    make_formatted_fields,
    pb_duration,
    truncate_registry_path,
)
from consolestate.wire import (
    AttributeMessage,
    FieldMessage,
    Location,
    MetadataMessage,
    ValueKind,
)

REGISTRY_SUFFIX = "tokio-1.0.0/src/runtime/mod.rs"
REGISTRY_PATH = "/home/user/.cargo/registry/src/index-abc/" + REGISTRY_SUFFIX


@pytest.fixture
def meta():
    return Metadata(id=7, target="app::mod", field_names=["alpha", "beta"])


def test_truncate_registry_path_registry():
    assert truncate_registry_path(REGISTRY_PATH) == "<cargo>/" + REGISTRY_SUFFIX


def test_truncate_registry_path_git_checkout():
    path = "/home/user/.cargo/git/checkouts/" + REGISTRY_SUFFIX
    assert truncate_registry_path(path) == "<cargo>/" + REGISTRY_SUFFIX


def test_truncate_registry_path_unchanged():
    path = "/src/project/main.rs"
    assert truncate_registry_path(path) == path


def test_format_location_none():
    assert format_location(None) == "<unknown location>"


def test_format_location_truncates_file():
    text = format_location(Location(file=REGISTRY_PATH, line=3))
    assert text.startswith("<cargo>/" + REGISTRY_SUFFIX)
    assert text.endswith(" ")


def test_pb_duration():
    assert pb_duration(2, 500_000) == timedelta(seconds=2, microseconds=500)


def test_pb_duration_negative():
    with pytest.raises(ValueError):
        pb_duration(-1, 0)
    with pytest.raises(ValueError):
        pb_duration(0, -1)


def test_metadata_from_proto():
    pb = MetadataMessage(id=3, target="t", field_names=["a", "b"])
    meta = Metadata.from_proto(pb, 3)
    assert meta.id == 3
    assert meta.target == "t"
    assert meta.field_names == ["a", "b"]


def test_field_value_bool_display():
    value = FieldValue.from_proto(FieldMessage(name="x", kind=ValueKind.BOOL, value=True))
    assert str(value) == "true"


def test_field_value_from_proto_requires_kind():
    with pytest.raises(ValueError):
        FieldValue.from_proto(FieldMessage(name="x"))


def test_ensure_nonempty():
    assert FieldValue(ValueKind.STR, "").ensure_nonempty() is None
    assert FieldValue(ValueKind.DEBUG, "").ensure_nonempty() is None
    value = FieldValue(ValueKind.U64, 0)
    assert value.ensure_nonempty() is value


def test_field_value_truncate_makes_debug():
    value = FieldValue(ValueKind.STR, REGISTRY_PATH).truncate_registry_path()
    assert value == FieldValue(ValueKind.DEBUG, "<cargo>/" + REGISTRY_SUFFIX)
    number = FieldValue(ValueKind.I64, -4)
    assert number.truncate_registry_path() is number


def test_field_value_ordering_by_kind():
    values = [
        FieldValue(ValueKind.DEBUG, "a"),
        FieldValue(ValueKind.I64, 1),
        FieldValue(ValueKind.U64, 1),
        FieldValue(ValueKind.STR, "a"),
        FieldValue(ValueKind.BOOL, True),
    ]
    kinds = [v.kind for v in sorted(values)]
    assert kinds == [
        ValueKind.BOOL,
        ValueKind.STR,
        ValueKind.U64,
        ValueKind.I64,
        ValueKind.DEBUG,
    ]


def test_field_from_proto_by_index(meta):
    pb = FieldMessage(name=1, metadata_id=7, kind=ValueKind.U64, value=5)
    assert Field.from_proto(pb, meta) == Field("beta", FieldValue(ValueKind.U64, 5))


def test_field_from_proto_metadata_mismatch(meta):
    pb = FieldMessage(name=0, metadata_id=8, kind=ValueKind.U64, value=5)
    assert Field.from_proto(pb, meta) is None


def test_field_from_proto_index_out_of_range(meta):
    pb = FieldMessage(name=2, metadata_id=7, kind=ValueKind.U64, value=5)
    assert Field.from_proto(pb, meta) is None


def test_field_from_proto_skips_empty_and_missing(meta):
    assert Field.from_proto(FieldMessage(name="x", kind=ValueKind.STR, value=""), meta) is None
    assert Field.from_proto(FieldMessage(name="x"), meta) is None
    assert Field.from_proto(FieldMessage(kind=ValueKind.U64, value=1), meta) is None


def test_field_from_proto_spawn_location(meta):
    pb = FieldMessage(name=Field.SPAWN_LOCATION, kind=ValueKind.STR, value=REGISTRY_PATH)
    field = Field.from_proto(pb, meta)
    assert field.value == FieldValue(ValueKind.DEBUG, "<cargo>/" + REGISTRY_SUFFIX)


def test_field_ordering():
    v = FieldValue(ValueKind.U64, 1)
    fields = [
        Field(Field.SPAWN_LOCATION, v),
        Field("zeta", v),
        Field(Field.NAME, v),
        Field("alpha", v),
    ]
    names = [f.name for f in sorted(fields)]
    assert names == [Field.NAME, "alpha", "zeta", Field.SPAWN_LOCATION]


def test_attribute_ordering_by_unit():
    f = Field("alpha", FieldValue(ValueKind.U64, 1))
    ordered = sorted([Attribute(f, "us"), Attribute(f, None), Attribute(f, "ms")])
    assert [a.unit for a in ordered] == [None, "ms", "us"]


def test_attribute_from_proto(meta):
    pb = AttributeMessage(
        field=FieldMessage(name="alpha", kind=ValueKind.U64, value=9), unit="ms"
    )
    attr = Attribute.from_proto(pb, meta)
    assert attr == Attribute(Field("alpha", FieldValue(ValueKind.U64, 9)), "ms")
    assert Attribute.from_proto(AttributeMessage(unit="ms"), meta) is None


def test_style_add_modifier():
    style = Style(fg=Color.RED).add_modifier(Modifier.BOLD).add_modifier(Modifier.DIM)
    assert style.fg is Color.RED
    assert Modifier.BOLD in style.modifiers
    assert Modifier.DIM in style.modifiers


def test_styles_if_utf8_and_fg():
    assert Styles(utf8=True).if_utf8("u", "a") == "u"
    assert Styles(utf8=False).if_utf8("u", "a") == "a"
    assert Styles(colors=False).fg(Color.RED) == Style()
    assert Styles().fg(Color.RED).fg is Color.RED


def test_span_raw_has_default_style():
    assert Span.raw("x") == Span("x", Style())
    assert Span.styled("x", Style(fg=Color.GREEN)).style.fg is Color.GREEN


def test_make_formatted_fields():
    v = FieldValue(ValueKind.U64, 4)
    lines = make_formatted_fields(Styles(), [Field("zeta", v), Field(Field.NAME, v)])
    assert [[s.content for s in line] for line in lines] == [
        [Field.NAME, "=", "4 "],
        ["zeta", "=", "4 "],
    ]
    assert lines[0][0].style.fg is Color.LIGHT_BLUE
    assert Modifier.BOLD in lines[0][0].style.modifiers
    assert lines[0][2].style.fg is Color.YELLOW


def test_make_formatted_fields_empty():
    assert make_formatted_fields(Styles(), []) == []


def test_make_formatted_attributes():
    f = Field("alpha", FieldValue(ValueKind.U64, 4))
    lines = make_formatted_attributes(Styles(), [Attribute(f, "ms"), Attribute(f, None)])
    assert [[s.content for s in line] for line in lines] == [
        ["alpha", "=", "4", " "],
        ["alpha", "=", "4", "ms", " "],
    ]
    assert lines[1][3].style.fg is Color.LIGHT_BLUE
    assert lines[1][4] == Span.raw(" ")