from types import SimpleNamespace

import pytest

from errors import UnsupportedType
from type_map import SourceType, TargetType, map_type, render_ddl, resolve_source_type


@pytest.mark.parametrize("source_type", [
    SourceType.BOOLEAN, SourceType.SMALLINT, SourceType.INTEGER, SourceType.BIGINT,
    SourceType.FLOAT, SourceType.DOUBLE, SourceType.REAL, SourceType.DECIMAL, SourceType.NUMERIC,
])
def test_numeric_family_and_boolean_map_to_number(source_type):
    assert map_type(source_type) is TargetType.NUMBER


@pytest.mark.parametrize("source_type", [SourceType.VARCHAR, SourceType.CHAR])
def test_character_types_map_to_varchar2(source_type):
    assert map_type(source_type) is TargetType.VARCHAR2


def test_every_source_type_has_a_mapping():
    for source_type in SourceType:
        assert map_type(source_type) in (TargetType.NUMBER, TargetType.VARCHAR2)


@pytest.mark.parametrize("code, expected", [
    ("INT_TYPE", SourceType.INTEGER),
    ("STRING_TYPE", SourceType.VARCHAR),
    ("string", SourceType.VARCHAR),
    ("bigint", SourceType.BIGINT),
    ("BOOLEAN_TYPE", SourceType.BOOLEAN),
    ("character varying(20)", SourceType.VARCHAR),
    ("numeric(10,2)", SourceType.NUMERIC),
    ("double precision", SourceType.DOUBLE),
    (SimpleNamespace(name="DB_TYPE_NUMBER"), SourceType.NUMERIC),
    (SimpleNamespace(name="DB_TYPE_VARCHAR"), SourceType.VARCHAR),
    (23, SourceType.INTEGER),     # int4 OID
    (1043, SourceType.VARCHAR),   # varchar OID
    (16, SourceType.BOOLEAN),     # bool OID
    (701, SourceType.DOUBLE),     # float8 OID
])
def test_resolve_driver_type_codes(code, expected):
    assert resolve_source_type(code) is expected


@pytest.mark.parametrize("code", ["TIMESTAMP_TYPE", "date", "BINARY", 1082, SimpleNamespace(name="DB_TYPE_BLOB")])
def test_unsupported_types_raise(code):
    with pytest.raises(UnsupportedType):
        map_type(code)


def test_mapping_is_deterministic():
    assert [map_type("INT_TYPE") for _ in range(3)] == [TargetType.NUMBER] * 3


def test_render_ddl():
    assert render_ddl(TargetType.VARCHAR2) == "VARCHAR2(4000)"
    assert render_ddl(TargetType.NUMBER) == "NUMBER"
