import re
from enum import Enum
from typing import Any, Union

import psycopg

from errors import UnsupportedType

VARCHAR_MAX_LENGTH = 4000


class SourceType(str, Enum):
    BOOLEAN = "BOOLEAN"
    SMALLINT = "SMALLINT"
    INTEGER = "INTEGER"
    BIGINT = "BIGINT"
    FLOAT = "FLOAT"
    DOUBLE = "DOUBLE"
    REAL = "REAL"
    DECIMAL = "DECIMAL"
    NUMERIC = "NUMERIC"
    VARCHAR = "VARCHAR"
    CHAR = "CHAR"


class TargetType(str, Enum):
    NUMBER = "NUMBER"
    VARCHAR2 = "VARCHAR2"


TYPE_MAP = {
    SourceType.BOOLEAN : TargetType.NUMBER,   # no native boolean column in Oracle
    SourceType.SMALLINT : TargetType.NUMBER,
    SourceType.INTEGER : TargetType.NUMBER,
    SourceType.BIGINT : TargetType.NUMBER,
    SourceType.FLOAT : TargetType.NUMBER,
    SourceType.DOUBLE : TargetType.NUMBER,
    SourceType.REAL : TargetType.NUMBER,
    SourceType.DECIMAL : TargetType.NUMBER,
    SourceType.NUMERIC : TargetType.NUMBER,
    SourceType.VARCHAR : TargetType.VARCHAR2,
    SourceType.CHAR : TargetType.VARCHAR2,
}

# Driver spellings of the supported types: Hive ('INT_TYPE', 'string'),
# Postgres ('int4', 'character varying'), Oracle ('DB_TYPE_NUMBER').
ALIASES = {
    "BOOLEAN" : SourceType.BOOLEAN,
    "BOOL" : SourceType.BOOLEAN,
    "SMALLINT" : SourceType.SMALLINT,
    "INT2" : SourceType.SMALLINT,
    "INTEGER" : SourceType.INTEGER,
    "INT" : SourceType.INTEGER,
    "INT4" : SourceType.INTEGER,
    "BIGINT" : SourceType.BIGINT,
    "INT8" : SourceType.BIGINT,
    "FLOAT" : SourceType.FLOAT,
    "BINARY_FLOAT" : SourceType.FLOAT,
    "DOUBLE" : SourceType.DOUBLE,
    "DOUBLE PRECISION" : SourceType.DOUBLE,
    "FLOAT8" : SourceType.DOUBLE,
    "BINARY_DOUBLE" : SourceType.DOUBLE,
    "REAL" : SourceType.REAL,
    "FLOAT4" : SourceType.REAL,
    "DECIMAL" : SourceType.DECIMAL,
    "NUMERIC" : SourceType.NUMERIC,
    "NUMBER" : SourceType.NUMERIC,
    "VARCHAR" : SourceType.VARCHAR,
    "VARCHAR2" : SourceType.VARCHAR,
    "NVARCHAR" : SourceType.VARCHAR,
    "NVARCHAR2" : SourceType.VARCHAR,
    "CHARACTER VARYING" : SourceType.VARCHAR,
    "STRING" : SourceType.VARCHAR,
    "TEXT" : SourceType.VARCHAR,
    "CHAR" : SourceType.CHAR,
    "NCHAR" : SourceType.CHAR,
    "CHARACTER" : SourceType.CHAR,
    "BPCHAR" : SourceType.CHAR,
}

_MODIFIERS = re.compile(r"\(.*\)")


def type_name(type_code: Any) -> str:
    """
    Turn a DB-API `type_code` into an upper-case type name.

    - str codes are used as-is ('INT_TYPE', 'varchar(20)')
    - int codes are Postgres OIDs, resolved through psycopg's type registry
    - objects with a `name` (oracledb DbType) use that name
    """
    if isinstance(type_code, SourceType):
        return type_code.value
    if isinstance(type_code, str):
        name = type_code
    elif isinstance(type_code, int) and not isinstance(type_code, bool):
        info = psycopg.adapters.types.get(type_code)
        name = info.name if info is not None else str(type_code)
    else:
        name = getattr(type_code, "name", None) or str(type_code)

    name = _MODIFIERS.sub("", name).strip().upper()
    name = " ".join(name.split())
    if name.startswith("DB_TYPE_"):
        name = name[len("DB_TYPE_"):]
    if name.endswith("_TYPE"):
        name = name[: -len("_TYPE")]
    return name


def resolve_source_type(type_code: Any) -> SourceType:
    name = type_name(type_code)
    source_type = ALIASES.get(name)
    if source_type is None:
        raise UnsupportedType(name)
    return source_type


def map_type(source_type: Union[SourceType, str, Any]) -> TargetType:
    """ Map a source type to its Oracle storage type. Raises UnsupportedType. """
    if not isinstance(source_type, SourceType):
        source_type = resolve_source_type(source_type)
    return TYPE_MAP[source_type]


def render_ddl(target_type: TargetType) -> str:
    if target_type is TargetType.VARCHAR2:
        return f"{target_type.value}({VARCHAR_MAX_LENGTH})"
    return target_type.value
