from dataclasses import dataclass
from typing import Any, List, Sequence

from errors import TransferError, UnsupportedType
from type_map import SourceType, TargetType, map_type, render_ddl, resolve_source_type


@dataclass(frozen=True)
class ColumnDescriptor:
    """
    Resolved name/type/DDL for one target column.

    Attributes:
        name: Normalized Oracle column name.
        source_type: Type reported by the source cursor.
        target_type: Oracle storage type.
        target_ddl: Type clause used in CREATE TABLE (e.g., 'VARCHAR2(4000)').
    """
    name: str
    source_type: SourceType
    target_type: TargetType
    target_ddl: str


def normalize_column_name(name: str) -> str:
    """ Oracle forbids a leading underscore, so exactly one is dropped ('__id' -> '_id'). """
    if name.startswith("_"):
        return name[1:]
    return name


def _column_meta(column: Any):
    # DB-API description entries: (name, type_code, ...); psycopg Column also indexes this way.
    return column[0], column[1]


def synthesize(description: Sequence[Any]) -> List[ColumnDescriptor]:
    """
    Derive the ordered target columns from a source cursor's `description`.

    Raises:
        UnsupportedType: on the first column whose type has no Oracle mapping.
            Nothing is returned for the other columns.
        TransferError: the cursor has no result set description.
    """
    if not description:
        raise TransferError("The source query did not return a result set.",
                            stage="reading source column metadata")

    out: List[ColumnDescriptor] = []
    for column in description:
        raw_name, type_code = _column_meta(column)
        name = normalize_column_name(str(raw_name))
        try:
            source_type = resolve_source_type(type_code)
        except UnsupportedType as e:
            raise UnsupportedType(e.type_name, column=name) from None
        target_type = map_type(source_type)
        out.append(ColumnDescriptor(name, source_type, target_type, render_ddl(target_type)))
    return out
