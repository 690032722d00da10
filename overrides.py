"""
overrides.py

Column type directives for the CSV -> Parquet converter.

The four --i32/--i64/--f32/--f64 lists are folded into one override map plus
default widths for integer and float columns, which are then applied on top
of the schema inferred from the CSV sample.
"""

from typing import Dict, Iterable, Optional, Tuple

import pyarrow as pa

# Type for integer columns nobody asked about
DEFAULT_INT_TYPE = pa.int64()
# Type for float columns nobody asked about
DEFAULT_FLOAT_TYPE = pa.float32()

# Column names meaning "every column of this kind"
WILDCARDS = ('*', '__all__')


class TypeConflictError(ValueError):
    """Contradictory or duplicate type directives."""


def _has_wildcard(cols: Iterable[str]) -> bool:
    return any(c in WILDCARDS for c in cols)


def consolidate_types(i32: Optional[Iterable[str]] = None,
                      i64: Optional[Iterable[str]] = None,
                      f32: Optional[Iterable[str]] = None,
                      f64: Optional[Iterable[str]] = None
                      ) -> Tuple[Dict[str, pa.DataType], pa.DataType, pa.DataType]:
    """
    Consolidate i32, i64, f32 and f64 column lists into a single mapping.

    Returns (overrides, default_int_type, default_float_type).

    Lists are processed in i32, i64, f32, f64 order. Names in the i32 list are
    taken as they come; any later list naming an already mapped column is an
    error, even if the requested type is the same.
    """
    i32_cols = list(i32 or [])
    i64_cols = list(i64 or [])
    f32_cols = list(f32 or [])
    f64_cols = list(f64 or [])

    overrides: Dict[str, pa.DataType] = {}
    default_int_type = DEFAULT_INT_TYPE
    default_float_type = DEFAULT_FLOAT_TYPE

    if not (i32_cols or i64_cols or f32_cols or f64_cols):
        # nothing to change in the inferred schema
        return overrides, default_int_type, default_float_type

    if _has_wildcard(i32_cols) and _has_wildcard(i64_cols):
        raise TypeConflictError("i32 and i64 can't both be the default data types for integers")
    if _has_wildcard(f32_cols) and _has_wildcard(f64_cols):
        raise TypeConflictError("f32 and f64 can't both be the default data types for floats")

    for c in i32_cols:
        if c in WILDCARDS:
            default_int_type = pa.int32()
        else:
            overrides[c] = pa.int32()

    for cols, dtype, is_int in ((i64_cols, pa.int64(), True),
                                (f32_cols, pa.float32(), False),
                                (f64_cols, pa.float64(), False)):
        for c in cols:
            if c in WILDCARDS:
                if is_int:
                    default_int_type = dtype
                else:
                    default_float_type = dtype
            elif c in overrides:
                raise TypeConflictError(f"Data type for column `{c}' was specified multiple times")
            else:
                overrides[c] = dtype

    return overrides, default_int_type, default_float_type


def apply_schema_overrides(schema: pa.Schema,
                           overrides: Dict[str, pa.DataType],
                           default_int_type: pa.DataType = DEFAULT_INT_TYPE,
                           default_float_type: pa.DataType = DEFAULT_FLOAT_TYPE) -> pa.Schema:
    """
    Return a copy of `schema` with user-provided data types applied.

    An exact name match in `overrides` wins. Otherwise int64 columns get
    `default_int_type` and double columns get `default_float_type`; strings,
    booleans, timestamps etc. are left alone.
    """
    fields = []
    for field in schema:
        dtype = overrides.get(field.name)
        if dtype is None:
            if field.type == pa.int64():
                dtype = default_int_type
            elif field.type == pa.float64():
                dtype = default_float_type
            else:
                dtype = field.type
        fields.append(pa.field(field.name, dtype, nullable=field.nullable, metadata=field.metadata))
    return pa.schema(fields, metadata=schema.metadata)
