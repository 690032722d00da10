#!/usr/bin/env python3
"""
writer.py

CSV to Apache Parquet converter.

Every input.csv[.gz] is written next to itself as input.parquet. The schema
is inferred from the first rows of the file; integer and float widths can be
forced per column or for all columns.

Usage (examples):

# Convert, int64/float32 by default
python writer.py data.csv more.csv.gz

# Force widths, "*" or "__all__" changes the default for the whole kind
python writer.py --i32 id,year --f64 '*' data.csv

# Only show the schema that would be written
python writer.py -p data.csv
"""

import argparse
import json
import logging
import os
import sys
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pyarrow as pa
import pyarrow.parquet as pq

from overrides import (
    DEFAULT_FLOAT_TYPE, DEFAULT_INT_TYPE, TypeConflictError,
    apply_schema_overrides, consolidate_types
)
from reader import InferenceError, RewindableReader, infer_schema, open_batches
from staging import StagingFile

VERSION = '0.1.0'

CSV_SUFFIXES = ('.csv', '.csv.gz')
PARQUET_SUFFIX = '.parquet'
TMP_PREFIX = '.tmp.'

# Parquet column compression
COMPRESSION = 'gzip'
COMPRESSION_LEVEL = 8

logger = logging.getLogger(__name__)


class Outcome(Enum):
    """How processing of a single file ended (values are log messages)."""
    NOT_FOUND = '{} not found'
    NOT_A_FILE = '{} is not a file -- skipping'
    UNSUPPORTED_SUFFIX = '{} is not a csv[.gz] file -- skipping'
    DESTINATION_EXISTS = '{} already exists -- skipping'
    TEMP_EXISTS = 'Temporary filename {} already exists -- skipping'
    SCHEMA_PRINTED = 'Schema of {} printed'
    CONVERTED = 'Wrote {}'

    @property
    def skipped(self) -> bool:
        return self not in (Outcome.SCHEMA_PRINTED, Outcome.CONVERTED)


def destination_paths(filename: Path) -> Optional[Tuple[Path, Path]]:
    """Return (parquet path, temporary path) for a csv[.gz] file, None for anything else."""
    basename = filename.name
    for suffix in CSV_SUFFIXES:
        if basename.endswith(suffix):
            stem = basename[:-len(suffix)]
            break
    else:
        return None
    new_basename = stem + PARQUET_SUFFIX
    return filename.parent / new_basename, filename.parent / (TMP_PREFIX + new_basename)


def schema_to_json(schema: pa.Schema) -> str:
    def _metadata(md) -> Dict[str, str]:
        if not md:
            return {}
        return {k.decode('utf-8'): v.decode('utf-8') for k, v in md.items()}

    fields = [{'name': f.name,
               'data_type': str(f.type),
               'nullable': f.nullable,
               'metadata': _metadata(f.metadata)} for f in schema]
    return json.dumps({'fields': fields, 'metadata': _metadata(schema.metadata)}, indent=2)


def write_parquet(batches: pa.RecordBatchReader, output) -> int:
    """Write every batch to `output`; returns the number of rows written."""
    rows = 0
    with pq.ParquetWriter(output, batches.schema,
                          compression=COMPRESSION,
                          compression_level=COMPRESSION_LEVEL) as parquet_writer:
        for batch in batches:
            parquet_writer.write_batch(batch)
            rows += batch.num_rows
    return rows


def _skip(outcome: Outcome, path: Path) -> Outcome:
    logger.warning(outcome.value.format(path))
    return outcome


def process(filename,
            overrides: Dict[str, pa.DataType],
            default_int_type: pa.DataType = DEFAULT_INT_TYPE,
            default_float_type: pa.DataType = DEFAULT_FLOAT_TYPE,
            print_schema: bool = False,
            remove_input: bool = False) -> Outcome:
    """
    Converts a single csv file to parquet.

    Returns the Outcome; skip conditions are logged and returned, I/O and
    CSV errors are raised.
    """
    filename = Path(filename)
    if not filename.is_file():
        if not filename.exists():
            return _skip(Outcome.NOT_FOUND, filename)
        return _skip(Outcome.NOT_A_FILE, filename)

    paths = destination_paths(filename)
    if paths is None:
        return _skip(Outcome.UNSUPPORTED_SUFFIX, filename)
    new_filename, tmp_filename = paths

    if not print_schema:
        if new_filename.exists():
            return _skip(Outcome.DESTINATION_EXISTS, new_filename)
        if tmp_filename.exists():
            return _skip(Outcome.TEMP_EXISTS, tmp_filename)

    source = RewindableReader.open(filename)
    try:
        schema, _size = infer_schema(source)
        schema = apply_schema_overrides(schema, overrides, default_int_type, default_float_type)
        if print_schema:
            print(f"{filename}:\n{schema_to_json(schema)}\n")
            logger.debug(Outcome.SCHEMA_PRINTED.value.format(filename))
            return Outcome.SCHEMA_PRINTED

        with StagingFile.create_new(tmp_filename) as output:
            if sys.stdin is not None and sys.stdin.isatty():
                print(filename)
            source = source.rewind()
            rows = write_parquet(open_batches(source, schema), output)
            output.flush_and_rename(new_filename)
    finally:
        source.close()
    logger.info(Outcome.CONVERTED.value.format(new_filename) + f" ({rows} rows)")

    if remove_input:
        try:
            os.remove(filename)
        except OSError as e:
            logger.error("Can't remove original file %s: %s", filename, e)
    return Outcome.CONVERTED


def column_list(value: str) -> List[str]:
    return [c for c in value.split(',') if c]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='csv2parquet', description='CSV to Apache Parquet converter')
    parser.add_argument('--version', action='version', version=f'%(prog)s {VERSION}')
    parser.add_argument('input', nargs='+', metavar='CSV-FILES', help='Input .csv[.gz] files')
    parser.add_argument('--i32', type=column_list, action='extend', metavar='COLUMNS',
                        help='Comma separated list of Int32 columns. Use "*" or "__all__" to set '
                             'Int32 as the default type for integer columns.')
    parser.add_argument('--i64', type=column_list, action='extend', metavar='COLUMNS',
                        help='Comma separated list of Int64 columns. '
                             'Int64 is the default type for integer columns.')
    parser.add_argument('--f32', type=column_list, action='extend', metavar='COLUMNS',
                        help='Comma separated list of Float32 columns. '
                             'Float32 is the default type for float columns.')
    parser.add_argument('--f64', type=column_list, action='extend', metavar='COLUMNS',
                        help='Comma separated list of Float64 columns. Use "*" or "__all__" to set '
                             'Float64 as the default type for float columns.')
    parser.add_argument('-p', '--print-schema', action='store_true',
                        help='Print the inferred Parquet schema and exit')
    parser.add_argument('--rm', action='store_true', help='Remove input files after conversion')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format='%(levelname)s: %(message)s')

    try:
        overrides, default_int_type, default_float_type = consolidate_types(
            args.i32, args.i64, args.f32, args.f64)
        for filename in args.input:
            process(filename, overrides, default_int_type, default_float_type,
                    print_schema=args.print_schema, remove_input=args.rm)
    except (TypeConflictError, InferenceError, OSError, pa.ArrowException) as e:
        logger.error("Error: %s", e)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
