#!/usr/bin/env python3
"""
reader.py

Read side of the CSV -> Parquet converter.

A CSV file is read twice: once to infer its schema from a bounded sample of
rows, and once more from the start to stream the rows out with the final
schema. RewindableReader hides whether the file is plain or gzipped and knows
how to start over.

Usage (prints the inferred schema):

python reader.py input.csv[.gz]
"""

import gzip
import io
import logging
import re
import sys
import zlib
from typing import BinaryIO, Tuple

import pyarrow as pa
import pyarrow.csv as pacsv

logger = logging.getLogger(__name__)

# Number of rows to read from csv to infer schema
MAX_READ_RECORDS = 8192

# Record terminators counted against MAX_READ_RECORDS
LINE_END = re.compile(rb"\r\n|\r|\n")

# Chunk size used while collecting the inference sample
CHUNK_SIZE = 1 << 16

# Smallest block handed to the CSV parser for the sample
MIN_SAMPLE_BLOCK_SIZE = 1 << 20

GZIP_SUFFIX = '.gz'


class InferenceError(ValueError):
    """The CSV sample could not be parsed."""


class RewindableReader(io.RawIOBase):
    """Rewindable reader which can be used for both plain and gzipped files."""

    def __init__(self, name: str, handle: BinaryIO):
        super().__init__()
        self.name = name
        self._handle = handle

    @staticmethod
    def open(filename) -> 'RewindableReader':
        """Opens plain or gzipped file and returns a reader"""
        name = str(filename)
        handle = open(name, 'rb')
        if name.endswith(GZIP_SUFFIX):
            return GzipReader(name, handle)
        return PlainReader(name, handle)

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        if self._handle is None:
            raise ValueError('I/O operation on a closed or rewound reader')
        return self._readinto(b)

    def _readinto(self, b) -> int:
        raise NotImplementedError

    def _release(self) -> BinaryIO:
        """Give up the file handle without closing it; the reader is closed afterwards."""
        handle = self._handle
        self._handle = None
        super().close()
        return handle

    def rewind(self) -> 'RewindableReader':
        """
        Return a fresh reader positioned at the start of the same file.

        This reader is consumed and must not be used afterwards.
        """
        if self.closed or self._handle is None:
            raise ValueError('rewind of a closed or already rewound reader')
        handle = self._release()
        try:
            handle.seek(0)
        except OSError:
            handle.close()
            raise
        return type(self)(self.name, handle)

    def close(self) -> None:
        if self._handle is not None:
            handle = self._release()
            handle.close()
        super().close()


class PlainReader(RewindableReader):
    """Uncompressed"""

    def _readinto(self, b) -> int:
        return self._handle.readinto(b)


class GzipReader(RewindableReader):
    """Compressed; concatenated gzip members are read as one stream"""

    def __init__(self, name: str, handle: BinaryIO):
        super().__init__(name, handle)
        self._decoder = gzip.GzipFile(fileobj=handle, mode='rb')

    def _readinto(self, b) -> int:
        try:
            return self._decoder.readinto(b)
        except (EOFError, zlib.error) as e:
            raise OSError(f"{self.name}: {e}") from e

    def _release(self) -> BinaryIO:
        # GzipFile.close() leaves a passed-in fileobj open
        self._decoder.close()
        return super()._release()


def read_sample(source: BinaryIO, max_records: int = MAX_READ_RECORDS) -> bytes:
    """
    Read the header line plus at most `max_records` lines from `source`.

    Lines may end in \\n, \\r\\n or a bare \\r.
    """
    wanted = max_records + 1
    sample = bytearray()
    seen = 0
    pos = 0
    while True:
        chunk = source.read(CHUNK_SIZE)
        sample += chunk
        for m in LINE_END.finditer(sample, pos):
            if chunk and m.group() == b'\r' and m.end() == len(sample):
                # may be the first half of a \r\n split across chunks
                break
            seen += 1
            pos = m.end()
            if seen == wanted:
                return bytes(sample[:pos])
        if not chunk:
            return bytes(sample)


def _parse_options() -> pacsv.ParseOptions:
    return pacsv.ParseOptions(delimiter=',')


def infer_schema(source: BinaryIO, max_records: int = MAX_READ_RECORDS) -> Tuple[pa.Schema, int]:
    """
    Infer the schema of a CSV stream from its first `max_records` rows.

    The first row names the columns. Returns (schema, bytes_sampled).
    """
    sample = read_sample(source, max_records)
    # one block, so every sampled row takes part in type inference
    read_options = pacsv.ReadOptions(block_size=max(len(sample) + 1, MIN_SAMPLE_BLOCK_SIZE))
    try:
        table = pacsv.read_csv(pa.BufferReader(sample),
                               read_options=read_options,
                               parse_options=_parse_options())
    except pa.ArrowInvalid as e:
        name = getattr(source, 'name', '<stream>')
        raise InferenceError(f"Failed to infer schema of {name}: {e}") from e
    logger.debug("Inferred %d columns from %d rows (%d bytes)",
                 len(table.schema), table.num_rows, len(sample))
    return table.schema, len(sample)


def open_batches(source: BinaryIO, schema: pa.Schema) -> pacsv.CSVStreamingReader:
    """Stream record batches from `source` with column types pinned to `schema`."""
    convert_options = pacsv.ConvertOptions(column_types={f.name: f.type for f in schema})
    return pacsv.open_csv(source,
                          parse_options=_parse_options(),
                          convert_options=convert_options)


def cli():
    if len(sys.argv) != 2:
        print("Usage: reader.py input.csv[.gz]")
        sys.exit(1)

    with RewindableReader.open(sys.argv[1]) as source:
        schema, size = infer_schema(source)
    print(schema)
    print(f"({size} bytes sampled)")


if __name__ == '__main__':
    cli()
