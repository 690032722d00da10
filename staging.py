"""
staging.py

Temporary output file which becomes the real file only by an atomic rename.

    with StagingFile.create_new('.tmp.out.parquet') as out:
        out.write(data)
        out.flush_and_rename('out.parquet')

Leaving the `with` block without flush_and_rename() (exception, early
return) deletes the temporary file.
"""

import logging
import os

logger = logging.getLogger(__name__)


class StagingFile:
    """Temporary file"""

    def __init__(self, tmp_filename: str, file):
        self.tmp_filename = tmp_filename
        self.file = file
        self.committed = False

    @classmethod
    def create_new(cls, tmp_filename) -> 'StagingFile':
        """Creates a new temporary file; FileExistsError if the name is taken"""
        tmp_filename = os.fspath(tmp_filename)
        file = open(tmp_filename, 'xb')
        return cls(tmp_filename, file)

    def _check_open(self) -> None:
        if self.committed:
            raise ValueError(f"{self.tmp_filename} was already renamed")

    def write(self, data) -> int:
        self._check_open()
        return self.file.write(data)

    def flush(self) -> None:
        self._check_open()
        self.file.flush()

    def tell(self) -> int:
        return self.file.tell()

    def writable(self) -> bool:
        return True

    @property
    def closed(self) -> bool:
        return self.committed

    def close(self) -> None:
        # Writers may close their sink when they finish; the handle has to
        # survive until flush_and_rename().
        if not self.committed:
            self.file.flush()

    def flush_and_rename(self, new_filename) -> None:
        """Flushes data to storage and renames the temporary file to `new_filename`"""
        self._check_open()
        self.file.flush()
        os.fsync(self.file.fileno())
        self.file.close()
        os.rename(self.tmp_filename, os.fspath(new_filename))
        self.committed = True

    def discard(self) -> None:
        """Removes the temporary file unless it was renamed"""
        if self.committed:
            return
        self.file.close()
        try:
            os.remove(self.tmp_filename)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Can't remove temporary file %s: %s", self.tmp_filename, e)

    def __enter__(self) -> 'StagingFile':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.discard()
