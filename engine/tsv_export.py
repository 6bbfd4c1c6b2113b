"""Append flattened analysis records to the shared TSV export file."""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path

logger = logging.getLogger(__name__)

DESCRIPTIVE_COLUMNS = ("Name", "Artist", "Album")


def _cell(value) -> str:
    if value is None:
        return ""
    return str(value).replace("\t", " ").replace("\r", " ").replace("\n", " ")


class TsvAppender:
    """Single writer for one TSV file shared by every worker in the process.

    The header is written by the first append, using that record's keys, unless
    the file already existed; in that case the existing header's keys are
    reused. Later records are written against those header keys: values for
    keys missing from a record become empty cells and keys absent from the
    header are dropped. Such drift is logged, never reconciled.
    """

    def __init__(self, path: str | os.PathLike) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self._initialized = False
        self._header_written = False
        self._header_keys: list[str] | None = None

    @property
    def header_keys(self) -> list[str] | None:
        with self._lock:
            return list(self._header_keys) if self._header_keys is not None else None

    def append(self, name, artist, album, record: dict[str, str]) -> None:
        keys = sorted(record)
        with self._lock:
            if not self._initialized:
                self._initialized = True
                # An empty file left behind by an earlier run still gets a header.
                if self.path.exists() and self.path.stat().st_size > 0:
                    self._header_written = True
                    self._header_keys = self._read_existing_header_keys()
            if self._header_keys is None:
                self._header_keys = keys
            self._warn_on_drift(name, keys)
            directory = self.path.parent
            if str(directory):
                os.makedirs(directory, exist_ok=True)
            with open(self.path, "a", encoding="utf-8", newline="") as handle:
                if not self._header_written:
                    handle.write("\t".join([*DESCRIPTIVE_COLUMNS, *self._header_keys]) + "\n")
                    self._header_written = True
                row = [_cell(name), _cell(artist), _cell(album)]
                row.extend(_cell(record.get(key, "")) for key in self._header_keys)
                handle.write("\t".join(row) + "\n")
                handle.flush()

    def _read_existing_header_keys(self) -> list[str] | None:
        try:
            with open(self.path, "r", encoding="utf-8") as handle:
                first_line = handle.readline().rstrip("\r\n")
        except (OSError, UnicodeDecodeError):
            logger.warning("Unable to read existing header from %s", self.path, exc_info=True)
            return None
        if not first_line:
            return None
        columns = first_line.split("\t")
        if tuple(columns[: len(DESCRIPTIVE_COLUMNS)]) != DESCRIPTIVE_COLUMNS:
            logger.warning("Existing file %s does not start with a %s header", self.path, "/".join(DESCRIPTIVE_COLUMNS))
            return None
        return columns[len(DESCRIPTIVE_COLUMNS):]

    def _warn_on_drift(self, name, keys: list[str]) -> None:
        if keys == self._header_keys:
            return
        header = set(self._header_keys)
        current = set(keys)
        missing = len(header - current)
        extra = len(current - header)
        if missing or extra:
            logger.warning(
                "Record for %s does not match the header of %s: %d header keys missing, %d keys not in header",
                name,
                self.path,
                missing,
                extra,
            )


_APPENDERS: dict[str, TsvAppender] = {}
_APPENDERS_LOCK = threading.Lock()


def get_tsv_appender(path) -> TsvAppender:
    """Return the process-wide appender for ``path``."""
    key = os.path.abspath(str(path))
    with _APPENDERS_LOCK:
        appender = _APPENDERS.get(key)
        if appender is None:
            appender = TsvAppender(key)
            _APPENDERS[key] = appender
    return appender
