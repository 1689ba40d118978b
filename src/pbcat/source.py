"""Seekable byte sources for local files and standard input."""

import os
import shutil
import sys
import tempfile
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import IO
from urllib.parse import ParseResult, urlparse

from pbcat.exceptions import SourceError

STDIN_PATH = "-"


class RecordSource:
    """Read-only byte source shared by all workers of a run.

    ``read_at`` performs a positioned read and never moves a shared cursor,
    so concurrent calls need no coordination. Platforms without ``os.pread``
    fall back to a locked seek and read.
    """

    def __init__(self, stream: IO[bytes], name: str, size: int) -> None:
        self._stream = stream
        self._fd = stream.fileno()
        self._lock = threading.Lock()
        self.name = name
        self.size = size

    @property
    def base_name(self) -> str:
        return Path(self.name).name

    def read_at(self, offset: int, length: int) -> bytes:
        if offset < 0 or length < 0:
            raise ValueError(f"invalid read range: offset={offset}, length={length}")
        length = max(0, min(length, self.size - offset))
        if length == 0:
            return b""
        if hasattr(os, "pread"):
            return os.pread(self._fd, length, offset)
        with self._lock:
            self._stream.seek(offset)
            return self._stream.read(length)


def _open_path_file(url: ParseResult) -> tuple[IO[bytes], str]:
    file_path = Path(url.path)
    return file_path.open("rb", buffering=0), str(file_path)


def _open_stdin(_url: ParseResult) -> tuple[IO[bytes], str]:
    # Positioned reads need a real file, so spool the pipe first
    spool = tempfile.TemporaryFile()  # noqa: SIM115
    shutil.copyfileobj(sys.stdin.buffer, spool)
    spool.flush()
    return spool, "<stdin>"


REGISTRY: dict[str, Callable[[ParseResult], tuple[IO[bytes], str]]] = {
    "file": _open_path_file,
    "": _open_path_file,
}


@contextmanager
def open_source(path: str | Path) -> Iterator[RecordSource]:
    path = str(path)
    if path == STDIN_PATH:
        opener = _open_stdin
        result = urlparse("")
    else:
        result = urlparse(path)
        opener = REGISTRY.get(result.scheme, _open_path_file)
        # Anything that is not a registered URL is a plain path, colons included
        if result.scheme not in REGISTRY or len(result.scheme) <= 1:
            result = result._replace(scheme="", path=path)

    stream: IO[bytes] | None = None
    try:
        try:
            stream, name = opener(result)
            size = os.fstat(stream.fileno()).st_size
        except OSError as e:
            raise SourceError(f"Error opening input file '{path}': {e}") from e
        yield RecordSource(stream, name, size)
    finally:
        if stream is not None:
            stream.close()
