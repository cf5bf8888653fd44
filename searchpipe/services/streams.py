"""Line-oriented stdio helpers shared by the export and import commands."""

import gzip
import io
import json
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from typing import Any, BinaryIO, TextIO


class LineSink:
    """
    Thread-safe NDJSON writer.

    Export workers share one sink; each document is written as a whole line
    under a lock so lines from sibling workers never interleave.
    """

    def __init__(self, stream: TextIO) -> None:
        self._stream = stream
        self._lock = threading.Lock()

    def emit(self, document: dict[str, Any]) -> None:
        line = json.dumps(document) + "\n"
        with self._lock:
            self._stream.write(line)

    def flush(self) -> None:
        with self._lock:
            self._stream.flush()


@contextmanager
def open_output(raw: BinaryIO, *, compress: bool = False) -> Iterator[TextIO]:
    """Wrap a binary output stream as text, gzip-compressed when asked."""
    target: BinaryIO = gzip.GzipFile(fileobj=raw, mode="wb") if compress else raw
    text = io.TextIOWrapper(target, encoding="utf-8", newline="\n", write_through=True)
    try:
        yield text
    finally:
        text.flush()
        text.detach()
        if compress:
            target.close()
        raw.flush()


@contextmanager
def open_input(raw: BinaryIO, *, compress: bool = False) -> Iterator[BinaryIO]:
    """
    Yield the binary input stream, gunzipping it when asked.

    Lines stay undecoded here so a line that is not valid UTF-8 only fails
    its own record.
    """
    if not compress:
        yield raw
        return
    source = gzip.GzipFile(fileobj=raw, mode="rb")
    try:
        yield source
    finally:
        source.close()


def iter_lines(stream: Iterable[bytes]) -> Iterator[bytes]:
    """
    Lazily yield raw input lines without their line terminator.

    The iterator is single-consumer and cannot be restarted; it ends at the
    end of the stream.
    """
    for line in stream:
        yield line.rstrip(b"\r\n")
