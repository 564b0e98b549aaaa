"""Byte-offset spans for function nodes parsed with :mod:`ast`."""

from __future__ import annotations

import ast
import re
from dataclasses import dataclass
from typing import List

_LINE_BREAK = re.compile(r"\r\n|\r|\n")


@dataclass(frozen=True, slots=True)
class Span:
    """Half-open ``[start, end)`` byte interval in the original source."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start < 0 or self.start >= self.end:
            raise ValueError(f"Invalid span [{self.start}, {self.end})")

    def __str__(self) -> str:
        return f"{self.start} {self.end}"


class ByteOffsetCalculator:
    """Utility that converts ``ast`` line/column data into byte offsets.

    ``ast`` reports ``col_offset`` as a UTF-8 byte offset within its line, so
    only the byte position of every line start has to be known.
    """

    def __init__(self, source: str | bytes) -> None:
        if isinstance(source, bytes):
            source = source.decode("utf-8")
        self._line_offsets: List[int] = [0]
        running = 0
        position = 0
        for match in _LINE_BREAK.finditer(source):
            running += len(source[position : match.end()].encode("utf-8"))
            position = match.end()
            self._line_offsets.append(running)
        self._total = running + len(source[position:].encode("utf-8"))

    @property
    def total_bytes(self) -> int:
        return self._total

    def offset(self, line: int, column: int) -> int:
        if line < 1 or line > len(self._line_offsets):
            raise ValueError(f"Line out of range: {line}")
        offset = self._line_offsets[line - 1] + column
        if column < 0 or offset > self._total:
            raise ValueError(f"Column out of range: {column}")
        return offset

    def span_of(self, node: ast.AST) -> Span:
        """Return the byte span covered by ``node``."""
        end_line = getattr(node, "end_lineno", None)
        end_column = getattr(node, "end_col_offset", None)
        if end_line is None or end_column is None:
            raise ValueError(f"{type(node).__name__} node carries no end position")
        start = self.offset(node.lineno, node.col_offset)
        end = self.offset(end_line, end_column)
        return Span(start, end)
