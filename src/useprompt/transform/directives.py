"""Recognise ``"use prompt: ..."`` literals in a function's directive prologue."""

from __future__ import annotations

import ast
import copy
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Sequence

from .spans import ByteOffsetCalculator, Span

PROMPT_PREFIX = "use prompt:"

_FUNCTION_TYPES = (ast.FunctionDef, ast.AsyncFunctionDef)


class DirectiveStatus(str, Enum):
    """Outcome of scanning a function body for a prompt directive."""

    NOT_FOUND = "NOT_FOUND"
    FOUND = "FOUND"
    EMPTY = "EMPTY"


@dataclass(frozen=True, slots=True)
class DirectiveScan:
    """Result of :func:`scan_directive`; ``prompt`` is set only when found."""

    status: DirectiveStatus
    prompt: str | None = None

    @property
    def found(self) -> bool:
        return self.status is DirectiveStatus.FOUND


NOT_FOUND = DirectiveScan(DirectiveStatus.NOT_FOUND)
EMPTY = DirectiveScan(DirectiveStatus.EMPTY)


@dataclass(frozen=True, slots=True)
class PromptRequest:
    """A function carrying a valid prompt directive, as seen in the source."""

    name: str
    span: Span
    prompt: str
    signature: str

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "start": self.span.start,
            "end": self.span.end,
            "prompt": self.prompt,
            "signature": self.signature,
        }


def _string_literal(statement: ast.stmt) -> str | None:
    if not isinstance(statement, ast.Expr):
        return None
    value = statement.value
    if isinstance(value, ast.Constant) and isinstance(value.value, str):
        return value.value
    return None


def directive_prologue(statements: Sequence[ast.stmt]) -> List[str]:
    """Return the values of the leading run of bare string-literal statements."""
    prologue: List[str] = []
    for statement in statements:
        literal = _string_literal(statement)
        if literal is None:
            break
        prologue.append(literal)
    return prologue


def scan_directive(statements: Sequence[ast.stmt]) -> DirectiveScan:
    """Find the first ``use prompt:`` literal in the prologue of ``statements``."""
    for literal in directive_prologue(statements):
        if not literal.startswith(PROMPT_PREFIX):
            continue
        prompt = literal[len(PROMPT_PREFIX) :].strip()
        if not prompt:
            return EMPTY
        return DirectiveScan(DirectiveStatus.FOUND, prompt)
    return NOT_FOUND


def iter_function_nodes(tree: ast.AST) -> Iterator[ast.FunctionDef | ast.AsyncFunctionDef]:
    """Yield function nodes in source order."""
    nodes = [node for node in ast.walk(tree) if isinstance(node, _FUNCTION_TYPES)]
    nodes.sort(key=lambda node: (node.lineno, node.col_offset))
    yield from nodes


def _signature(node: ast.FunctionDef | ast.AsyncFunctionDef) -> str:
    """Render the function header without decorators or body."""
    header = copy.copy(node)
    header.decorator_list = []
    header.body = [ast.Expr(ast.Constant(Ellipsis))]
    return ast.unparse(header).rsplit("\n", 1)[0]


def find_directives(tree: ast.AST, source: str | bytes) -> List[PromptRequest]:
    """List every function whose prologue carries a non-empty prompt directive.

    This is a read-only view used for reporting; it neither consults nor
    writes the substitution cache.
    """
    calculator = ByteOffsetCalculator(source)
    requests: List[PromptRequest] = []
    for node in iter_function_nodes(tree):
        scan = scan_directive(node.body)
        if not scan.found or scan.prompt is None:
            continue
        requests.append(
            PromptRequest(
                name=node.name,
                span=calculator.span_of(node),
                prompt=scan.prompt,
                signature=_signature(node),
            )
        )
    return requests
