"""Replacement bodies that defer per-function failures to runtime."""

from __future__ import annotations

import ast
from typing import List

INCOMPLETE_PROMPT_MESSAGE = "🤖 Incomplete prompt!"
MISSING_SUBSTITUTION_MESSAGE = "🤖 Missing substitution data. Whoops that's probably my fault."
GENERIC_FAILURE_MESSAGE = "Couldn't make it happen."
IMPORTS_NEEDED_TEMPLATE = "It would appear you need to add some imports.\n{imports}"

DEFAULT_ERROR_CLASS = "RuntimeError"


def _error_callee(error_class: str) -> ast.expr:
    parts = error_class.split(".")
    node: ast.expr = ast.Name(id=parts[0], ctx=ast.Load())
    for attribute in parts[1:]:
        node = ast.Attribute(value=node, attr=attribute, ctx=ast.Load())
    return node


def make_error_body(message: str, error_class: str = DEFAULT_ERROR_CLASS) -> List[ast.stmt]:
    """Return a one-statement body raising ``error_class(message)``."""
    raise_stmt = ast.Raise(
        exc=ast.Call(
            func=_error_callee(error_class),
            args=[ast.Constant(value=message)],
            keywords=[],
        ),
        cause=None,
    )
    return [raise_stmt]


def imports_needed_message(imports: str) -> str:
    return IMPORTS_NEEDED_TEMPLATE.format(imports=imports)
