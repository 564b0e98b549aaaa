"""Module-level bookkeeping applied once a module has been fully visited."""

from __future__ import annotations

import ast
import copy
from dataclasses import dataclass, field
from typing import Iterable, List, Sequence

from .directives import directive_prologue


@dataclass(slots=True)
class ModuleAccumulator:
    """Imports and success count gathered while one module is traversed."""

    imports: List[ast.stmt] = field(default_factory=list)
    succeeded: int = 0

    def record_success(self, imports: Iterable[ast.stmt] = ()) -> None:
        self.imports.extend(imports)
        self.succeeded += 1

    def drain(self) -> tuple[ast.stmt, ...]:
        """Return the collected imports and reset the accumulator."""
        drained = tuple(self.imports)
        self.imports.clear()
        return drained


def _is_string_literal(statement: ast.stmt) -> bool:
    return bool(directive_prologue([statement]))


def _is_future_import(statement: ast.stmt) -> bool:
    return isinstance(statement, ast.ImportFrom) and statement.module == "__future__" and statement.level == 0


def header_length(statements: Sequence[ast.stmt]) -> int:
    """Count the leading string literals and ``from __future__`` imports."""
    count = 0
    for statement in statements:
        if not (_is_string_literal(statement) or _is_future_import(statement)):
            break
        count += 1
    return count


def has_directive(module: ast.Module, directive: str) -> bool:
    header = module.body[: header_length(module.body)]
    return any(
        isinstance(statement, ast.Expr)
        and isinstance(statement.value, ast.Constant)
        and statement.value.value == directive
        for statement in header
    )


def has_default_import(module: ast.Module, name: str) -> bool:
    """Return whether a top-level ``import`` already binds exactly ``name``."""
    for statement in module.body:
        if not isinstance(statement, ast.Import):
            continue
        for alias in statement.names:
            bound = alias.asname or alias.name
            if bound == name:
                return True
    return False


def _directive_index(statements: Sequence[ast.stmt]) -> int:
    header = statements[: header_length(statements)]
    futures = [index for index, statement in enumerate(header) if _is_future_import(statement)]
    if futures and header and _is_string_literal(header[0]):
        # Only one string literal may precede ``from __future__`` imports.
        return futures[-1] + 1
    return 0


def finalize_module(
    module: ast.Module,
    accumulator: ModuleAccumulator,
    *,
    client_directive: str | None,
    framework_import: str | None,
) -> ast.Module:
    """Return ``module`` with the directive, framework import and collected imports.

    Nothing changes unless at least one substitution succeeded.  Re-running on
    an already finalized module never duplicates the directive or the
    framework import.
    """
    if accumulator.succeeded == 0:
        return module

    body = list(module.body)
    if client_directive and not has_directive(module, client_directive):
        body.insert(_directive_index(body), ast.Expr(value=ast.Constant(value=client_directive)))

    position = header_length(body)
    if framework_import and not has_default_import(module, framework_import):
        body.insert(position, ast.Import(names=[ast.alias(name=framework_import, asname=None)]))
        position += 1

    collected = accumulator.drain()
    body[position:position] = collected

    result = copy.copy(module)
    result.body = body
    return ast.fix_missing_locations(result)
