"""Depth-first transform that splices generated code into prompt functions."""

from __future__ import annotations

import ast
import copy
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Sequence

from ..config import EngineConfig, PendingPolicy
from .directives import DirectiveStatus, scan_directive
from .error_body import (
    GENERIC_FAILURE_MESSAGE,
    INCOMPLETE_PROMPT_MESSAGE,
    MISSING_SUBSTITUTION_MESSAGE,
    imports_needed_message,
    make_error_body,
)
from .errors import FragmentParseError
from .finalize import ModuleAccumulator, finalize_module
from .fragments import parse_statements
from .hygiene import apply_renames, hygiene_prefix, rename_imports
from .spans import ByteOffsetCalculator, Span
from .store import Substitution, SubstitutionStore

LOGGER = logging.getLogger(__name__)
DIAGNOSTICS_LOGGER = logging.getLogger("useprompt.diagnostics")

FunctionNode = ast.FunctionDef | ast.AsyncFunctionDef


class SiteStatus(str, Enum):
    """Outcome recorded for each function carrying a prompt directive."""

    SUBSTITUTED = "SUBSTITUTED"
    PENDING = "PENDING"
    MISSING = "MISSING"
    INCOMPLETE = "INCOMPLETE"
    IMPORTS_NEEDED = "IMPORTS_NEEDED"
    FAILED = "FAILED"


@dataclass(slots=True)
class SiteOutcome:
    """What happened to one directive-bearing function."""

    name: str
    span: Span
    index: int
    status: SiteStatus
    prompt: str | None = None
    message: str | None = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "start": self.span.start,
            "end": self.span.end,
            "index": self.index,
            "status": self.status.value,
            "prompt": self.prompt,
            "message": self.message,
            "details": dict(self.details),
        }


@dataclass(slots=True)
class TransformReport:
    """Per-site outcomes collected during one transform pass."""

    sites: List[SiteOutcome] = field(default_factory=list)

    def count(self, status: SiteStatus) -> int:
        return sum(1 for site in self.sites if site.status is status)

    @property
    def ok(self) -> bool:
        return not any(
            site.status in (SiteStatus.FAILED, SiteStatus.INCOMPLETE, SiteStatus.IMPORTS_NEEDED, SiteStatus.MISSING)
            for site in self.sites
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "sites": [site.to_dict() for site in self.sites],
            "counts": {status.value: self.count(status) for status in SiteStatus},
        }


@dataclass(slots=True)
class TransformResult:
    """Transformed module together with its report."""

    module: ast.Module
    report: TransformReport

    def render(self) -> str:
        return ast.unparse(self.module)


def _relocate(statements: Sequence[ast.stmt], anchor: ast.AST) -> List[ast.stmt]:
    for statement in statements:
        for node in ast.walk(statement):
            ast.copy_location(node, anchor)
    return list(statements)


class PromptTransformer(ast.NodeTransformer):
    """Replace the bodies of ``"use prompt: ..."`` functions with cached code.

    Function nodes are handled after their children (post-order), so nested
    prompt functions are resolved before the enclosing function is scanned.
    Each visited function takes the next value of a visit counter, from which
    the hygiene prefix of its imports is derived.  The caller's tree is never
    modified: :meth:`transform` works on a deep copy.
    """

    def __init__(
        self,
        store: SubstitutionStore,
        source: str | bytes,
        config: EngineConfig | None = None,
    ) -> None:
        self._store = store
        self._calculator = ByteOffsetCalculator(source)
        self._config = config or EngineConfig()
        self._visit_index = 0
        self._accumulator = ModuleAccumulator()
        self._report = TransformReport()

    def transform(self, tree: ast.Module) -> TransformResult:
        self._visit_index = 0
        self._accumulator = ModuleAccumulator()
        self._report = TransformReport()
        module = self.visit(copy.deepcopy(tree))
        return TransformResult(module=module, report=self._report)

    def visit_Module(self, node: ast.Module) -> ast.Module:
        node = self.generic_visit(node)
        return finalize_module(
            node,
            self._accumulator,
            client_directive=self._config.client_directive,
            framework_import=self._config.framework_import,
        )

    def visit_FunctionDef(self, node: ast.FunctionDef) -> ast.FunctionDef:
        return self._visit_function(node)

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> ast.AsyncFunctionDef:
        return self._visit_function(node)

    def _visit_function(self, node: FunctionNode) -> FunctionNode:
        node = self.generic_visit(node)
        index = self._visit_index
        self._visit_index += 1
        return self._transform_function(node, index)

    def _transform_function(self, node: FunctionNode, index: int) -> FunctionNode:
        if not node.body:
            return node
        scan = scan_directive(node.body)
        if scan.status is DirectiveStatus.NOT_FOUND:
            return node

        span = self._calculator.span_of(node)
        if scan.status is DirectiveStatus.EMPTY or scan.prompt is None:
            return self._fail(node, span, index, SiteStatus.INCOMPLETE, None, INCOMPLETE_PROMPT_MESSAGE)

        prompt = scan.prompt
        DIAGNOSTICS_LOGGER.info("%d %d %s", span.start, span.end, prompt)
        substitution = self._store.lookup(span.start, span.end, prompt)

        if substitution is None:
            if self._config.pending_policy is PendingPolicy.SILENT:
                self._record(node, span, index, SiteStatus.PENDING, prompt)
                return node
            return self._fail(node, span, index, SiteStatus.MISSING, prompt, MISSING_SUBSTITUTION_MESSAGE)

        if substitution.imports is not None and (not self._config.splice_imports or not substitution.has_code):
            message = imports_needed_message(substitution.imports)
            return self._fail(node, span, index, SiteStatus.IMPORTS_NEEDED, prompt, message)

        try:
            body, imports = self._materialize(substitution, index, is_async=isinstance(node, ast.AsyncFunctionDef))
        except FragmentParseError as error:
            LOGGER.warning(
                "Generated code for %s at %s could not be spliced: %s",
                node.name,
                span,
                error,
            )
            DIAGNOSTICS_LOGGER.info("Error: %s %s", error, error.details)
            return self._fail(
                node,
                span,
                index,
                SiteStatus.FAILED,
                prompt,
                GENERIC_FAILURE_MESSAGE,
                details={"reason": str(error), **error.details},
            )

        self._accumulator.record_success(imports)
        self._record(node, span, index, SiteStatus.SUBSTITUTED, prompt)
        return self._replace_body(node, body)

    def _materialize(
        self, substitution: Substitution, index: int, *, is_async: bool
    ) -> tuple[List[ast.stmt], tuple[ast.stmt, ...]]:
        if substitution.imports is None:
            return parse_statements(substitution.code, is_async=is_async), ()
        prefix = hygiene_prefix(self._config.hygiene_prefix, index)
        renamed = rename_imports(substitution.imports, prefix)
        body = apply_renames(parse_statements(substitution.code, is_async=is_async), renamed.rename_map)
        return body, renamed.statements

    def _fail(
        self,
        node: FunctionNode,
        span: Span,
        index: int,
        status: SiteStatus,
        prompt: str | None,
        message: str,
        *,
        details: Dict[str, Any] | None = None,
    ) -> FunctionNode:
        self._record(node, span, index, status, prompt, message, details)
        return self._replace_body(node, make_error_body(message, self._config.error_class))

    def _record(
        self,
        node: FunctionNode,
        span: Span,
        index: int,
        status: SiteStatus,
        prompt: str | None,
        message: str | None = None,
        details: Dict[str, Any] | None = None,
    ) -> None:
        self._report.sites.append(
            SiteOutcome(
                name=node.name,
                span=span,
                index=index,
                status=status,
                prompt=prompt,
                message=message,
                details=dict(details or {}),
            )
        )

    @staticmethod
    def _replace_body(node: FunctionNode, body: List[ast.stmt]) -> FunctionNode:
        replaced = copy.copy(node)
        replaced.body = _relocate(body, node.body[0])
        return replaced


def transform_module(
    tree: ast.Module,
    *,
    source: str | bytes,
    cache_path: Path | str | None = None,
    store: SubstitutionStore | None = None,
    config: EngineConfig | None = None,
) -> TransformResult:
    """Transform ``tree`` using the substitutions cached at ``cache_path``.

    ``source`` must be the text ``tree`` was parsed from; function spans are
    byte offsets into it.  Raises :class:`~useprompt.transform.errors.CacheLoadError`
    when the cache exists but is malformed.
    """
    engine_config = config or EngineConfig()
    if store is None:
        store = SubstitutionStore.from_path(cache_path if cache_path is not None else engine_config.cache_path)
    return PromptTransformer(store, source, engine_config).transform(tree)


def transform_source(
    source: str | bytes,
    *,
    filename: str = "<unknown>",
    cache_path: Path | str | None = None,
    store: SubstitutionStore | None = None,
    config: EngineConfig | None = None,
) -> TransformResult:
    """Parse ``source`` and run :func:`transform_module` on it."""
    tree = ast.parse(source, filename=filename)
    return transform_module(tree, source=source, cache_path=cache_path, store=store, config=config)
