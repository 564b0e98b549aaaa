"""Call-site hygiene for generated imports and the fragments that use them.

Imports emitted by the generator are hoisted to module level, where several
generated fragments (and the surrounding program) share one namespace.  Every
local binding an imports block introduces is therefore renamed with a prefix
unique to the call site, and the fragment body is rewritten to match.
"""

from __future__ import annotations

import ast
import copy
import keyword
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, List, Mapping, Sequence

from .errors import HygieneError
from .fragments import parse_module_items

RenameMap = Mapping[str, str]

DEFAULT_PREFIX_TEMPLATE = "P{index}_"


def hygiene_prefix(template: str, index: int) -> str:
    """Format the identifier prefix for the call site visited at ``index``."""
    prefix = template.format(index=index)
    if not (prefix + "x").isidentifier() or keyword.iskeyword(prefix):
        raise ValueError(f"Hygiene prefix {prefix!r} does not form valid identifiers")
    return prefix


@dataclass(frozen=True, slots=True)
class RenamedImports:
    """Import statements with call-site-unique local names."""

    statements: tuple[ast.stmt, ...]
    rename_map: RenameMap


def _dunder_import(target: str, module_name: str) -> ast.Assign:
    # ``import a.b.c`` binds the top-level package ``a``; so does __import__("a.b.c").
    return ast.Assign(
        targets=[ast.Name(id=target, ctx=ast.Store())],
        value=ast.Call(
            func=ast.Name(id="__import__", ctx=ast.Load()),
            args=[ast.Constant(value=module_name)],
            keywords=[],
        ),
    )


def _bind(renames: Dict[str, str], local: str, prefix: str) -> str:
    renamed = renames.get(local)
    if renamed is None:
        renamed = f"{prefix}{local}"
        renames[local] = renamed
    return renamed


def _locate(statements: Sequence[ast.stmt], origin: ast.stmt) -> List[ast.stmt]:
    located: List[ast.stmt] = []
    for statement in statements:
        located.append(ast.fix_missing_locations(ast.copy_location(statement, origin)))
    return located


def rename_import_statements(statements: Sequence[ast.stmt], prefix: str) -> RenamedImports:
    """Rename every binding introduced by ``statements`` using ``prefix``.

    The rewritten statements carry the location of the statement they came
    from, so they can be unparsed or compiled on their own.
    """
    renames: Dict[str, str] = {}
    rewritten: List[ast.stmt] = []
    for statement in statements:
        produced: List[ast.stmt] = []
        if isinstance(statement, ast.ImportFrom):
            aliases: List[ast.alias] = []
            for alias in statement.names:
                if alias.name == "*":
                    raise HygieneError(
                        "Star imports cannot be renamed for hygiene",
                        details={"module": statement.module},
                    )
                local = alias.asname or alias.name
                aliases.append(ast.alias(name=alias.name, asname=_bind(renames, local, prefix)))
            produced.append(ast.ImportFrom(module=statement.module, names=aliases, level=statement.level))
        elif isinstance(statement, ast.Import):
            plain: List[ast.alias] = []
            for alias in statement.names:
                if alias.asname is None and "." in alias.name:
                    local = alias.name.split(".", 1)[0]
                    if plain:
                        produced.append(ast.Import(names=plain))
                        plain = []
                    produced.append(_dunder_import(_bind(renames, local, prefix), alias.name))
                    continue
                local = alias.asname or alias.name
                plain.append(ast.alias(name=alias.name, asname=_bind(renames, local, prefix)))
            if plain:
                produced.append(ast.Import(names=plain))
        else:
            raise HygieneError(
                "Imports block may only contain import statements",
                details={"statement": type(statement).__name__, "line": getattr(statement, "lineno", None)},
            )
        rewritten.extend(_locate(produced, statement))
    return RenamedImports(tuple(rewritten), MappingProxyType(dict(renames)))


def rename_imports(imports_source: str, prefix: str) -> RenamedImports:
    """Parse ``imports_source`` and rename its bindings with ``prefix``."""
    return rename_import_statements(parse_module_items(imports_source), prefix)


_COMPREHENSIONS = (ast.ListComp, ast.SetComp, ast.DictComp, ast.GeneratorExp)
_SCOPES = (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef, ast.Lambda) + _COMPREHENSIONS


def _parameter_names(arguments: ast.arguments) -> set[str]:
    names = {arg.arg for arg in arguments.posonlyargs + arguments.args + arguments.kwonlyargs}
    for extra in (arguments.vararg, arguments.kwarg):
        if extra is not None:
            names.add(extra.arg)
    return names


def _class_bindings(body: Sequence[ast.stmt]) -> set[str]:
    """Names a class body binds directly; those become class attributes."""
    names: set[str] = set()
    pending: List[ast.AST] = list(body)
    while pending:
        node = pending.pop()
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            names.add(node.name)
            continue
        if isinstance(node, _SCOPES):
            continue
        if isinstance(node, ast.Name) and isinstance(node.ctx, (ast.Store, ast.Del)):
            names.add(node.id)
        elif isinstance(node, ast.alias):
            names.add((node.asname or node.name).split(".", 1)[0])
        elif isinstance(node, ast.ExceptHandler) and node.name:
            names.add(node.name)
        pending.extend(ast.iter_child_nodes(node))
    return names


class _NameRewriter(ast.NodeTransformer):
    """Rename identifiers that resolve to a hoisted import binding.

    Bindings and references in the fragment's own scope are renamed together.
    A function or lambda parameter named like a key shadows the import, so the
    key is not renamed inside that function; names a class body binds stay as
    they are there, since they are attribute names.
    """

    def __init__(self, rename_map: RenameMap) -> None:
        # (active map, map visible to nested function bodies)
        self._scopes: List[tuple[RenameMap, RenameMap]] = [(rename_map, rename_map)]

    def _rename(self, name: str) -> str:
        return self._scopes[-1][0].get(name, name)

    def _visit_in(self, nodes: Sequence[ast.AST], active: RenameMap, enclosing: RenameMap) -> None:
        self._scopes.append((active, enclosing))
        try:
            for node in nodes:
                self.visit(node)
        finally:
            self._scopes.pop()

    def _visit_all(self, nodes: Sequence[ast.AST | None]) -> None:
        for node in nodes:
            if node is not None:
                self.visit(node)

    def _arguments(self, arguments: ast.arguments) -> None:
        # Defaults and annotations are evaluated in the enclosing scope.
        params = arguments.posonlyargs + arguments.args + arguments.kwonlyargs
        self._visit_all(arguments.defaults + arguments.kw_defaults)
        self._visit_all([arg.annotation for arg in params])
        for extra in (arguments.vararg, arguments.kwarg):
            if extra is not None:
                self._visit_all([extra.annotation])

    def _function_scope(self, arguments: ast.arguments) -> RenameMap:
        shadowed = _parameter_names(arguments)
        outer = self._scopes[-1][1]
        return {name: renamed for name, renamed in outer.items() if name not in shadowed}

    # The rewriter works on a private deep copy, so nodes are updated in place.
    def visit_Name(self, node: ast.Name) -> ast.Name:
        node.id = self._rename(node.id)
        return node

    def visit_Global(self, node: ast.Global) -> ast.Global:
        node.names = [self._rename(name) for name in node.names]
        return node

    def visit_Nonlocal(self, node: ast.Nonlocal) -> ast.Nonlocal:
        node.names = [self._rename(name) for name in node.names]
        return node

    def visit_alias(self, node: ast.alias) -> ast.alias:
        if node.name == "*" or (node.asname is None and "." in node.name):
            return node
        local = node.asname or node.name
        renamed = self._rename(local)
        if renamed != local:
            node.asname = renamed
        return node

    def visit_ExceptHandler(self, node: ast.ExceptHandler) -> ast.ExceptHandler:
        self.generic_visit(node)
        if node.name:
            node.name = self._rename(node.name)
        return node

    def visit_MatchAs(self, node: ast.MatchAs) -> ast.MatchAs:
        self.generic_visit(node)
        if node.name:
            node.name = self._rename(node.name)
        return node

    def visit_MatchStar(self, node: ast.MatchStar) -> ast.MatchStar:
        if node.name:
            node.name = self._rename(node.name)
        return node

    def visit_MatchMapping(self, node: ast.MatchMapping) -> ast.MatchMapping:
        self.generic_visit(node)
        if node.rest:
            node.rest = self._rename(node.rest)
        return node

    def _visit_function(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> ast.AST:
        self._visit_all(node.decorator_list)
        self._arguments(node.args)
        self._visit_all([node.returns])
        node.name = self._rename(node.name)
        scope = self._function_scope(node.args)
        self._visit_in(node.body, scope, scope)
        return node

    def visit_FunctionDef(self, node: ast.FunctionDef) -> ast.AST:
        return self._visit_function(node)

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> ast.AST:
        return self._visit_function(node)

    def visit_Lambda(self, node: ast.Lambda) -> ast.AST:
        self._arguments(node.args)
        scope = self._function_scope(node.args)
        self._visit_in([node.body], scope, scope)
        return node

    def visit_ClassDef(self, node: ast.ClassDef) -> ast.AST:
        self._visit_all(node.decorator_list + node.bases + node.keywords)
        node.name = self._rename(node.name)
        active, enclosing = self._scopes[-1]
        attributes = _class_bindings(node.body)
        class_scope = {name: renamed for name, renamed in active.items() if name not in attributes}
        # Methods do not see the class scope; their free names resolve outside it.
        self._visit_in(node.body, class_scope, enclosing)
        return node


def apply_renames(statements: Sequence[ast.stmt], rename_map: RenameMap) -> List[ast.stmt]:
    """Return a rebuilt copy of ``statements`` with imported identifiers renamed.

    Names, ``global``/``nonlocal`` declarations and the binding sites of the
    fragment's own scope (``def``/``class`` names, ``except ... as``, match
    captures, local import aliases) whose identifier is a key of
    ``rename_map`` change together.  Attribute names and keyword arguments are
    left as they are, and so is everything inside a function whose parameters
    shadow the key.  The input statements are not modified.
    """
    copied = [copy.deepcopy(statement) for statement in statements]
    if not rename_map:
        return copied
    rewriter = _NameRewriter(rename_map)
    return [rewriter.visit(statement) for statement in copied]
