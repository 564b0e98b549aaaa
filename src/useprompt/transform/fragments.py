"""Parse generated code fragments in isolation from any real file."""

from __future__ import annotations

import ast
import textwrap
from typing import List, Sequence

from .errors import FragmentParseError

WRAPPER_NAME = "__use_prompt_fragment__"
_FRAGMENT_FILENAME = "<use-prompt fragment>"


def _normalize(code: str) -> str:
    # Only a fragment that starts indented is dedented; otherwise the text
    # (string literals included) reaches the parser exactly as written.
    body = code.strip("\n")
    if body[:1] in (" ", "\t"):
        body = textwrap.dedent(body)
    return body


def wrap_statements(statements: Sequence[ast.stmt], *, is_async: bool = False) -> ast.Module:
    """Return a module holding ``statements`` as the body of a synthetic function."""
    keyword = "async def" if is_async else "def"
    module = ast.parse(f"{keyword} {WRAPPER_NAME}():\n    pass\n", filename=_FRAGMENT_FILENAME)
    wrapper = module.body[0]
    if not isinstance(wrapper, (ast.FunctionDef, ast.AsyncFunctionDef)):
        raise FragmentParseError("Synthetic wrapper did not parse as a function")
    wrapper.body = list(statements)
    return module


def parse_statements(code: str, *, is_async: bool = False) -> List[ast.stmt]:
    """Parse ``code`` as a statement block and return the parsed statements.

    The statements are wrapped in a synthetic function (``async def`` when
    ``is_async``) and compiled, so ``return``, ``yield`` and ``await`` are
    checked the way they would be inside the function being replaced, and
    errors the compiler reports (``break`` outside a loop, ``await`` in a plain
    function, an unbound ``nonlocal``) surface here instead of in the host
    module.  Blank code produces a lone ``pass`` so an installed body is
    never empty.
    """
    if not code.strip():
        return [ast.Pass()]

    try:
        # The parser accepts ``return`` and ``await`` at module level; the
        # compile step below rejects them where the wrapper would.
        module = ast.parse(_normalize(code), filename=_FRAGMENT_FILENAME)
        statements = list(module.body)
        compile(wrap_statements(statements, is_async=is_async), _FRAGMENT_FILENAME, "exec", dont_inherit=True)
    except SyntaxError as error:
        raise FragmentParseError(
            f"Generated code is not valid Python: {error.msg}",
            diagnostic=error,
        ) from error
    return statements


def parse_module_items(code: str) -> List[ast.stmt]:
    """Parse ``code`` directly as a module and return its top-level statements."""
    try:
        module = ast.parse(_normalize(code), filename=_FRAGMENT_FILENAME)
    except SyntaxError as error:
        raise FragmentParseError(
            f"Generated imports are not valid Python: {error.msg}",
            diagnostic=error,
        ) from error
    return list(module.body)
