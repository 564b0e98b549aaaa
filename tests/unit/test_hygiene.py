from __future__ import annotations

import ast

import pytest

from useprompt.transform.errors import FragmentParseError, HygieneError
from useprompt.transform.fragments import parse_statements
from useprompt.transform.hygiene import apply_renames, hygiene_prefix, rename_imports


def _render(statements) -> list[str]:
    return [ast.unparse(statement) for statement in statements]


def test_named_import_keeps_external_name_and_renames_local() -> None:
    renamed = rename_imports("from x import bar", "P2_")

    assert _render(renamed.statements) == ["from x import bar as P2_bar"]
    assert dict(renamed.rename_map) == {"bar": "P2_bar"}


def test_aliases_modules_and_relative_imports() -> None:
    source = "\n".join(
        [
            "from .helpers import load as load_data, save",
            "import json",
            "import numpy as np",
        ]
    )

    renamed = rename_imports(source, "P0_")

    assert _render(renamed.statements) == [
        "from .helpers import load as P0_load_data, save as P0_save",
        "import json as P0_json",
        "import numpy as P0_np",
    ]
    assert dict(renamed.rename_map) == {
        "load_data": "P0_load_data",
        "save": "P0_save",
        "json": "P0_json",
        "np": "P0_np",
    }


def test_dotted_import_binds_top_level_package() -> None:
    renamed = rename_imports("import os.path, sys", "P1_")

    assert _render(renamed.statements) == ["P1_os = __import__('os.path')", "import sys as P1_sys"]
    assert renamed.rename_map["os"] == "P1_os"


def test_star_imports_cannot_be_renamed() -> None:
    with pytest.raises(HygieneError):
        rename_imports("from os.path import *", "P0_")


def test_non_import_statements_are_rejected() -> None:
    with pytest.raises(FragmentParseError):
        rename_imports("import os\nos.environ.clear()", "P0_")


def test_distinct_prefixes_never_collide() -> None:
    first = rename_imports("from a import item", hygiene_prefix("P{index}_", 1))
    second = rename_imports("from b import item", hygiene_prefix("P{index}_", 2))

    assert first.rename_map["item"] != second.rename_map["item"]


def test_hygiene_prefix_rejects_non_identifier_templates() -> None:
    assert hygiene_prefix("_gen{index}_", 7) == "_gen7_"
    with pytest.raises(ValueError):
        hygiene_prefix("{index}-", 3)


def test_apply_renames_rewrites_bare_names_only() -> None:
    body = parse_statements("result = bar(bar.attr, bar=baz)\nobj.bar = bar\nreturn result")

    rewritten = apply_renames(body, {"bar": "P2_bar"})

    assert _render(rewritten) == [
        "result = P2_bar(P2_bar.attr, bar=baz)",
        "obj.bar = P2_bar",
        "return result",
    ]
    # The input statements are left untouched.
    assert _render(body)[0] == "result = bar(bar.attr, bar=baz)"


def test_apply_renames_updates_global_declarations() -> None:
    body = parse_statements("global cache\ncache = {}")

    rewritten = apply_renames(body, {"cache": "P0_cache"})

    assert _render(rewritten) == ["global P0_cache", "P0_cache = {}"]


def test_empty_rename_map_is_a_copying_no_op() -> None:
    body = parse_statements("return value")

    rewritten = apply_renames(body, {})

    assert _render(rewritten) == ["return value"]
    assert rewritten[0] is not body[0]


def test_renamed_imports_are_located_and_compile() -> None:
    renamed = rename_imports("import os.path, sys\nfrom json import dumps", "P0_")

    module = ast.Module(body=list(renamed.statements), type_ignores=[])
    namespace: dict = {}
    exec(compile(module, "<imports>", "exec"), namespace)

    assert namespace["P0_os"].path.sep == namespace["P0_os"].sep
    assert callable(namespace["P0_dumps"])


def test_parameters_shadowing_an_import_are_left_alone() -> None:
    body = parse_statements(
        "def scale(bar, factor=bar):\n    return bar * factor\n"
        "ordered = sorted(items, key=lambda bar: -bar)\n"
        "return scale(ordered, bar)"
    )

    rewritten = apply_renames(body, {"bar": "P0_bar"})

    assert _render(rewritten) == [
        "def scale(bar, factor=P0_bar):\n    return bar * factor",
        "ordered = sorted(items, key=lambda bar: -bar)",
        "return scale(ordered, P0_bar)",
    ]


def test_bindings_in_the_fragment_scope_are_renamed_with_their_uses() -> None:
    body = parse_statements(
        "\n".join(
            [
                "try:",
                "    value = parse()",
                "except ValueError as bar:",
                "    return str(bar)",
                "def helper():",
                "    return helper",
                "match value:",
                "    case [first, *helper]:",
                "        return helper",
                "return helper()",
            ]
        )
    )

    rewritten = apply_renames(body, {"bar": "P3_bar", "helper": "P3_helper"})
    rendered = "\n".join(_render(rewritten))

    assert "except ValueError as P3_bar:\n    return str(P3_bar)" in rendered
    assert "def P3_helper():\n    return P3_helper" in rendered
    assert "case [first, *P3_helper]:\n        return P3_helper" in rendered
    assert rendered.endswith("return P3_helper()")


def test_class_attributes_keep_their_names() -> None:
    body = parse_statements(
        "class Settings:\n"
        "    sep = sep\n"
        "    def joined(self, parts):\n"
        "        return sep.join(parts)\n"
        "return Settings.sep"
    )

    rewritten = apply_renames(body, {"sep": "P0_sep"})

    assert _render(rewritten)[0] == (
        "class Settings:\n    sep = sep\n\n    def joined(self, parts):\n        return P0_sep.join(parts)"
    )


def test_fragment_local_imports_follow_the_rename() -> None:
    body = parse_statements("from os import path\nreturn path.join('a', 'b')")

    rewritten = apply_renames(body, {"path": "P0_path"})

    assert _render(rewritten) == ["from os import path as P0_path", "return P0_path.join('a', 'b')"]
