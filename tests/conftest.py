from __future__ import annotations

import ast
import json
import os
import subprocess
import sys
import textwrap
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from useprompt.transform import find_directives  # noqa: E402


def site_key(source: str, name: str) -> tuple[int, int, str]:
    """Return ``(start, end, prompt)`` of the directive function called ``name``."""
    for request in find_directives(ast.parse(source), source):
        if request.name == name:
            return request.span.start, request.span.end, request.prompt
    raise KeyError(name)


def cache_blob(entries: Mapping[tuple[int, int, str], Mapping[str, Any]]) -> dict[str, Any]:
    """Build the nested cache payload from flat ``(start, end, prompt)`` keys."""
    payload: dict[str, Any] = {}
    for (start, end, prompt), substitution in entries.items():
        payload.setdefault(str(start), {}).setdefault(str(end), {})[prompt] = dict(substitution)
    return payload


@dataclass(slots=True)
class PromptProject:
    """Fixture payload representing a source file plus its substitution cache."""

    root: Path
    source_path: Path
    cache_path: Path

    @property
    def source(self) -> str:
        return self.source_path.read_bytes().decode("utf-8")

    def write_cache(self, entries: Mapping[tuple[int, int, str], Mapping[str, Any]]) -> None:
        self.cache_path.parent.mkdir(parents=True, exist_ok=True)
        self.cache_path.write_text(json.dumps(cache_blob(entries)), encoding="utf-8")

    def run_cli(self, *args: str) -> subprocess.CompletedProcess[str]:
        """Invoke ``python -m useprompt.cli`` with the provided arguments."""

        env = os.environ.copy()
        pythonpath = str(SRC)
        if env.get("PYTHONPATH"):
            pythonpath = os.pathsep.join([pythonpath, env["PYTHONPATH"]])
        env["PYTHONPATH"] = pythonpath

        command = [sys.executable, "-m", "useprompt.cli", *args]
        return subprocess.run(  # noqa: S603 - command constructed from known values
            command,
            cwd=self.root,
            env=env,
            capture_output=True,
            text=True,
            check=False,
        )


@pytest.fixture()
def prompt_project(tmp_path: Path) -> PromptProject:
    """Create a small module with one prompt function and no cache yet."""

    root = tmp_path / "project"
    root.mkdir()
    source_path = root / "greeter.py"
    source_path.write_text(
        textwrap.dedent(
            '''
            """Greeting helpers."""

            import os


            def greet(name: str) -> str:
                "use prompt: return a friendly greeting for name"


            def untouched() -> int:
                return 42
            '''
        ).lstrip(),
        encoding="utf-8",
    )
    return PromptProject(
        root=root,
        source_path=source_path,
        cache_path=root / ".use-prompt" / "cache.json",
    )
