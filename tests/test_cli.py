from __future__ import annotations

import json

from typer.testing import CliRunner

from conftest import PromptProject, site_key
from useprompt.cli import app


def test_transform_writes_spliced_source(prompt_project: PromptProject) -> None:
    key = site_key(prompt_project.source, "greet")
    prompt_project.write_cache({key: {"code": "return f'Hello, {name}!'", "imports": None}})
    output = prompt_project.root / "out" / "greeter.py"

    runner = CliRunner()
    result = runner.invoke(
        app,
        [
            "transform",
            str(prompt_project.source_path),
            "--cache",
            str(prompt_project.cache_path),
            "--config",
            str(prompt_project.root / "missing.yaml"),
            "--output",
            str(output),
        ],
        catch_exceptions=False,
    )

    assert result.exit_code == 0, result.output
    transformed = output.read_text(encoding="utf-8")
    assert "return f'Hello, {name}!'" in transformed
    assert transformed.startswith('"""use client"""')
    namespace: dict[str, object] = {}
    exec(compile(transformed, str(output), "exec"), namespace)
    assert namespace["greet"]("Ada") == "Hello, Ada!"  # type: ignore[operator]


def test_transform_reports_sites_and_honours_policy(prompt_project: PromptProject) -> None:
    runner = CliRunner()
    result = runner.invoke(
        app,
        [
            "transform",
            str(prompt_project.source_path),
            "--cache",
            str(prompt_project.cache_path),
            "--config",
            str(prompt_project.root / "missing.yaml"),
            "--policy",
            "diagnostic",
            "--output",
            str(prompt_project.root / "out.py"),
            "--report",
        ],
        catch_exceptions=False,
    )

    assert result.exit_code == 0, result.output
    assert '"status": "MISSING"' in result.output
    assert "Missing substitution data" in (prompt_project.root / "out.py").read_text(encoding="utf-8")


def test_transform_fails_on_malformed_cache(prompt_project: PromptProject) -> None:
    prompt_project.cache_path.parent.mkdir(parents=True)
    prompt_project.cache_path.write_text("{broken", encoding="utf-8")

    runner = CliRunner()
    result = runner.invoke(
        app,
        ["transform", str(prompt_project.source_path), "--cache", str(prompt_project.cache_path)],
    )

    assert result.exit_code == 1
    assert "Failed to load substitution cache" in result.output


def test_transform_rejects_invalid_config(prompt_project: PromptProject) -> None:
    config_path = prompt_project.root / "use-prompt.yaml"
    config_path.write_text("transform:\n  pending_policy: sometimes\n", encoding="utf-8")

    runner = CliRunner()
    result = runner.invoke(
        app,
        ["transform", str(prompt_project.source_path), "--config", str(config_path)],
    )

    assert result.exit_code == 1
    assert "Failed to load config" in result.output


def test_scan_lists_directive_sites(prompt_project: PromptProject) -> None:
    start, end, prompt = site_key(prompt_project.source, "greet")

    runner = CliRunner()
    result = runner.invoke(app, ["scan", str(prompt_project.source_path), "--json"], catch_exceptions=False)

    assert result.exit_code == 0, result.output
    sites = json.loads(result.stdout)
    assert sites == [
        {
            "name": "greet",
            "start": start,
            "end": end,
            "prompt": prompt,
            "signature": "def greet(name: str) -> str:",
        }
    ]


def test_spans_are_offsets_into_the_file_on_disk(prompt_project: PromptProject) -> None:
    raw = b"import os\r\n\r\ndef shout(word):\r\n    \"use prompt: upper-case word\"\r\n"
    prompt_project.source_path.write_bytes(raw)
    start = raw.index(b"def shout")
    end = raw.index(b"\r\n", raw.index(b"use prompt"))
    prompt_project.write_cache({(start, end, "upper-case word"): {"code": "return word.upper()"}})

    runner = CliRunner()
    scanned = runner.invoke(app, ["scan", str(prompt_project.source_path), "--json"], catch_exceptions=False)
    result = runner.invoke(
        app,
        ["transform", str(prompt_project.source_path), "--cache", str(prompt_project.cache_path)],
        catch_exceptions=False,
    )

    assert scanned.exit_code == 0, scanned.output
    site = json.loads(scanned.stdout)[0]
    assert (site["start"], site["end"]) == (start, end)
    assert result.exit_code == 0, result.output
    assert "return word.upper()" in result.stdout


def test_module_entry_point_prints_transformed_source(prompt_project: PromptProject) -> None:
    key = site_key(prompt_project.source, "greet")
    prompt_project.write_cache({key: {"code": "return name.upper()"}})

    completed = prompt_project.run_cli("transform", "greeter.py")

    assert completed.returncode == 0, completed.stderr
    assert "return name.upper()" in completed.stdout
    assert "return 42" in completed.stdout
