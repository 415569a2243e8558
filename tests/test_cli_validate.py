from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from tophosts.cli import app, cfg


def _isolate(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setattr(Path, "home", classmethod(lambda cls: home))
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("TOPHOSTS_CONFIG_DIR", raising=False)


def test_validate_lists_columns(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _isolate(monkeypatch, tmp_path)
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    (config_dir / "widget.yaml").write_text(
        "widget:\n"
        "  name: Disk usage\n"
        "  column: 1\n"
        "  columns:\n"
        "    - {name: Host, data: host_name}\n"
        "    - {name: Used, item: Used disk space, aggregate_function: max}\n"
    )
    runner = CliRunner()

    result = runner.invoke(app, ["validate"])

    assert result.exit_code == 0, result.output
    assert "Disk usage" in result.stdout
    assert "Used disk space" in result.stdout
    assert "Widget configuration is valid" in result.stdout


def test_validate_reports_every_error(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _isolate(monkeypatch, tmp_path)
    runner = CliRunner()

    result = runner.invoke(
        app,
        ["validate", "--set", "widget.columns=[{name: '', item: CPU}, {name: Load}]", "--set", "widget.order=sideways"],
    )

    assert result.exit_code == 1
    assert 'field "columns/1/name"' in result.stdout
    assert 'field "columns/2/item"' in result.stdout
    assert 'field "order"' in result.stdout


def test_validate_show_template(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _isolate(monkeypatch, tmp_path)

    def forbidden_config(*_args, **_kwargs):  # pragma: no cover - should not run
        raise AssertionError("config loading must not occur when printing the template")

    monkeypatch.setattr(cfg, "load_project_config", forbidden_config)
    runner = CliRunner()

    result = runner.invoke(app, ["validate", "--show-template"])

    assert result.exit_code == 0
    assert "backend: zabbix" in result.stdout
    assert "aggregate_function: avg" in result.stdout


def test_backends_command_lists_builtins() -> None:
    runner = CliRunner()

    result = runner.invoke(app, ["backends"])

    assert result.exit_code == 0
    assert "snapshot" in result.stdout
    assert "zabbix" in result.stdout
