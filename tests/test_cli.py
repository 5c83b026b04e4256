import io
from pathlib import Path

import pytest
from rich.console import Console
from typer.testing import CliRunner

from arctic_helper.cli import app as cli
from arctic_helper.cli.formatters import format_error_with_suggestions
from arctic_helper.cli.progress_manager import ProgressManager
from arctic_helper.exceptions import Unauthorized
from arctic_helper.models.events import (
    BatchFinished,
    Failed,
    Finished,
    Progress,
    Started,
    TransferKind,
)

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    config_dir = tmp_path / "config"
    monkeypatch.setattr(cli, "CONFIG_DIR", config_dir)
    monkeypatch.setattr(cli, "CONFIG_FILE", config_dir / "config.ini")
    monkeypatch.setenv("ARCTIC_SKIP_REMOTE_REFRESH", "1")
    monkeypatch.setenv("COLUMNS", "200")
    monkeypatch.delenv("CIVITAI_TOKEN", raising=False)
    monkeypatch.delenv("ARCTIC_CATALOG_PATH", raising=False)
    return config_dir


def test_version():
    result = runner.invoke(cli.app, ["--version"])
    assert result.exit_code == 0
    assert "arctic-helper" in result.output


def test_models_lists_bundled_catalog():
    result = runner.invoke(cli.app, ["models", "--vram-tier", "S"])
    assert result.exit_code == 0, result.output
    assert "sdxl-base" in result.output
    assert "fp16-lowram" not in result.output


def test_loras_lists_catalog():
    result = runner.invoke(cli.app, ["loras"])
    assert result.exit_code == 0, result.output
    assert "flux-realism" in result.output


def test_init_then_plan(tmp_path):
    comfy = tmp_path / "ComfyUI"
    (comfy / "models").mkdir(parents=True)

    result = runner.invoke(
        cli.app, ["init", "--install-root", str(comfy), "--workers", "3"]
    )
    assert result.exit_code == 0, result.output
    assert cli.CONFIG_FILE.is_file()

    result = runner.invoke(cli.app, ["plan", "sdxl-base", "fp16", "--ram-tier", "C"])
    assert result.exit_code == 0, result.output
    assert "sd_xl_base_1.0.safetensors" in result.output
    assert "sdxl_vae.safetensors" in result.output


def test_init_rejects_missing_folder(tmp_path):
    result = runner.invoke(cli.app, ["init", "--install-root", str(tmp_path / "nope")])
    assert result.exit_code == 1


def test_show_config_hides_token(tmp_path):
    runner.invoke(
        cli.app, ["init", "--install-root", str(tmp_path), "--civitai-token", "s3cret"]
    )
    result = runner.invoke(cli.app, ["--show-config"])
    assert result.exit_code == 0
    assert "s3cret" not in result.output
    assert "[hidden]" in result.output


def test_clear_cache(isolated_config):
    cache_entry = isolated_config / "cache" / "x.json"
    cache_entry.parent.mkdir(parents=True)
    cache_entry.write_text("{}", encoding="utf-8")
    (isolated_config / "catalog.json").write_text("{}", encoding="utf-8")

    result = runner.invoke(cli.app, ["--clear-cache"])

    assert result.exit_code == 0
    assert not cache_entry.exists()
    assert not (isolated_config / "catalog.json").exists()


def test_error_panel_has_suggestions():
    console = Console(record=True, width=120)
    console.print(format_error_with_suggestions(Unauthorized()))
    text = console.export_text()
    assert "Unauthorized" in text
    assert "CIVITAI_TOKEN" in text


def test_progress_manager_counts_events():
    manager = ProgressManager(Console(file=io.StringIO()))
    kind = TransferKind.MODEL
    folder = Path("/comfy/models/vae/m")

    manager.on_event(Started(kind, 1, 2, "a.bin", folder=folder, size=100))
    manager.on_event(Progress(kind, 1, 2, "a.bin", received=50, size=100))
    manager.on_event(Finished(kind, 1, 2, "a.bin", folder=folder))
    manager.on_event(Started(kind, 2, 2, "b.bin", folder=folder))
    manager.on_event(Failed(kind, 2, 2, "b.bin", message="HTTP 404"))
    manager.on_event(BatchFinished(kind, 2, succeeded=1, failed=1))

    assert manager.get_statistics() == {
        "completed": 1,
        "skipped": 0,
        "failed": 1,
        "cancelled": 0,
    }
    assert manager.batch_outcome == "batch_finished"
    assert [t.name for t in manager.tracker.completed] == ["a.bin"]
