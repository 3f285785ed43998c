from __future__ import annotations

import json
from pathlib import Path

import pytest
from PIL import Image
from typer.testing import CliRunner

from image_namer import cli
from image_namer.errors import InferenceError
from image_namer.file_renamer import FileRenamer
from image_namer.models import DEFAULT_PROMPT, DEFAULT_TEMPLATE_ID
from image_namer.settings import SETTINGS_KEY, JsonFileStore, SettingsStore
from image_namer.workflow import RenameWorkflow

from conftest import FakeBackend, make_model

runner = CliRunner()


@pytest.fixture()
def settings_path(tmp_path: Path) -> Path:
    return tmp_path / "config" / "settings.json"


@pytest.fixture()
def fake_backend(monkeypatch: pytest.MonkeyPatch) -> FakeBackend:
    backend = FakeBackend(models=[make_model("llava:7b", context_length=8192), make_model("gemma3:4b")])

    def build(ctx, timeout=cli.DEFAULT_TIMEOUT):
        store = SettingsStore(JsonFileStore(ctx.obj["settings_path"]))
        return RenameWorkflow(backend, FileRenamer(), store)

    monkeypatch.setattr(cli, "_build_workflow", build)
    return backend


def invoke(settings_path: Path, *args: str, **kwargs):
    return runner.invoke(cli.app, ["--settings", str(settings_path), *args], **kwargs)


def saved(settings_path: Path) -> dict:
    return json.loads(JsonFileStore(settings_path).get(SETTINGS_KEY))


def _images(directory: Path, *names: str) -> list:
    directory.mkdir(parents=True, exist_ok=True)
    paths = []
    for name in names:
        path = directory / name
        Image.new("RGB", (16, 16), color=(10, 120, 200)).save(path)
        paths.append(path)
    return paths


def test_add_and_use_template(settings_path: Path, fake_backend: FakeBackend) -> None:
    result = invoke(settings_path, "templates", "add", "Short", "three words", "--use")
    assert result.exit_code == 0, result.output

    document = saved(settings_path)
    assert [t["name"] for t in document["prompt_templates"]][1:] == ["Short"]
    assert document["prompt"] == "three words"
    assert document["current_template_id"] == document["prompt_templates"][1]["id"]

    result = invoke(settings_path, "templates", "list")
    assert result.exit_code == 0
    assert "Short" in result.output


def test_default_template_cannot_be_deleted(settings_path: Path, fake_backend: FakeBackend) -> None:
    result = invoke(settings_path, "templates", "delete", DEFAULT_TEMPLATE_ID)

    assert result.exit_code == 1
    assert "cannot be deleted" in result.output


def test_use_none_deselects_template(settings_path: Path, fake_backend: FakeBackend) -> None:
    result = invoke(settings_path, "templates", "use", "--none")

    assert result.exit_code == 0, result.output
    assert saved(settings_path)["current_template_id"] is None
    assert saved(settings_path)["prompt"] == ""


def test_prompt_command_sets_prompt(settings_path: Path, fake_backend: FakeBackend) -> None:
    assert invoke(settings_path, "prompt", "describe briefly").exit_code == 0

    result = invoke(settings_path, "prompt")
    assert "describe briefly" in result.output


def test_models_refresh_and_configure(settings_path: Path, fake_backend: FakeBackend) -> None:
    result = invoke(
        settings_path,
        "models", "--refresh",
        "--disable", "llava:7b",
        "--context", "gemma3:4b=12000",
        "--default", "gemma3:4b",
    )
    assert result.exit_code == 0, result.output

    document = saved(settings_path)
    models = {m["name"]: m for m in document["available_models"]}
    assert document["active_model_name"] == "gemma3:4b"
    assert document["connection_state"] == "success"
    assert models["llava:7b"]["enabled"] is False
    assert models["llava:7b"]["custom_context_length"] == 8192
    assert models["gemma3:4b"]["custom_context_length"] == 12000
    assert models["gemma3:4b"]["is_default"] is True


def test_models_default_must_be_enabled(settings_path: Path, fake_backend: FakeBackend) -> None:
    result = invoke(settings_path, "models", "--refresh", "--disable", "gemma3:4b", "--default", "gemma3:4b")

    assert result.exit_code == 1
    assert "disabled" in result.output


def test_models_bad_context_value(settings_path: Path, fake_backend: FakeBackend) -> None:
    result = invoke(settings_path, "models", "--refresh", "--context", "gemma3:4b=lots")

    assert result.exit_code == 1
    assert "integer" in result.output


def test_models_refresh_reports_discovery_error(settings_path: Path, fake_backend: FakeBackend) -> None:
    fake_backend.discovery_error = "Failed to list models, status 500"

    result = invoke(settings_path, "models", "--refresh")

    assert result.exit_code == 1
    assert "status 500" in result.output


def test_connection_command(settings_path: Path, fake_backend: FakeBackend) -> None:
    result = invoke(settings_path, "test", "--host", "http://gpu:11434")

    assert result.exit_code == 0, result.output
    assert "Found 2 model(s)" in result.output
    assert saved(settings_path)["api_endpoint"] == "http://gpu:11434"


def test_connection_command_failure(settings_path: Path, fake_backend: FakeBackend) -> None:
    fake_backend.connection_error = "Connection failed: HTTP 502"

    result = invoke(settings_path, "test")

    assert result.exit_code == 1
    assert "HTTP 502" in result.output
    assert saved(settings_path)["connection_state"] == "failed"


def test_run_and_apply_renames_files(tmp_path: Path, settings_path: Path, fake_backend: FakeBackend) -> None:
    photos = tmp_path / "photos"
    _images(photos, "IMG_1.png", "IMG_2.png")

    result = invoke(settings_path, "run", str(photos), "--apply")

    assert result.exit_code == 0, result.output
    assert sorted(p.name for p in photos.iterdir()) == ["name_IMG_1.png", "name_IMG_2.png"]
    assert [call[3] for call in fake_backend.calls] == ["qwen2.5vl:3b-32k"] * 2


def test_run_with_failure_renames_the_rest(tmp_path: Path, settings_path: Path, fake_backend: FakeBackend) -> None:
    photos = tmp_path / "photos"
    _, broken = _images(photos, "a.png", "b.png")
    fake_backend.results[str(broken.resolve())] = InferenceError("API request failed: HTTP 500")

    result = invoke(settings_path, "run", str(photos), "--apply")

    assert result.exit_code == 1
    assert sorted(p.name for p in photos.iterdir()) == ["b.png", "name_a.png"]


def test_run_dry_run_leaves_files(tmp_path: Path, settings_path: Path, fake_backend: FakeBackend) -> None:
    photos = tmp_path / "photos"
    _images(photos, "a.png")

    result = invoke(settings_path, "run", str(photos), "--dry-run")

    assert result.exit_code == 0, result.output
    assert "Would rename" in result.output
    assert (photos / "a.png").exists()


def test_run_review_edits_name(tmp_path: Path, settings_path: Path, fake_backend: FakeBackend) -> None:
    photos = tmp_path / "photos"
    _images(photos, "a.png")

    result = invoke(settings_path, "run", str(photos), "--review", "--apply", input="blue_square\n")

    assert result.exit_code == 0, result.output
    assert [p.name for p in photos.iterdir()] == ["blue_square.png"]


def test_run_without_images(tmp_path: Path, settings_path: Path, fake_backend: FakeBackend) -> None:
    empty = tmp_path / "empty"
    empty.mkdir()

    result = invoke(settings_path, "run", str(empty))

    assert result.exit_code == 1
    assert "No image files found" in result.output


def test_reset_restores_defaults(settings_path: Path, fake_backend: FakeBackend) -> None:
    invoke(settings_path, "templates", "add", "Short", "three words", "--use")
    invoke(settings_path, "models", "--refresh")

    result = invoke(settings_path, "reset", "--yes")

    assert result.exit_code == 0, result.output
    document = saved(settings_path)
    assert [t["id"] for t in document["prompt_templates"]] == [DEFAULT_TEMPLATE_ID]
    assert document["prompt"] == DEFAULT_PROMPT
    assert document["available_models"] == []


def test_info_shows_file_details(tmp_path: Path, settings_path: Path) -> None:
    (path,) = _images(tmp_path, "pic.png")

    result = invoke(settings_path, "info", str(path))

    assert result.exit_code == 0, result.output
    assert "pic.png" in result.output
    assert "data:image/png" in result.output


def test_info_missing_file(tmp_path: Path, settings_path: Path) -> None:
    result = invoke(settings_path, "info", str(tmp_path / "nope.png"))

    assert result.exit_code == 1
    assert "does not exist" in result.output


def test_status_shows_saved_configuration(settings_path: Path, fake_backend: FakeBackend) -> None:
    invoke(settings_path, "models", "--refresh", "--default", "llava:7b")

    result = invoke(settings_path, "status")

    assert result.exit_code == 0, result.output
    assert "llava:7b" in result.output
    assert "8192" in result.output
    assert "success" in result.output
