from __future__ import annotations

import asyncio
import json
from pathlib import Path

from image_namer.models import (
    DEFAULT_API_ENDPOINT,
    DEFAULT_PROMPT,
    DEFAULT_TEMPLATE_ID,
    ConnectionState,
    Settings,
)
from image_namer.settings import SETTINGS_KEY, DebouncedSaver, JsonFileStore, MemoryStore, SettingsStore
from image_namer.workflow import RenameWorkflow

from conftest import FakeBackend, FakeRenamer, make_model


def test_missing_document_yields_defaults() -> None:
    settings = SettingsStore(MemoryStore()).load()

    assert settings.api_endpoint == DEFAULT_API_ENDPOINT
    assert settings.prompt == DEFAULT_PROMPT
    assert [t.id for t in settings.prompt_templates] == [DEFAULT_TEMPLATE_ID]
    assert settings.current_template_id == DEFAULT_TEMPLATE_ID


def test_older_document_is_merged_over_defaults() -> None:
    store = MemoryStore({SETTINGS_KEY: json.dumps({"api_endpoint": "http://nas:11434", "legacy": 1})})

    settings = SettingsStore(store).load()

    assert settings.api_endpoint == "http://nas:11434"
    assert settings.prompt == DEFAULT_PROMPT
    assert settings.available_models == []


def test_corrupt_document_falls_back_to_defaults() -> None:
    store = MemoryStore({SETTINGS_KEY: "{not json"})
    settings = SettingsStore(store).load()
    assert settings.api_endpoint == DEFAULT_API_ENDPOINT
    assert settings.prompt == DEFAULT_PROMPT

    store.set(SETTINGS_KEY, json.dumps({"available_models": "nope"}))
    assert SettingsStore(store).load().available_models == []


def test_testing_state_is_not_restored() -> None:
    store = MemoryStore({SETTINGS_KEY: json.dumps({"connection_state": "testing"})})
    assert SettingsStore(store).load().connection_state == ConnectionState.IDLE


def test_json_file_store_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "settings.json"
    store = JsonFileStore(path)

    assert store.get("missing") is None
    store.set("a", "1")
    store.set("b", "2")

    assert JsonFileStore(path).get("a") == "1"
    assert json.loads(path.read_text()) == {"a": "1", "b": "2"}


def test_json_file_store_ignores_unreadable_file(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text("garbage")

    assert JsonFileStore(path).get("a") is None


def test_round_trip_into_fresh_workflow() -> None:
    kv_store = MemoryStore()
    backend = FakeBackend(models=[make_model("llava:7b", context_length=8192), make_model("gemma3:4b")])
    first = RenameWorkflow(backend, FakeRenamer(), SettingsStore(kv_store))

    first.update_config(api_endpoint="http://gpu:11434")
    asyncio.run(first.connect_and_discover())
    first.set_default_model("gemma3:4b")
    first.set_model_enabled("llava:7b", False)
    first.set_model_context_length("gemma3:4b", 12000)
    template = first.add_template("Short", "three words")
    first.set_current_template(template.id)
    first.set_prompt("three words, lowercase")
    first.flush_settings()

    second = RenameWorkflow(FakeBackend(), FakeRenamer(), SettingsStore(kv_store))

    for field in ("api_endpoint", "active_model_name", "connection_state", "available_models"):
        assert getattr(second.config, field) == getattr(first.config, field)
    assert second.config.active_model_name == "gemma3:4b"
    assert second.templates.templates == first.templates.templates
    assert second.templates.current_id == template.id
    assert second.prompt == "three words, lowercase"
    assert second.snapshot() == first.snapshot()


def test_debounced_saver_coalesces_saves() -> None:
    saves = []

    class CountingStore(SettingsStore):
        def save(self, settings: Settings) -> None:
            saves.append(settings.prompt)

    state = {"prompt": "a"}
    saver = DebouncedSaver(lambda: Settings(prompt=state["prompt"]), CountingStore(MemoryStore()), delay=0.01)

    async def burst() -> None:
        for prompt in ["b", "c", "d"]:
            state["prompt"] = prompt
            saver.schedule()
        await asyncio.sleep(0.05)

    asyncio.run(burst())

    assert saves == ["d"]
    assert saver.pending is False


def test_debounced_saver_without_loop_waits_for_flush() -> None:
    kv_store = MemoryStore()
    saver = DebouncedSaver(lambda: Settings(prompt="x"), SettingsStore(kv_store))

    saver.schedule()
    assert saver.pending is True
    assert kv_store.get(SETTINGS_KEY) is None

    saver.flush()
    assert json.loads(kv_store.get(SETTINGS_KEY))["prompt"] == "x"

    saver.flush()
    assert saver.pending is False


def test_debounced_saver_retries_after_failed_write() -> None:
    kv_store = MemoryStore()
    attempts = []

    class FlakyStore(SettingsStore):
        def save(self, settings: Settings) -> None:
            attempts.append(settings.prompt)
            if len(attempts) == 1:
                raise OSError("disk full")
            super().save(settings)

    saver = DebouncedSaver(lambda: Settings(prompt="x"), FlakyStore(kv_store))
    saver.schedule()

    saver.flush()
    assert saver.pending is True
    assert kv_store.get(SETTINGS_KEY) is None

    saver.flush()
    assert saver.pending is False
    assert json.loads(kv_store.get(SETTINGS_KEY))["prompt"] == "x"
    assert attempts == ["x", "x"]
