from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

import pytest

from image_namer.errors import ConnectivityError, DiscoveryError, RenameError
from image_namer.models import ModelDescriptor, ModelDetails, NameSuggestion, RenameRequest
from image_namer.settings import MemoryStore, SettingsStore
from image_namer.workflow import RenameWorkflow


def make_model(name: str, context_length: Optional[int] = None, **fields) -> ModelDescriptor:
    return ModelDescriptor(
        name=name,
        size=fields.pop("size", 1024),
        digest=fields.pop("digest", f"sha-{name}"),
        details=ModelDetails(family="qwen", parameter_size="3B", context_length=context_length),
        **fields,
    )


class FakeBackend:
    def __init__(
        self,
        results: Optional[Dict[str, Union[NameSuggestion, Exception]]] = None,
        models: Optional[List[ModelDescriptor]] = None,
    ) -> None:
        self.results = results or {}
        self.models = models or []
        self.connection_error: Optional[str] = None
        self.discovery_error: Optional[str] = None
        self.on_call: Optional[Callable[[str], None]] = None
        self.calls: List[tuple] = []
        self.list_calls = 0

    def test_connection(self, api_url: str) -> str:
        if self.connection_error:
            raise ConnectivityError(self.connection_error)
        return f"connected to {api_url}"

    def list_models(self, api_url: str) -> List[ModelDescriptor]:
        self.list_calls += 1
        if self.discovery_error:
            raise DiscoveryError(self.discovery_error)
        return [model.model_copy(deep=True) for model in self.models]

    async def generate_name(
        self,
        image_path: str,
        prompt: str,
        api_url: str,
        model: str,
        context_length: int,
    ) -> NameSuggestion:
        self.calls.append((image_path, prompt, api_url, model, context_length))
        if self.on_call is not None:
            self.on_call(image_path)
        outcome = self.results.get(image_path)
        if outcome is None:
            outcome = NameSuggestion(name=f"name_{Path(image_path).stem}", elapsed_millis=100)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeRenamer:
    def __init__(self) -> None:
        self.batches: List[List[RenameRequest]] = []
        self.error: Optional[str] = None

    def apply_rename_batch(self, requests: List[RenameRequest]) -> None:
        self.batches.append(list(requests))
        if self.error:
            raise RenameError(self.error)


@pytest.fixture()
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture()
def renamer() -> FakeRenamer:
    return FakeRenamer()


@pytest.fixture()
def kv_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture()
def workflow(backend: FakeBackend, renamer: FakeRenamer, kv_store: MemoryStore) -> RenameWorkflow:
    return RenameWorkflow(backend, renamer, SettingsStore(kv_store))


def files(*names: str) -> List[Dict[str, str]]:
    return [{"path": f"/photos/{name}", "name": name} for name in names]
