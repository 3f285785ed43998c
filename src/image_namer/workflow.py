"""The image naming workflow: batch processing, renames and settings synchronization."""

import asyncio
import logging
from typing import Callable, Iterable, List, Mapping, Optional, Protocol

from .connection import ConnectionManager
from .errors import DiscoveryError, InferenceError, NotFoundError
from .image_collection import ImageCollection
from .model_registry import ModelRegistry
from .models import (
    AppConfig,
    BatchPerformance,
    ImageEntry,
    ImageStatus,
    ModelDescriptor,
    NameSuggestion,
    ProcessingStatus,
    PromptTemplate,
    RenameRequest,
    Settings,
)
from .performance_tracker import PerformanceTracker
from .settings import SAVE_DELAY, DebouncedSaver, MemoryStore, SettingsStore
from .templates import TemplateRegistry

logger = logging.getLogger(__name__)


class InferenceBackend(Protocol):
    """The vision model service."""

    def test_connection(self, api_url: str) -> str:
        ...

    def list_models(self, api_url: str) -> List[ModelDescriptor]:
        ...

    async def generate_name(
        self,
        image_path: str,
        prompt: str,
        api_url: str,
        model: str,
        context_length: int,
    ) -> NameSuggestion:
        ...


class RenameBackend(Protocol):
    """Applies a batch of renames to the filesystem."""

    def apply_rename_batch(self, requests: List[RenameRequest]) -> object:
        ...


class RenameWorkflow:
    """
    Owns the image collection, the prompt templates, the model registry and the
    configuration, and exposes every operation that mutates them.

    Settings changes are persisted through a debounced saver; image state is
    never persisted.
    """

    def __init__(
        self,
        backend: InferenceBackend,
        renamer: RenameBackend,
        settings_store: Optional[SettingsStore] = None,
        save_delay: float = SAVE_DELAY,
    ):
        """
        Initialize the workflow from persisted settings.

        Args:
            backend: Connectivity, discovery and inference collaborator
            renamer: Filesystem rename collaborator
            settings_store: Where settings are loaded from and saved to
            save_delay: Seconds to wait before flushing settings after a change
        """
        self.backend = backend
        self.renamer = renamer
        self.settings_store = settings_store or SettingsStore(MemoryStore())

        self.images = ImageCollection()
        self.processing_status = ProcessingStatus.IDLE
        self.last_discovery_error: Optional[str] = None

        self._load(self.settings_store.load())
        self._saver = DebouncedSaver(self.snapshot, self.settings_store, save_delay)

    def _load(self, settings: Settings) -> None:
        self.config = AppConfig(
            api_endpoint=settings.api_endpoint,
            active_model_name=settings.active_model_name,
            connection_state=settings.connection_state,
            available_models=settings.available_models,
        )
        self.templates = TemplateRegistry(
            settings.prompt_templates,
            current_id=settings.current_template_id,
            prompt=settings.prompt,
        )
        self.models = ModelRegistry(self.config)
        self.connection = ConnectionManager(self.config)
        self.tracker = PerformanceTracker(self.config.active_model_name)

    # ------------------------------------------------------------------
    # Settings persistence
    # ------------------------------------------------------------------

    def snapshot(self) -> Settings:
        """Detached copy of everything that is persisted."""
        return Settings(
            api_endpoint=self.config.api_endpoint,
            active_model_name=self.config.active_model_name,
            connection_state=self.config.connection_state,
            available_models=self.config.available_models,
            prompt=self.templates.prompt,
            prompt_templates=self.templates.templates,
            current_template_id=self.templates.current_id,
        ).model_copy(deep=True)

    def _changed(self) -> None:
        self._saver.schedule()

    def flush_settings(self) -> None:
        """Write pending settings changes now."""
        self._saver.flush()

    def reset_all_settings(self) -> None:
        """Restore default configuration, templates and prompt."""
        self._load(Settings())
        self.processing_status = ProcessingStatus.IDLE
        self.last_discovery_error = None
        self._changed()

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    @property
    def total_processing_millis(self) -> int:
        return self.tracker.total_millis

    def add_images(self, files: Iterable[Mapping[str, str]]) -> List[ImageEntry]:
        return self.images.add(files)

    def update_image(self, entry_id: str, **fields) -> ImageEntry:
        return self.images.update(entry_id, **fields)

    def edit_suggested_name(self, entry_id: str, name: str) -> ImageEntry:
        return self.images.edit_suggested_name(entry_id, name)

    def remove_image(self, entry_id: str) -> None:
        self.images.remove(entry_id)

    def clear_images(self) -> None:
        self.images.clear()
        self.tracker.reset()

    # ------------------------------------------------------------------
    # Prompt and templates
    # ------------------------------------------------------------------

    @property
    def prompt(self) -> str:
        return self.templates.prompt

    def set_prompt(self, text: str) -> None:
        self.templates.prompt = text
        self._changed()

    def add_template(self, name: str, content: str) -> PromptTemplate:
        template = self.templates.add(name, content)
        self._changed()
        return template

    def update_template(
        self,
        template_id: str,
        name: Optional[str] = None,
        content: Optional[str] = None,
    ) -> PromptTemplate:
        template = self.templates.update(template_id, name=name, content=content)
        self._changed()
        return template

    def delete_template(self, template_id: str) -> None:
        self.templates.delete(template_id)
        self._changed()

    def set_current_template(self, template_id: Optional[str]) -> None:
        self.templates.set_current(template_id)
        self._changed()

    # ------------------------------------------------------------------
    # Configuration, connection and models
    # ------------------------------------------------------------------

    def update_config(
        self,
        api_endpoint: Optional[str] = None,
        active_model_name: Optional[str] = None,
    ) -> AppConfig:
        if api_endpoint is not None:
            self.config.api_endpoint = api_endpoint
        if active_model_name is not None:
            self.models.set_active(active_model_name)
        self._changed()
        return self.config

    async def test_connection(self) -> bool:
        """Check that the backend is reachable; the outcome is recorded on the config."""
        ok = await self.connection.test_connection(
            self.backend.test_connection, self.config.api_endpoint
        )
        self._changed()
        return ok

    async def discover_models(self) -> bool:
        """
        Refresh the model registry from the backend.

        A failure leaves the registry untouched and is recorded in
        last_discovery_error instead of being raised.

        Returns:
            True if the registry was refreshed
        """
        if self.config.models_loading:
            logger.debug("Model discovery already in progress, ignoring request")
            return False

        self.config.models_loading = True
        self.last_discovery_error = None
        try:
            fetched = await asyncio.to_thread(self.backend.list_models, self.config.api_endpoint)
        except DiscoveryError as e:
            logger.warning("Failed to load models: %s", e)
            self.last_discovery_error = str(e)
            return False
        finally:
            self.config.models_loading = False

        self.models.reconcile(fetched)
        self._changed()
        return True

    async def connect_and_discover(self) -> bool:
        """Test the connection, then discover models if it succeeded."""
        if not await self.test_connection():
            return False
        return await self.discover_models()

    def set_model_enabled(self, name: str, enabled: bool) -> ModelDescriptor:
        model = self.models.set_enabled(name, enabled)
        self._changed()
        return model

    def toggle_model_enabled(self, name: str) -> ModelDescriptor:
        model = self.models.toggle_enabled(name)
        self._changed()
        return model

    def set_model_context_length(self, name: str, length: int) -> ModelDescriptor:
        model = self.models.set_context_length(name, length)
        self._changed()
        return model

    def set_default_model(self, name: str) -> ModelDescriptor:
        model = self.models.set_default(name)
        self._changed()
        return model

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def start_processing(
        self,
        on_progress: Optional[Callable[[ImageEntry], None]] = None,
    ) -> Optional[BatchPerformance]:
        """
        Name every pending image, one at a time, in collection order.

        Endpoint, model, prompt and context length are fixed when the batch
        starts. A failing image is marked as an error and the batch moves on.
        Images added while the batch runs stay pending.

        Args:
            on_progress: Called with each entry once it is completed or failed

        Returns:
            Statistics for the batch, or None if nothing was started
        """
        if self.processing_status == ProcessingStatus.PROCESSING:
            logger.debug("A batch is already running, ignoring request")
            return None

        batch_ids = [entry.id for entry in self.images.pending()]
        if not batch_ids:
            return None

        api_url = self.config.api_endpoint
        model_name = self.config.active_model_name
        prompt = self.templates.prompt
        context_length = self.models.batch_context_length()

        self.processing_status = ProcessingStatus.PROCESSING
        self.tracker.reset(model_name)
        logger.info(
            "Processing %d image(s) with %s (context %d)", len(batch_ids), model_name, context_length
        )

        try:
            for entry_id in batch_ids:
                await self._process_entry(entry_id, prompt, api_url, model_name, context_length, on_progress)
        finally:
            self.processing_status = ProcessingStatus.DONE

        stats = self.tracker.stats
        logger.info(
            "Batch finished: %d named, %d failed, %d ms",
            stats.success_count, stats.error_count, stats.total_millis
        )
        return stats

    async def _process_entry(
        self,
        entry_id: str,
        prompt: str,
        api_url: str,
        model_name: str,
        context_length: int,
        on_progress: Optional[Callable[[ImageEntry], None]],
    ) -> None:
        if entry_id not in self.images:
            logger.debug("Image %s was removed before processing", entry_id)
            return

        entry = self.images.update(entry_id, status=ImageStatus.PROCESSING)
        try:
            suggestion = await self.backend.generate_name(
                entry.source_path, prompt, api_url, model_name, context_length
            )
        except Exception as e:
            if not isinstance(e, InferenceError):
                logger.exception("Unexpected error naming %s", entry.source_path)
            self._record_outcome(entry_id, on_progress, status=ImageStatus.ERROR, error=str(e))
            return

        self._record_outcome(
            entry_id,
            on_progress,
            status=ImageStatus.COMPLETED,
            suggested_name=suggestion.name.strip(),
            elapsed_millis=suggestion.elapsed_millis,
        )

    def _record_outcome(
        self,
        entry_id: str,
        on_progress: Optional[Callable[[ImageEntry], None]],
        **fields,
    ) -> None:
        try:
            entry = self.images.update(entry_id, **fields)
        except NotFoundError:
            logger.debug("Image %s was removed while processing, dropping result", entry_id)
            return

        if entry.status == ImageStatus.COMPLETED:
            self.tracker.record_success(entry.elapsed_millis)
        else:
            logger.warning("Failed to name %s: %s", entry.original_name, entry.error)
            self.tracker.record_error()

        if on_progress is not None:
            on_progress(entry)

    def rename_requests(self) -> List[RenameRequest]:
        """Rename pairs for every completed image with a non-blank name."""
        return [
            RenameRequest(original_path=entry.source_path, new_name=entry.suggested_name.strip())
            for entry in self.images.completed()
            if entry.suggested_name.strip()
        ]

    async def apply_renames(self) -> List[RenameRequest]:
        """
        Send all completed names to the renamer as one batch.

        On success the image list is cleared and processing returns to idle.

        Raises:
            RenameError: If the renamer fails; images are left as they were
        """
        requests = self.rename_requests()
        await asyncio.to_thread(self.renamer.apply_rename_batch, requests)

        self.images.clear()
        self.processing_status = ProcessingStatus.IDLE
        self.tracker.reset()
        logger.info("Applied %d rename(s)", len(requests))
        return requests
