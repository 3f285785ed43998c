"""Pydantic models for structured data validation."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

DEFAULT_API_ENDPOINT = "http://localhost:11434"
DEFAULT_MODEL = "qwen2.5vl:3b-32k"
DEFAULT_CONTEXT_LENGTH = 4096

DEFAULT_TEMPLATE_ID = "default"
DEFAULT_TEMPLATE_NAME = "Default template"
DEFAULT_PROMPT = (
    'Describe the image concisely in the form "scene_subject_action", '
    'for example "lawn_golden_retriever_catching_frisbee".'
)


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ImageStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class ConnectionState(str, Enum):
    IDLE = "idle"
    TESTING = "testing"
    SUCCESS = "success"
    FAILED = "failed"


class ProcessingStatus(str, Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    DONE = "done"


class ImageEntry(BaseModel):
    """One image's workflow record."""

    id: str = Field(default_factory=_new_id)
    source_path: str = Field(description="Location of the source image file")
    original_name: str = Field(description="File name shown to the user")
    suggested_name: str = Field(
        default="",
        description="Name proposed by the model, editable by the user"
    )
    status: ImageStatus = ImageStatus.PENDING
    error: Optional[str] = Field(
        default=None,
        description="Diagnostic message, set only when status is 'error'"
    )
    elapsed_millis: Optional[int] = Field(
        default=None,
        description="Duration of the inference call, set only when status is 'completed'"
    )


class PromptTemplate(BaseModel):
    """A named, reusable prompt text."""

    id: str = Field(default_factory=_new_id)
    name: str
    content: str
    created_at: datetime = Field(default_factory=_utcnow)


class ModelDetails(BaseModel):
    """Structural details reported by the backend for a model."""

    format: str = ""
    family: str = ""
    parameter_size: str = ""
    quantization_level: str = ""
    context_length: Optional[int] = Field(
        default=None,
        description="Native context window of the model, when known"
    )


class ModelDescriptor(BaseModel):
    """A model discovered on the backend plus the user's per-model settings."""

    name: str
    size: int = Field(default=0, description="Model size in bytes")
    digest: str = ""
    details: ModelDetails = Field(default_factory=ModelDetails)
    enabled: bool = True
    custom_context_length: int = Field(default=DEFAULT_CONTEXT_LENGTH, gt=0)
    is_default: bool = False


class AppConfig(BaseModel):
    """Backend connection settings and the model registry."""

    api_endpoint: str = DEFAULT_API_ENDPOINT
    active_model_name: str = DEFAULT_MODEL
    connection_state: ConnectionState = ConnectionState.IDLE
    connection_message: Optional[str] = None
    models_loading: bool = False
    available_models: List[ModelDescriptor] = Field(default_factory=list)


class NameSuggestion(BaseModel):
    """Result of a single inference call."""

    name: str
    elapsed_millis: int = Field(ge=0)


class RenameRequest(BaseModel):
    """One source file and the name it should get."""

    original_path: str
    new_name: str


def default_template() -> PromptTemplate:
    return PromptTemplate(
        id=DEFAULT_TEMPLATE_ID,
        name=DEFAULT_TEMPLATE_NAME,
        content=DEFAULT_PROMPT,
    )


class Settings(BaseModel):
    """The persisted settings document.

    Every field has a default so documents written by older versions,
    which lack newer fields, still load.
    """

    api_endpoint: str = DEFAULT_API_ENDPOINT
    active_model_name: str = DEFAULT_MODEL
    connection_state: ConnectionState = ConnectionState.IDLE
    available_models: List[ModelDescriptor] = Field(default_factory=list)
    prompt: str = DEFAULT_PROMPT
    prompt_templates: List[PromptTemplate] = Field(
        default_factory=lambda: [default_template()]
    )
    current_template_id: Optional[str] = DEFAULT_TEMPLATE_ID


class BatchPerformance(BaseModel):
    """Track the outcome of one processing batch."""

    model_name: str
    success_count: int = 0
    error_count: int = 0
    total_millis: int = 0

    @property
    def success_rate(self) -> float:
        """Calculate success rate as a fraction of processed images."""
        total = self.success_count + self.error_count
        return self.success_count / total if total > 0 else 0.0

    @property
    def avg_millis_per_image(self) -> float:
        """Calculate average processing time per successful image."""
        return self.total_millis / self.success_count if self.success_count > 0 else 0.0
