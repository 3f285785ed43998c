"""AI-assisted batch image naming with prompt templates and Ollama vision models."""

from .cli import app
from .models import ImageEntry, ImageStatus, ModelDescriptor, PromptTemplate
from .ollama_client import OllamaClient
from .workflow import RenameWorkflow

__version__ = "0.2.0"

__all__ = [
    "app",
    "ImageEntry",
    "ImageStatus",
    "ModelDescriptor",
    "OllamaClient",
    "PromptTemplate",
    "RenameWorkflow",
]
