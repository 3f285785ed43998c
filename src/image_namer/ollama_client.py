"""Ollama API client for connectivity checks, model discovery and name generation."""

import asyncio
import logging
import time
from pathlib import Path
from typing import List, Optional

import requests

from .errors import ConnectivityError, DiscoveryError, InferenceError
from .file_renamer import FileRenamer
from .image_processor import ImageProcessingError, ImageProcessor
from .models import ModelDescriptor, NameSuggestion

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 5
DEFAULT_TIMEOUT = 120

CONNECTION_OK_MESSAGE = "Connection successful! The Ollama service is running."

# Appended to the user's prompt so the model replies with a bare name
NAME_ONLY_SUFFIX = ". Reply with the file name only, without the extension or any explanation."


class OllamaClient:
    """Client for communicating with the Ollama API."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, image_processor: Optional[ImageProcessor] = None):
        """
        Initialize Ollama client.

        Args:
            timeout: Seconds to wait for a generate request
            image_processor: Encoder used to prepare images for the model
        """
        self.timeout = timeout
        self.image_processor = image_processor or ImageProcessor()

    @staticmethod
    def _url(api_url: str, path: str) -> str:
        return f"{api_url.rstrip('/')}{path}"

    def test_connection(self, api_url: str) -> str:
        """
        Test connection to the Ollama API.

        Returns:
            A success message

        Raises:
            ConnectivityError: On a transport error or a non-2xx response
        """
        try:
            response = requests.get(self._url(api_url, "/api/tags"), timeout=CONNECT_TIMEOUT)
        except requests.RequestException as e:
            raise ConnectivityError(f"Connection failed: {e}") from e

        if not response.ok:
            raise ConnectivityError(f"Connection failed: HTTP {response.status_code}")
        return CONNECTION_OK_MESSAGE

    def list_models(self, api_url: str) -> List[ModelDescriptor]:
        """
        Fetch the models installed on the Ollama server.

        Raises:
            DiscoveryError: On a transport error, a non-2xx response or an unparsable body
        """
        url = self._url(api_url, "/api/tags")
        logger.debug("Getting Ollama models from %s", url)

        try:
            response = requests.get(url, timeout=CONNECT_TIMEOUT)
        except requests.RequestException as e:
            raise DiscoveryError(f"Failed to connect to Ollama: {e}") from e

        if not response.ok:
            raise DiscoveryError(
                f"Failed to list models, status {response.status_code}: {response.text}"
            )

        try:
            payload = response.json()
            models = [ModelDescriptor.model_validate(m) for m in payload.get("models") or []]
        except (ValueError, AttributeError, TypeError) as e:
            raise DiscoveryError(f"Failed to parse model list: {e}") from e

        logger.info("Found %d models", len(models))
        return models

    async def generate_name(
        self,
        image_path: str,
        prompt: str,
        api_url: str,
        model: str,
        context_length: int,
    ) -> NameSuggestion:
        """
        Ask a vision model for a file name describing the image.

        Args:
            image_path: Path to the image file
            prompt: User prompt describing the naming convention
            api_url: Ollama base URL
            model: Model name
            context_length: Context window used for the request and the image size budget

        Returns:
            The cleaned name and the time the call took

        Raises:
            InferenceError: If the image cannot be read or the request fails
        """
        return await asyncio.to_thread(
            self._generate_name, image_path, prompt, api_url, model, context_length
        )

    def _generate_name(
        self,
        image_path: str,
        prompt: str,
        api_url: str,
        model: str,
        context_length: int,
    ) -> NameSuggestion:
        start_time = time.monotonic()
        logger.debug("Processing image %s with %s", image_path, model)

        path = Path(image_path)
        if not path.is_file():
            raise InferenceError(f"File does not exist: {image_path}")

        try:
            image_b64 = self.image_processor.encode_for_context(path, context_length)
        except ImageProcessingError as e:
            raise InferenceError(str(e)) from e

        payload = {
            "model": model,
            "prompt": f"{prompt}{NAME_ONLY_SUFFIX}",
            "images": [image_b64],
            "stream": False,
            "options": {
                "num_ctx": context_length
            }
        }

        try:
            response = requests.post(
                self._url(api_url, "/api/generate"),
                json=payload,
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise InferenceError(f"Network request failed: {e}") from e

        if not response.ok:
            raise InferenceError(f"API request failed: HTTP {response.status_code}")

        try:
            response_text = response.json()["response"]
        except (ValueError, KeyError, TypeError) as e:
            raise InferenceError(f"Failed to parse response: {e}") from e

        elapsed_millis = int((time.monotonic() - start_time) * 1000)
        return NameSuggestion(
            name=FileRenamer.clean_filename(response_text),
            elapsed_millis=elapsed_millis,
        )
