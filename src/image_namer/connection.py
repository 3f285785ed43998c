"""Connectivity state tracking for the inference backend."""

import asyncio
import logging
from typing import Callable, Optional

from .errors import ConnectivityError
from .models import AppConfig, ConnectionState

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Drives the connection state held by an AppConfig.

    idle -> testing -> success | failed, and success | failed -> testing on retry.
    Model discovery is not triggered here; callers compose it after a success.
    """

    def __init__(self, config: AppConfig):
        self.config = config

    @property
    def state(self) -> ConnectionState:
        return self.config.connection_state

    @property
    def message(self) -> Optional[str]:
        return self.config.connection_message

    @property
    def is_testing(self) -> bool:
        return self.config.connection_state == ConnectionState.TESTING

    async def test_connection(self, check: Callable[[str], str], endpoint: str) -> bool:
        """
        Run a connectivity check against the endpoint.

        Args:
            check: Blocking callable returning a success message or raising ConnectivityError
            endpoint: Backend base URL

        Returns:
            True if the backend is reachable; False on failure or if a test is already running
        """
        if self.is_testing:
            logger.debug("Connection test already in progress, ignoring request")
            return False

        self.config.connection_state = ConnectionState.TESTING
        self.config.connection_message = None

        try:
            message = await asyncio.to_thread(check, endpoint)
        except ConnectivityError as e:
            self._fail(str(e))
            return False
        except Exception as e:
            self._fail(f"Connection failed: {e}")
            return False

        self.config.connection_state = ConnectionState.SUCCESS
        self.config.connection_message = message
        logger.info("Connected to %s", endpoint)
        return True

    def _fail(self, message: str) -> None:
        logger.warning("Connection test failed: %s", message)
        self.config.connection_state = ConnectionState.FAILED
        self.config.connection_message = message
