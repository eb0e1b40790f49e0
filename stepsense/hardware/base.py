"""
Base hardware abstraction for StepSense.

This module provides the BaseHardware class that device bindings (sensor sources,
haptic drivers) inherit from, defining the common lifecycle.
"""

import asyncio
import structlog
from abc import ABC, abstractmethod
from typing import Any, Optional

class BaseHardware(ABC):
    """
    Base class for all hardware abstractions.

    Provides initialize/shutdown with a lock so concurrent callers cannot run
    them twice, and a health report.
    """

    def __init__(self, config: Optional[Any] = None, name: Optional[str] = None):
        """
        Args:
            config: Optional hardware-specific configuration
            name: Optional name for this hardware instance
        """
        self.config = config
        self.name = name or self.__class__.__name__
        self.logger = structlog.get_logger(hardware=self.name)
        self._initialized = False
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Initialize the hardware component. Calling it twice is a no-op."""
        async with self._lock:
            if self._initialized:
                self.logger.warning("Hardware already initialized")
                return

            try:
                await self._initialize_impl()
            except Exception as e:
                self.logger.error(f"Error initializing hardware: {e}")
                raise
            self._initialized = True
            self.logger.info("Hardware initialized")

    async def shutdown(self) -> None:
        """Shut down the hardware component."""
        async with self._lock:
            if not self._initialized:
                self.logger.warning("Hardware not initialized")
                return

            try:
                await self._shutdown_impl()
            except Exception as e:
                self.logger.error(f"Error shutting down hardware: {e}")
                raise
            self._initialized = False
            self.logger.info("Hardware shut down")

    def is_initialized(self) -> bool:
        return self._initialized

    @abstractmethod
    async def _initialize_impl(self) -> None:
        """Hardware-specific initialization."""

    @abstractmethod
    async def _shutdown_impl(self) -> None:
        """Hardware-specific cleanup."""

