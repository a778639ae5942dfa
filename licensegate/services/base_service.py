"""
Base Service Class.

Minimal base class standardising the injected-logger pattern for the
gate's services.
"""

from __future__ import annotations

from licensegate.logger import StructuredLogger


class BaseService:
    """Base class for all service classes. Provides a logger."""

    def __init__(self, logger: StructuredLogger) -> None:
        self._logger: StructuredLogger = logger
