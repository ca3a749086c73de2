"""
Base Service Class.

Minimal base class standardizing the logger pattern for all services.
Services that touch tenant data also receive the ``RepositoryFactory``
and read the active repositories through :attr:`BaseService.repos`.
"""

from __future__ import annotations

from budgeteer.factory import RepositoryFactory, RepositorySet
from budgeteer.logger import StructuredLogger


class BaseService:
    """Base class for data services. Provides a logger and the factory."""

    def __init__(self, factory: RepositoryFactory, logger: StructuredLogger) -> None:
        self._factory = factory
        self._logger: StructuredLogger = logger

    @property
    def repos(self) -> RepositorySet:
        """Snapshot of the active repository set.

        Capture it once per operation: a mode switch during the operation
        must not split its reads and writes across two backends.
        """
        return self._factory.current
