"""Abstract persistent sink for audit entries."""

from __future__ import annotations

from abc import ABC
from abc import abstractmethod
from collections.abc import Sequence

from auditkeeper.audit.schemas import AuditCriteria
from auditkeeper.audit.schemas import AuditEntry


class AuditSink(ABC):
    """Storage contract shared by every audit backend.

    Implementations must never return or count entries older than their
    retention horizon, whether or not they have been physically removed yet.
    """

    @property
    @abstractmethod
    def retention_days(self) -> int:
        """Retention horizon, in days, this sink enforces."""

    @abstractmethod
    async def insert_many(self, entries: Sequence[AuditEntry]) -> None:
        """Persist *entries* as one unordered batch; raise on failure."""

    @abstractmethod
    async def find(
        self,
        criteria: AuditCriteria,
        *,
        skip: int = 0,
        limit: int = 50,
    ) -> list[AuditEntry]:
        """Return matching entries, newest first, after skipping *skip*."""

    @abstractmethod
    async def count(self, criteria: AuditCriteria) -> int:
        """Count matching entries, ignoring pagination."""

    @abstractmethod
    async def count_by(self, field: str, criteria: AuditCriteria) -> dict[str, int]:
        """Count matching entries grouped by *field*; zero groups are omitted."""

    @abstractmethod
    async def purge_expired(self) -> int:
        """Physically remove entries past the retention horizon."""

    @abstractmethod
    async def close(self) -> None:
        """Release backend resources."""
