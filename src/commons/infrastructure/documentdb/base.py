"""Abstract base class for document database operations."""

from abc import ABC, abstractmethod
from typing import Any

from src.commons.infrastructure.blob.base import HealthStatus


class DocumentDBBase(ABC):
    """Abstract base class for document database operations.

    Documents are plain dicts keyed by a string ``id`` assigned by the caller.
    Every write touches a single document unless the method name says
    otherwise; no operation needs a multi-document transaction.
    """

    @abstractmethod
    async def insert(
        self,
        collection: str,
        document: dict[str, Any],
    ) -> str:
        """Insert a document.

        Args:
            collection: Collection name.
            document: Document to insert; its ``id`` becomes the primary key.

        Returns:
            The document ID.
        """

    @abstractmethod
    async def find_by_id(
        self,
        collection: str,
        document_id: str,
    ) -> dict[str, Any] | None:
        """Find a document by ID, or None."""

    @abstractmethod
    async def find(
        self,
        collection: str,
        filters: dict[str, Any],
        skip: int = 0,
        limit: int = 100,
        sort: list[tuple[str, int]] | None = None,
    ) -> list[dict[str, Any]]:
        """Find documents matching filters.

        Args:
            collection: Collection name.
            filters: Query filters.
            skip: Number of documents to skip.
            limit: Maximum documents to return.
            sort: Sort keys as [(field, direction)].
                  Direction: 1 for ascending, -1 for descending.

        Returns:
            List of matching documents.
        """

    @abstractmethod
    async def update(
        self,
        collection: str,
        document_id: str,
        updates: dict[str, Any],
    ) -> bool:
        """Set fields on one document.

        Returns:
            True if the document exists, False if not found.
        """

    @abstractmethod
    async def update_many(
        self,
        collection: str,
        filters: dict[str, Any],
        updates: dict[str, Any],
    ) -> int:
        """Set fields on every matching document.

        Returns:
            Count of modified documents.
        """

    @abstractmethod
    async def upsert(
        self,
        collection: str,
        document_id: str,
        fields: dict[str, Any],
    ) -> None:
        """Set fields on a document, creating it if it doesn't exist."""

    @abstractmethod
    async def delete(
        self,
        collection: str,
        document_id: str,
    ) -> bool:
        """Delete a document.

        Returns:
            True if deleted, False if not found.
        """

    @abstractmethod
    async def delete_by_ids(
        self,
        collection: str,
        document_ids: list[str],
    ) -> int:
        """Delete documents by ID and return the count."""

    @abstractmethod
    async def count(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
    ) -> int:
        """Count documents matching filters."""

    @abstractmethod
    async def create_index(
        self,
        collection: str,
        fields: list[tuple[str, int]],
        unique: bool = False,
        name: str | None = None,
    ) -> str:
        """Create an index on the collection and return its name."""

    @abstractmethod
    async def health_check(self) -> HealthStatus:
        """Check service health."""
