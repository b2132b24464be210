"""
Storage Interfaces - Port for session persistence
=================================================
Durable session metadata plus the opaque credential material a transport
needs to resume a session without a new scan.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..models.session import MetadataRecord


class IMetadataStore(ABC):
    """
    Interface for metadata and credential material storage.

    Metadata is non-secret and written on every state-affecting update.
    Credential material is owned by the transport and only deleted by the
    orchestrator.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Prepare the storage location"""
        raise NotImplementedError

    @abstractmethod
    async def save(self, record: MetadataRecord) -> None:
        """Insert or replace the record for ``record.id``"""
        raise NotImplementedError

    @abstractmethod
    async def remove(self, session_id: str) -> bool:
        """Remove a record. Returns True if one existed."""
        raise NotImplementedError

    @abstractmethod
    async def list_all(self) -> List[MetadataRecord]:
        raise NotImplementedError

    @abstractmethod
    async def credential_material_exists(self, session_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def delete_credential_material(self, session_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def save_credential_material(self, session_id: str, data: Dict[str, Any]) -> None:
        raise NotImplementedError

    @abstractmethod
    async def load_credential_material(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Stored material, or None if the session never authenticated"""
        raise NotImplementedError
