"""
File Metadata Store
===================
JSON-file implementation of IMetadataStore.

Layout under ``data_path``:
    sessions-metadata.json      {session_id: record} for every known session
    <session_id>/creds.json     credential material written by the transport

The metadata file is rewritten whole on every change, through a temporary file
and os.replace, so a crash never leaves a half-written file behind.
"""

import asyncio
import json
import os
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiofiles
import aiofiles.os

from ...core.logger import StructuredLogger, get_logger
from ...domain.interfaces.storage import IMetadataStore
from ...domain.models.session import MetadataRecord

CREDENTIALS_FILENAME = "creds.json"


class FileMetadataStore(IMetadataStore):

    def __init__(
        self,
        data_path: str,
        metadata_filename: str = "sessions-metadata.json",
        logger: Optional[StructuredLogger] = None
    ):
        self.data_path = Path(data_path)
        self.metadata_file = self.data_path / metadata_filename
        self.logger = logger or get_logger("metadata_store")

        self._records: Dict[str, MetadataRecord] = {}
        self._loaded = False
        self._write_lock = asyncio.Lock()

    async def initialize(self) -> None:
        await aiofiles.os.makedirs(self.data_path, exist_ok=True)
        await self._load()

    async def _load(self) -> None:
        self._records = {}
        self._loaded = True

        if not await aiofiles.os.path.exists(self.metadata_file):
            return

        try:
            async with aiofiles.open(self.metadata_file, 'r', encoding='utf-8') as f:
                raw = json.loads(await f.read() or "{}")
        except (OSError, ValueError) as e:
            self.logger.error("metadata_store.load_failed", {
                "path": str(self.metadata_file),
                "error": str(e),
                "error_type": type(e).__name__
            })
            return

        for session_id, data in raw.items():
            try:
                self._records[session_id] = MetadataRecord.from_dict({**data, "id": session_id})
            except (KeyError, TypeError, ValueError) as e:
                self.logger.warning("metadata_store.record_skipped", {
                    "session_id": session_id,
                    "error": str(e)
                })

        self.logger.info("metadata_store.loaded", {
            "path": str(self.metadata_file),
            "records": len(self._records)
        })

    async def _ensure_loaded(self) -> None:
        if not self._loaded:
            await self.initialize()

    async def _flush(self) -> None:
        """Rewrite the metadata file atomically. Caller holds the write lock."""
        payload = {session_id: record.to_dict() for session_id, record in self._records.items()}
        tmp_path = self.metadata_file.with_name(self.metadata_file.name + ".tmp")

        await aiofiles.os.makedirs(self.data_path, exist_ok=True)
        async with aiofiles.open(tmp_path, 'w', encoding='utf-8') as f:
            await f.write(json.dumps(payload, indent=2))
        await aiofiles.os.replace(tmp_path, self.metadata_file)

    async def save(self, record: MetadataRecord) -> None:
        await self._ensure_loaded()
        async with self._write_lock:
            self._records[record.id] = record
            await self._flush()

    async def remove(self, session_id: str) -> bool:
        await self._ensure_loaded()
        async with self._write_lock:
            if self._records.pop(session_id, None) is None:
                return False
            await self._flush()
        self.logger.debug("metadata_store.removed", {"session_id": session_id})
        return True

    async def list_all(self) -> List[MetadataRecord]:
        await self._ensure_loaded()
        return list(self._records.values())

    # === Credential material ===

    def _session_dir(self, session_id: str) -> Path:
        if not session_id or session_id in (".", "..") or "/" in session_id or "\\" in session_id:
            raise ValueError(f"Invalid session id for storage: '{session_id}'")
        return self.data_path / session_id

    async def credential_material_exists(self, session_id: str) -> bool:
        return await aiofiles.os.path.exists(self._session_dir(session_id) / CREDENTIALS_FILENAME)

    async def save_credential_material(self, session_id: str, data: Dict[str, Any]) -> None:
        session_dir = self._session_dir(session_id)
        await aiofiles.os.makedirs(session_dir, exist_ok=True)

        target = session_dir / CREDENTIALS_FILENAME
        tmp_path = session_dir / (CREDENTIALS_FILENAME + ".tmp")
        async with aiofiles.open(tmp_path, 'w', encoding='utf-8') as f:
            await f.write(json.dumps(data))
        await aiofiles.os.replace(tmp_path, target)

    async def load_credential_material(self, session_id: str) -> Optional[Dict[str, Any]]:
        target = self._session_dir(session_id) / CREDENTIALS_FILENAME
        if not await aiofiles.os.path.exists(target):
            return None
        try:
            async with aiofiles.open(target, 'r', encoding='utf-8') as f:
                return json.loads(await f.read())
        except (OSError, ValueError) as e:
            self.logger.error("metadata_store.credentials_unreadable", {
                "session_id": session_id,
                "error": str(e),
                "error_type": type(e).__name__
            })
            return None

    async def delete_credential_material(self, session_id: str) -> None:
        session_dir = self._session_dir(session_id)
        if os.path.isdir(session_dir):
            await asyncio.to_thread(shutil.rmtree, session_dir, True)
            self.logger.info("metadata_store.credentials_deleted", {"session_id": session_id})
