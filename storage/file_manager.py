# storage/file_manager.py
"""File-backed metadata store and content writer."""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
from typing import Any

import structlog

from config import CONTENT_DIR, METADATA_DIR

logger = structlog.get_logger(__name__)


def _safe_name(content_id: str) -> str:
    return "".join(c if c.isalnum() or c in ["_", "-"] else "_" for c in content_id)


class JsonFileMetadataStore:
    """One JSON document per content id. Writes replace the file atomically."""

    def __init__(self, metadata_dir: str = METADATA_DIR) -> None:
        self.metadata_dir = metadata_dir

    def path_for(self, content_id: str) -> str:
        return os.path.join(self.metadata_dir, f"{_safe_name(content_id)}.json")

    async def load(self, content_id: str) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._load_sync, content_id)

    def _load_sync(self, content_id: str) -> Any:
        path = self.path_for(content_id)
        if not os.path.exists(path):
            return None
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning(
                "Could not read metadata file.", path=path, error=str(exc)
            )
            return None

    async def upsert(self, content_id: str, document: dict[str, Any]) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._upsert_sync, content_id, document)

    def _upsert_sync(self, content_id: str, document: dict[str, Any]) -> None:
        path = self.path_for(content_id)
        os.makedirs(self.metadata_dir, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=self.metadata_dir, prefix=".tmp-", suffix=".json"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2, ensure_ascii=False, default=str)
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise


class FileManager:
    """Write final content artifacts."""

    def __init__(self, content_dir: str = CONTENT_DIR) -> None:
        self.content_dir = content_dir

    async def save_content(self, content_id: str, text: str) -> str:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, self._save_content_sync, content_id, text
        )

    def _save_content_sync(self, content_id: str, text: str) -> str:
        file_path = os.path.join(self.content_dir, f"{_safe_name(content_id)}.md")
        os.makedirs(self.content_dir, exist_ok=True)
        with open(file_path, "w", encoding="utf-8") as f:
            f.write(text)
        return file_path

    async def read_text(self, file_path: str) -> str:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._read_text_sync, file_path)

    def _read_text_sync(self, file_path: str) -> str:
        with open(file_path, encoding="utf-8") as f:
            return f.read()
