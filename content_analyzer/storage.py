"""
Durable storage for analysis records.
"""

import asyncio
import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from pydantic_core import to_jsonable_python

from content_analyzer import config

logger = logging.getLogger(__name__)

_SAFE_ID = re.compile(r'^[A-Za-z0-9_-]+$')


class RecordStore(Protocol):
    """Keyed store of analysis records (plain JSON-compatible dicts)."""

    async def get(self, analysis_id: str) -> Optional[Dict[str, Any]]:
        ...

    async def update(self, analysis_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        ...


class JsonFileRecordStore:
    """
    Keeps one JSON document per analysis record in a directory.

    ``update`` merges the given fields into the stored record, creating it when
    it does not exist yet. Ids are used as file names and must consist of ASCII
    letters, digits, ``_`` and ``-``; other ids raise ``ValueError``. Writes go
    to a temporary file that then replaces the record, so a failed write leaves
    the previous record intact. Read and write errors propagate to the caller.
    """

    def __init__(self, directory: str = config.ANALYSIS_STORE_DIR):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()

    def _path(self, analysis_id: str) -> Path:
        if not analysis_id or not _SAFE_ID.match(analysis_id):
            raise ValueError(f"Invalid analysis id: {analysis_id!r}")
        filename = analysis_id + '.json'
        return self.directory / filename

    @staticmethod
    def _read(path: Path) -> Optional[Dict[str, Any]]:
        if not path.exists():
            return None
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)

    @staticmethod
    def _write(path: Path, record: Dict[str, Any]):
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.stem}.", suffix='.tmp', dir=path.parent)
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(record, f, indent=2, ensure_ascii=False)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    async def get(self, analysis_id: str) -> Optional[Dict[str, Any]]:
        path = self._path(analysis_id)
        return await asyncio.to_thread(self._read, path)

    async def update(self, analysis_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        path = self._path(analysis_id)
        # Read-merge-write must not interleave with another update
        async with self._lock:
            record = await asyncio.to_thread(self._read, path) or {'id': analysis_id}
            record.update(to_jsonable_python(fields))
            await asyncio.to_thread(self._write, path, record)
        logger.debug(f"Stored fields {sorted(fields)} for analysis {analysis_id}")
        return record
