"""
File-backed TLE cache.

Each query key maps to two files in the cache directory: ``{key}.json`` with
the metadata and ``{key}.dat`` with the raw payload. Older caches stored the
payload as ``{key}.tle``; those files are migrated on first load.
"""

import contextlib
import os
import tempfile
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional, Tuple, Union

from pydantic import ValidationError

from .config import config
from .logging_config import get_logger
from .models import TLECacheMetadata, TLECacheRecord

logger = get_logger(__name__)


def sanitized_file_name(query_key: str) -> str:
    """Replace characters that are unsafe in file names with underscores."""
    result = "".join(c if c.isalnum() or c in "-_" else "_" for c in query_key)
    return result or "default"


class TLECacheStore:
    """Durable query key -> (metadata, payload) store with atomic pair writes."""

    def __init__(self, directory: Union[str, Path, None] = None):
        self.directory = Path(directory) if directory is not None else config.CACHE_DIR
        self._lock = threading.Lock()

    def _paths(self, query_key: str) -> Tuple[Path, Path, Path]:
        name = sanitized_file_name(query_key)
        return (
            self.directory / f"{name}.json",
            self.directory / f"{name}.dat",
            self.directory / f"{name}.tle",
        )

    def load(self, query_key: str) -> Optional[TLECacheRecord]:
        """
        Load the cached record for a query key.

        Returns None when nothing is cached or when either half of the record
        is unreadable.
        """
        metadata_path, payload_path, legacy_path = self._paths(query_key)
        with self._lock:
            if not metadata_path.exists():
                return None
            try:
                metadata = TLECacheMetadata.model_validate_json(metadata_path.read_bytes())
                payload = self._read_payload(payload_path, legacy_path)
            except (OSError, ValidationError) as e:
                logger.warning("Discarding unreadable cache entry",
                               query_key=query_key, error=str(e))
                return None
        return TLECacheRecord(metadata=metadata, payload=payload)

    def _read_payload(self, payload_path: Path, legacy_path: Path) -> bytes:
        if payload_path.exists():
            return payload_path.read_bytes()

        # Raises FileNotFoundError when neither payload file exists
        legacy = legacy_path.read_bytes()
        self._write_atomic(payload_path, legacy)
        with contextlib.suppress(OSError):
            legacy_path.unlink()
        logger.info("Migrated legacy cache payload", path=str(payload_path))
        return legacy

    def save(
        self,
        query_key: str,
        payload: bytes,
        source_url: str,
        fetched_at: datetime,
        content_type: str,
        etag: Optional[str] = None,
        last_modified: Optional[str] = None,
    ) -> TLECacheMetadata:
        """Write metadata and payload for a query key, replacing any previous pair."""
        metadata = TLECacheMetadata(
            query_key=query_key,
            fetched_at=fetched_at,
            source_url=source_url,
            content_type=content_type,
            etag=etag,
            last_modified=last_modified,
        )
        metadata_json = metadata.model_dump_json(by_alias=True, exclude_none=True)
        metadata_path, payload_path, _ = self._paths(query_key)

        with self._lock:
            self.directory.mkdir(parents=True, exist_ok=True)
            payload_tmp = self._write_temp(payload_path, payload)
            try:
                metadata_tmp = self._write_temp(metadata_path, metadata_json.encode("utf-8"))
            except OSError:
                with contextlib.suppress(OSError):
                    os.unlink(payload_tmp)
                raise
            os.replace(payload_tmp, payload_path)
            os.replace(metadata_tmp, metadata_path)

        logger.debug("Saved cache entry", query_key=query_key, bytes=len(payload))
        return metadata

    def _write_temp(self, target: Path, data: bytes) -> str:
        fd, tmp_path = tempfile.mkstemp(dir=str(target.parent), prefix=f".{target.name}.")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
        except OSError:
            with contextlib.suppress(OSError):
                os.unlink(tmp_path)
            raise
        return tmp_path

    def _write_atomic(self, target: Path, data: bytes):
        os.replace(self._write_temp(target, data), target)

    @staticmethod
    def decode_text_payload(record: TLECacheRecord) -> Optional[str]:
        """Return the payload as text when the record holds a text format."""
        if not record.metadata.content_type.startswith("text/"):
            return None
        try:
            return record.payload.decode("utf-8")
        except UnicodeDecodeError:
            return None
