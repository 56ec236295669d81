"""JSON snapshot persistence for the session registry."""

import asyncio
import os
from pathlib import Path

import orjson
from loguru import logger
from pydantic import TypeAdapter, ValidationError

from proctor.schemas import ExamSession
from proctor.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

_snapshot_adapter = TypeAdapter(dict[str, ExamSession])


class SessionStore:
    """Loads and saves the full registry as one JSON document keyed by session code.

    Writes go to a temporary sibling file which then replaces the target, so a
    crash mid-write never leaves a truncated snapshot behind. Callers
    serialize saves; see SessionRegistry.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    async def load(self) -> dict[str, ExamSession] | None:
        """Return the stored snapshot, or None when nothing has been saved yet.

        Raises:
            AppError: E_PERSISTENCE_IO if the file exists but cannot be read or decoded
        """
        return await asyncio.to_thread(self._load_sync)

    async def save(self, snapshot: dict[str, ExamSession]) -> None:
        """Write the snapshot.

        Raises:
            AppError: E_PERSISTENCE_IO if the file cannot be written
        """
        data = orjson.dumps(
            _snapshot_adapter.dump_python(snapshot, mode="json"),
            option=orjson.OPT_INDENT_2,
        )
        await asyncio.to_thread(self._write_sync, data)
        logger.debug("Saved {} sessions to {}", len(snapshot), self.path)

    def _load_sync(self) -> dict[str, ExamSession] | None:
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            logger.info("No session snapshot at {}, starting empty", self.path)
            return None
        except OSError as e:
            raise AppError(
                errcode=AppErrorCode.E_PERSISTENCE_IO,
                errmesg=f"Failed to read session snapshot {self.path}: {e}",
                status_code=HttpStatusCode.INTERNAL_SERVER_ERROR,
            ) from e

        try:
            snapshot = _snapshot_adapter.validate_python(orjson.loads(raw) or {})
        except (orjson.JSONDecodeError, ValidationError) as e:
            raise AppError(
                errcode=AppErrorCode.E_PERSISTENCE_IO,
                errmesg=f"Failed to decode session snapshot {self.path}: {e}",
                status_code=HttpStatusCode.INTERNAL_SERVER_ERROR,
            ) from e

        logger.info("Loaded {} sessions from {}", len(snapshot), self.path)
        return snapshot

    def _write_sync(self, data: bytes) -> None:
        tmp_path = self.path.with_name(f"{self.path.name}.tmp")
        try:
            if self.path.parent != Path(""):
                self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(data)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise AppError(
                errcode=AppErrorCode.E_PERSISTENCE_IO,
                errmesg=f"Failed to write session snapshot {self.path}: {e}",
                status_code=HttpStatusCode.INTERNAL_SERVER_ERROR,
            ) from e
