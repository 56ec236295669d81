"""Scans local processes for applications forbidden during an exam."""

import asyncio

from loguru import logger
from pydantic import BaseModel, Field

from proctor.utils.app_errors import AppError, AppErrorCode, HttpStatusCode


class ScanResult(BaseModel):
    forbidden_found: bool
    processes: list[str] = Field(default_factory=list)


class ProcessScanService:
    """Runs ``ps -e`` and reports which forbidden names appear in its output.

    Matching is a case-insensitive substring check over the whole listing.
    The registry never calls this; a client decides whether to flag a
    participant based on the result.
    """

    def __init__(self, forbidden_apps: list[str], command: tuple[str, ...] = ("ps", "-e")):
        self.forbidden_apps = [app.lower() for app in forbidden_apps]
        self.command = command

    async def scan(self) -> ScanResult:
        listing = await self._list_processes()
        found = [app for app in self.forbidden_apps if app in listing]

        if found:
            logger.warning("Forbidden processes detected: {}", found)

        return ScanResult(forbidden_found=bool(found), processes=found)

    async def _list_processes(self) -> str:
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, stderr = await proc.communicate()
        except OSError as e:
            raise AppError(
                errcode=AppErrorCode.E_SCAN_FAILED,
                errmesg=f"Failed to run {' '.join(self.command)}: {e}",
                status_code=HttpStatusCode.INTERNAL_SERVER_ERROR,
            ) from e

        if proc.returncode != 0:
            raise AppError(
                errcode=AppErrorCode.E_SCAN_FAILED,
                errmesg=f"{' '.join(self.command)} exited with {proc.returncode}: {stderr.decode(errors='replace').strip()}",
                status_code=HttpStatusCode.INTERNAL_SERVER_ERROR,
            )

        return stdout.decode(errors="replace").lower()
