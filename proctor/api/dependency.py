from typing import Annotated

from fastapi import Depends, Request

from proctor.domain.exam.registry import SessionRegistry
from proctor.services.process_scan import ProcessScanService


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def get_scan_service(request: Request) -> ProcessScanService:
    return request.app.state.scan_service


def get_client_address(request: Request) -> str:
    """Origin address of the caller, kept for audit."""
    return request.client.host if request.client else ""


Registry = Annotated[SessionRegistry, Depends(get_registry)]
ScanService = Annotated[ProcessScanService, Depends(get_scan_service)]
ClientAddress = Annotated[str, Depends(get_client_address)]
