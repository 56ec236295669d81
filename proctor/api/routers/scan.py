from fastapi import APIRouter

from proctor.api.dependency import ScanService
from proctor.api.schemas.base import ApiOut
from proctor.services.process_scan import ScanResult

router = APIRouter()


@router.get("/scan")
async def scan_processes(service: ScanService) -> ApiOut[ScanResult]:
    """Check the local machine for forbidden applications."""
    return ApiOut[ScanResult](results=await service.scan())
