"""
Format discovery API endpoints
"""
from fastapi import APIRouter, Depends

from fileconv.api.dependencies import get_service
from fileconv.services.conversion_service import ConversionService

router = APIRouter()


@router.get("/formats")
async def get_supported_formats(service: ConversionService = Depends(get_service)):
    """
    List supported formats by category, with the targets each category reaches
    """
    return service.formats()


@router.get("/check/{source_format}/{target_format}")
async def check_conversion(
    source_format: str,
    target_format: str,
    service: ConversionService = Depends(get_service),
):
    """
    Check whether a conversion is supported
    """
    return service.check(source_format, target_format)
