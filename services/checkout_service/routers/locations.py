"""Location lookup router: provinces, districts and wards."""

from fastapi import APIRouter, Depends, HTTPException
from services.checkout_service.errors import GeoLookupError
from services.checkout_service.schemas import GeoNode
from services.checkout_service.services.address_resolver import (
    GeoDirectory,
    get_geo_directory,
)

router = APIRouter(prefix="/locations", tags=["locations"])


def _unavailable(exc: GeoLookupError) -> HTTPException:
    return HTTPException(status_code=502, detail=f"Location service error: {exc.message}")


@router.get("/provinces", response_model=list[GeoNode])
async def list_provinces(directory: GeoDirectory = Depends(get_geo_directory)):
    try:
        return await directory.provinces()
    except GeoLookupError as exc:
        raise _unavailable(exc) from exc


@router.get("/provinces/{province_id}/districts", response_model=list[GeoNode])
async def list_districts(
    province_id: int,
    directory: GeoDirectory = Depends(get_geo_directory),
):
    try:
        return await directory.districts(province_id)
    except GeoLookupError as exc:
        raise _unavailable(exc) from exc


@router.get("/districts/{district_id}/wards", response_model=list[GeoNode])
async def list_wards(
    district_id: int,
    directory: GeoDirectory = Depends(get_geo_directory),
):
    try:
        return await directory.wards(district_id)
    except GeoLookupError as exc:
        raise _unavailable(exc) from exc
