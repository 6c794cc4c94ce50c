"""Province → district → ward resolution.

``GeoDirectory`` is a process-wide read-through cache: the reference data is
static, so entries never expire and survive across checkouts. Concurrent
callers on a cold key share one fetch. Failed lookups are not cached.

``AddressResolver`` holds one form's selection and the option lists currently
shown for it. Every list load is tagged with a generation token; a response
that arrives after the selection moved on is dropped.
"""

import asyncio
from functools import lru_cache
from typing import Awaitable, Callable, Optional, Union

from libs.common.logging import get_logger
from services.checkout_service.clients import GeoClient
from services.checkout_service.errors import GeoLookupError, UnknownLocationError
from services.checkout_service.models import LocationLevel
from services.checkout_service.schemas.checkout import GeoNode, LocationSelection
from services.checkout_service.services.transitions import select_level

logger = get_logger(__name__)

CacheKey = tuple[str, Optional[int]]


class GeoDirectory:
    def __init__(self, client: Optional[GeoClient] = None):
        self.client = client or GeoClient()
        self._cache: dict[CacheKey, list[GeoNode]] = {}
        self._locks: dict[CacheKey, asyncio.Lock] = {}

    async def _read_through(
        self, key: CacheKey, fetch: Callable[[], Awaitable[list[GeoNode]]]
    ) -> list[GeoNode]:
        if key not in self._cache:
            # Concurrent callers share one fetch per key
            async with self._locks.setdefault(key, asyncio.Lock()):
                if key not in self._cache:
                    self._cache[key] = await fetch()
                    logger.info("Cached %d %s entries under %s", len(self._cache[key]), *key)
        return list(self._cache[key])

    async def provinces(self) -> list[GeoNode]:
        return await self._read_through(("province", None), self.client.fetch_provinces)

    async def districts(self, province_id: int) -> list[GeoNode]:
        return await self._read_through(
            ("district", province_id), lambda: self.client.fetch_districts(province_id)
        )

    async def wards(self, district_id: int) -> list[GeoNode]:
        return await self._read_through(
            ("ward", district_id), lambda: self.client.fetch_wards(district_id)
        )


@lru_cache
def get_geo_directory() -> GeoDirectory:
    """Return the process-wide directory, created on first use."""
    return GeoDirectory()


def _find(nodes: list[GeoNode], node_id: Union[int, str]) -> Optional[GeoNode]:
    return next((node for node in nodes if node.id == node_id), None)


class AddressResolver:
    def __init__(self, directory: GeoDirectory):
        self.directory = directory
        self.selection = LocationSelection()
        self.provinces: list[GeoNode] = []
        self.districts: list[GeoNode] = []
        self.wards: list[GeoNode] = []
        self.last_error: Optional[GeoLookupError] = None
        self._generation = {LocationLevel.DISTRICT: 0, LocationLevel.WARD: 0}

    # ------------------------------------------------------------------
    # Lookups (never raise; failures give an empty list and last_error)
    # ------------------------------------------------------------------

    async def _load(
        self,
        fetch: Callable[..., Awaitable[list[GeoNode]]],
        *args,
    ) -> list[GeoNode]:
        try:
            nodes = await fetch(*args)
        except GeoLookupError as exc:
            logger.warning("Location lookup failed: %s", exc)
            self.last_error = exc
            return []
        self.last_error = None
        return nodes

    async def list_provinces(self) -> list[GeoNode]:
        provinces = await self._load(self.directory.provinces)
        if provinces:
            self.provinces = provinces
        return provinces

    async def list_districts(self, province_id: int) -> list[GeoNode]:
        return await self._load(self.directory.districts, province_id)

    async def list_wards(self, district_id: int) -> list[GeoNode]:
        return await self._load(self.directory.wards, district_id)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def _advance(self, *levels: LocationLevel) -> dict[LocationLevel, int]:
        for level in levels:
            self._generation[level] += 1
        return dict(self._generation)

    def _is_current(self, level: LocationLevel, issued: dict[LocationLevel, int]) -> bool:
        return self._generation[level] == issued[level]

    async def select_province(self, province_id: Optional[int]) -> LocationSelection:
        node = None
        if province_id is not None:
            node = _find(self.provinces, province_id)
            if node is None:
                node = _find(await self.list_provinces(), province_id)
            if node is None:
                raise UnknownLocationError(f"Unknown province {province_id}")

        issued = self._advance(LocationLevel.DISTRICT, LocationLevel.WARD)
        self.selection = select_level(self.selection, LocationLevel.PROVINCE, node)
        self.districts = []
        self.wards = []
        if node is None:
            return self.selection

        districts = await self.list_districts(node.id)
        if self._is_current(LocationLevel.DISTRICT, issued):
            self.districts = districts
        else:
            logger.debug("Dropped stale district list for province %s", node.id)
        return self.selection

    async def select_district(self, district_id: Optional[int]) -> LocationSelection:
        province_id = self.selection.province_id
        node = None
        if district_id is not None:
            if province_id is None:
                raise UnknownLocationError("Select a province before a district")
            node = _find(self.districts, district_id)
            if node is None and not self.districts:
                # Visible list failed to load earlier; retry through the cache
                issued = dict(self._generation)
                districts = await self.list_districts(province_id)
                if self._is_current(LocationLevel.DISTRICT, issued):
                    self.districts = districts
                node = _find(self.districts, district_id)
            if node is None or (node.parent_id is not None and node.parent_id != province_id):
                raise UnknownLocationError(
                    f"District {district_id} is not in province {province_id}"
                )

        issued = self._advance(LocationLevel.WARD)
        self.selection = select_level(self.selection, LocationLevel.DISTRICT, node)
        self.wards = []
        if node is None:
            return self.selection

        wards = await self.list_wards(node.id)
        if self._is_current(LocationLevel.WARD, issued):
            self.wards = wards
        else:
            logger.debug("Dropped stale ward list for district %s", node.id)
        return self.selection

    def select_ward(self, ward_code: Optional[str]) -> LocationSelection:
        node = None
        if ward_code:
            district_id = self.selection.district_id
            node = _find(self.wards, ward_code)
            if district_id is None or node is None or (
                node.parent_id is not None and node.parent_id != district_id
            ):
                raise UnknownLocationError(f"Ward {ward_code} is not in district {district_id}")
        self.selection = select_level(self.selection, LocationLevel.WARD, node)
        return self.selection

    async def restore(self, saved: LocationSelection) -> LocationSelection:
        """Apply a whole saved selection, keeping only the levels that resolve."""
        issued = self._advance(LocationLevel.DISTRICT, LocationLevel.WARD)
        self.districts = []
        self.wards = []
        self.selection = LocationSelection()
        if saved.province_id is None:
            return self.selection

        restored = saved
        districts = await self.list_districts(saved.province_id)
        wards: list[GeoNode] = []
        if saved.district_id is None or _find(districts, saved.district_id) is None:
            restored = select_level(restored, LocationLevel.DISTRICT, None)
        else:
            wards = await self.list_wards(saved.district_id)
            if saved.ward_code and _find(wards, saved.ward_code) is None:
                restored = select_level(restored, LocationLevel.WARD, None)

        if not self._is_current(LocationLevel.DISTRICT, issued):
            logger.debug("Dropped stale restore for province %s", saved.province_id)
            return self.selection
        self.districts = districts
        self.wards = wards
        self.selection = restored
        return self.selection

    def reset(self) -> None:
        self._advance(LocationLevel.DISTRICT, LocationLevel.WARD)
        self.selection = LocationSelection()
        self.districts = []
        self.wards = []
        self.last_error = None
