"""
Seminar Service - flat records under resources/seminar/{id}

Status (past/ongoing/upcoming) is derived on read at day granularity.
The stored list is cached under `seminars_list`.
"""

import datetime as dt
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from app.core.config import settings
from app.core.exceptions import SeminarNotFoundError, ValidationError
from app.core.logging_config import logger
from app.db.paths import ResourcePath
from app.db.tree_store import TreeStore
from app.schemas.seminar import Seminar, SeminarCreate, SeminarView
from app.services.cache_service import KEY_SEMINARS


REQUIRED_FIELDS = ("type", "date", "time", "location")


class SeminarService:

    def __init__(self, tree: TreeStore, cache):
        self.tree = tree
        self.cache = cache

    async def _stored_seminars(self) -> List[Dict[str, Any]]:
        cached = await self.cache.get(KEY_SEMINARS)
        if cached is not None:
            return cached

        snapshot = await self.tree.read(ResourcePath.seminar())
        records = []
        if isinstance(snapshot, dict):
            records = [v for v in snapshot.values() if isinstance(v, dict) and v.get("id")]
        await self.cache.set(KEY_SEMINARS, records, ttl=settings.CACHE_TTL_SEMINARS)
        return records

    async def list_seminars(self, today: Optional[dt.date] = None) -> List[SeminarView]:
        """All seminars, newest date first, each with its derived status"""
        seminars = []
        for record in await self._stored_seminars():
            try:
                seminar = Seminar.model_validate(record)
            except PydanticValidationError as e:
                logger.warning(f"Skipping malformed seminar {record.get('id')}: {e.error_count()} errors")
                continue
            seminars.append(SeminarView(**seminar.model_dump(), status=seminar.status_on(today)))
        seminars.sort(key=lambda s: s.date, reverse=True)
        return seminars

    async def get_seminar(self, seminar_id: str, today: Optional[dt.date] = None) -> SeminarView:
        data = await self.tree.read(ResourcePath.seminar(seminar_id))
        if not isinstance(data, dict):
            raise SeminarNotFoundError(seminar_id)
        seminar = Seminar.model_validate(data)
        return SeminarView(**seminar.model_dump(), status=seminar.status_on(today))

    @staticmethod
    def _validate(data: SeminarCreate) -> None:
        missing = []
        for name in REQUIRED_FIELDS:
            value = getattr(data, name)
            if value is None or (isinstance(value, str) and not value.strip()):
                missing.append(name)
        if missing:
            raise ValidationError(f"Required fields: {', '.join(missing)}", field=missing[0])

    async def create_seminar(self, data: SeminarCreate) -> SeminarView:
        self._validate(data)
        seminar_id = self.tree.push_key()
        seminar = Seminar(id=seminar_id, **data.model_dump())
        await self.tree.write(ResourcePath.seminar(seminar_id), seminar.to_stored())
        await self.cache.clear(KEY_SEMINARS)
        logger.info(f"Seminar created: {seminar_id} ({seminar.type} on {seminar.date})")
        return SeminarView(**seminar.model_dump(), status=seminar.status_on())

    async def update_seminar(self, seminar_id: str, data: SeminarCreate) -> SeminarView:
        self._validate(data)
        if not await self.tree.exists(ResourcePath.seminar(seminar_id)):
            raise SeminarNotFoundError(seminar_id)
        seminar = Seminar(id=seminar_id, **data.model_dump())
        await self.tree.write(ResourcePath.seminar(seminar_id), seminar.to_stored())
        await self.cache.clear(KEY_SEMINARS)
        logger.info(f"Seminar updated: {seminar_id}")
        return SeminarView(**seminar.model_dump(), status=seminar.status_on())

    async def delete_seminar(self, seminar_id: str) -> None:
        if not await self.tree.exists(ResourcePath.seminar(seminar_id)):
            raise SeminarNotFoundError(seminar_id)
        await self.tree.delete(ResourcePath.seminar(seminar_id))
        await self.cache.clear(KEY_SEMINARS)
        logger.info(f"Seminar deleted: {seminar_id}")
