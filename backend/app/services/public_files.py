"""
Public Files Service - home-page "recent items", file statistics and
the static index fallback served when there is no session.
"""

import json
from pathlib import Path
from typing import Dict, List, Optional

import aiofiles

from app.core.config import settings
from app.core.logging_config import logger
from app.db.paths import RESOURCE_KINDS
from app.schemas.resource import FileStats, PublicFile
from app.services.cache_service import PREFIX_FILE_STATS, public_files_key
from app.services.resource_tree import ResourceTreeService, TreeChange
from app.utils.file_utils import format_file_count, format_size, parse_size


class PublicFilesService:

    def __init__(self, tree_service: ResourceTreeService, cache, static_dir: Optional[Path] = None):
        self.tree_service = tree_service
        self.cache = cache
        self.static_dir = Path(static_dir or settings.STATIC_INDEX_PATH)

    async def list_files(self, kind: str) -> List[PublicFile]:
        """Every resource of a kind across years and modules, newest first"""
        key = public_files_key(kind)
        cached = await self.cache.get(key)
        if cached is not None:
            return [PublicFile.model_validate(item) for item in cached]

        files = []
        async for year, module, record in self.tree_service.iter_kind(kind):
            if not record.get("type"):
                continue
            files.append(PublicFile(
                id=record.get("id"),
                name=record.get("description") or "",
                url=record.get("url") or "",
                uploaded_at=record.get("created_at"),
                size=record.get("size"),
                ext=record.get("file_type"),
                type=record.get("type"),
                module=module,
                year=year,
            ))
        files.sort(key=lambda f: f.uploaded_at or "", reverse=True)

        await self.cache.set(
            key,
            [f.model_dump(by_alias=True) for f in files],
            ttl=settings.CACHE_TTL_PUBLIC_FILES,
        )
        return files

    async def recent(self, kind: str, limit: Optional[int] = None) -> List[PublicFile]:
        limit = settings.RECENT_ITEMS_LIMIT if limit is None else limit
        return (await self.list_files(kind))[:limit]

    async def static_index(self, kind: str) -> List[PublicFile]:
        """Offline-generated {kind}/index.json; empty when absent or unreadable"""
        index_file = self.static_dir / kind / "index.json"
        if not index_file.is_file():
            logger.debug(f"No static index at {index_file}")
            return []
        try:
            async with aiofiles.open(index_file, "r", encoding="utf-8") as f:
                raw = await f.read()
            entries = json.loads(raw)
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable static index {index_file}: {e}")
            return []
        if not isinstance(entries, list):
            return []
        return [PublicFile.model_validate(entry) for entry in entries if isinstance(entry, dict) and entry.get("name")]

    async def stats(self) -> Dict[str, FileStats]:
        key = f"{PREFIX_FILE_STATS}all"
        cached = await self.cache.get(key)
        if cached is not None:
            return {k: FileStats.model_validate(v) for k, v in cached.items()}

        totals = {}
        all_files = all_bytes = 0
        for kind in RESOURCE_KINDS:
            count = size = 0
            async for _, _, record in self.tree_service.iter_kind(kind):
                if record.get("type") == "file":
                    count += 1
                    raw = record.get("size_bytes")
                    size += raw if isinstance(raw, int) else parse_size(record.get("size"))
            totals[kind] = self._stats(kind, count, size)
            all_files += count
            all_bytes += size
        totals["total"] = self._stats("total", all_files, all_bytes)

        await self.cache.set(
            key,
            {k: v.model_dump() for k, v in totals.items()},
            ttl=settings.CACHE_TTL_PUBLIC_FILES,
        )
        return totals

    @staticmethod
    def _stats(kind: str, count: int, size: int) -> FileStats:
        return FileStats(
            kind=kind,
            total_files=count,
            total_bytes=size,
            formatted_size=format_size(size),
            formatted_count=format_file_count(count),
        )

    async def invalidate(self, change: TreeChange) -> None:
        """Change-channel listener: drop cached listings for the touched kind"""
        if change.path.is_seminar:
            return
        await self.cache.clear(public_files_key(change.path.kind))
        await self.cache.clear_pattern(f"^{PREFIX_FILE_STATS}")
