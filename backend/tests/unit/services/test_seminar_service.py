"""
Unit Tests for the Seminar Service
"""
import datetime as dt
import pytest

from app.core.exceptions import SeminarNotFoundError, ValidationError
from app.schemas.seminar import SeminarCreate, SeminarStatus
from app.services.cache_service import KEY_SEMINARS
from app.services.seminar_service import SeminarService


TODAY = dt.date(2025, 3, 14)


@pytest.fixture
def seminars(tree, cache) -> SeminarService:
    return SeminarService(tree, cache)


def seminar_data(date, **overrides) -> SeminarCreate:
    data = {
        "type": "Conférence",
        "description": "Marketing digital",
        "date": date,
        "time": "14:00",
        "location": "Amphi A",
        "spots": 40,
        "link": "https://example.org/inscription",
    }
    data.update(overrides)
    return SeminarCreate(**data)


class TestSeminarStatus:
    """Test day-granularity status"""

    @pytest.mark.asyncio
    async def test_status_relative_to_today(self, seminars):
        """Test that today is ongoing, yesterday past, tomorrow upcoming"""
        await seminars.create_seminar(seminar_data(TODAY, description="today"))
        await seminars.create_seminar(seminar_data(TODAY - dt.timedelta(days=1), description="yesterday"))
        await seminars.create_seminar(seminar_data(TODAY + dt.timedelta(days=1), description="tomorrow"))

        listed = await seminars.list_seminars(today=TODAY)

        statuses = {s.description: s.status for s in listed}
        assert statuses == {
            "today": SeminarStatus.ONGOING,
            "yesterday": SeminarStatus.PAST,
            "tomorrow": SeminarStatus.UPCOMING,
        }

    @pytest.mark.asyncio
    async def test_newest_date_first(self, seminars):
        await seminars.create_seminar(seminar_data(dt.date(2024, 1, 10)))
        await seminars.create_seminar(seminar_data(dt.date(2025, 6, 1)))
        await seminars.create_seminar(seminar_data(dt.date(2024, 11, 5)))

        listed = await seminars.list_seminars(today=TODAY)

        assert [s.date for s in listed] == [dt.date(2025, 6, 1), dt.date(2024, 11, 5), dt.date(2024, 1, 10)]


class TestSeminarWrites:
    """Test create/update/delete"""

    @pytest.mark.asyncio
    async def test_required_fields(self, seminars, tree):
        """Test that type, date, time and location are required"""
        with pytest.raises(ValidationError) as exc_info:
            await seminars.create_seminar(SeminarCreate(type="Atelier", time="10:00"))

        assert "date" in exc_info.value.message
        assert "location" in exc_info.value.message
        assert await tree.read("resources/seminar") is None

    @pytest.mark.asyncio
    async def test_status_is_not_stored(self, seminars, tree):
        """Test the stored layout: aliases spots/link, no status"""
        created = await seminars.create_seminar(seminar_data(TODAY))

        stored = await tree.read(f"resources/seminar/{created.id}")
        assert stored["id"] == created.id
        assert stored["spots"] == 40
        assert stored["link"] == "https://example.org/inscription"
        assert stored["date"] == "2025-03-14"
        assert "status" not in stored

    @pytest.mark.asyncio
    async def test_update_replaces_record(self, seminars):
        created = await seminars.create_seminar(seminar_data(TODAY))

        updated = await seminars.update_seminar(created.id, seminar_data(TODAY, location="Salle 12", spots=10))

        fetched = await seminars.get_seminar(created.id, today=TODAY)
        assert updated.id == created.id
        assert fetched.location == "Salle 12"
        assert fetched.spot_count == 10

    @pytest.mark.asyncio
    async def test_update_missing(self, seminars):
        with pytest.raises(SeminarNotFoundError):
            await seminars.update_seminar("-missing", seminar_data(TODAY))

    @pytest.mark.asyncio
    async def test_delete(self, seminars):
        created = await seminars.create_seminar(seminar_data(TODAY))

        await seminars.delete_seminar(created.id)

        assert await seminars.list_seminars(today=TODAY) == []
        with pytest.raises(SeminarNotFoundError):
            await seminars.get_seminar(created.id)


class TestSeminarCache:
    """Test the seminars_list cache"""

    @pytest.mark.asyncio
    async def test_list_is_cached(self, seminars, cache):
        await seminars.create_seminar(seminar_data(TODAY))

        await seminars.list_seminars(today=TODAY)

        assert await cache.has(KEY_SEMINARS)

    @pytest.mark.asyncio
    async def test_writes_invalidate_cache(self, seminars, cache):
        """Test that a write is visible on the next list"""
        await seminars.create_seminar(seminar_data(TODAY))
        assert len(await seminars.list_seminars(today=TODAY)) == 1

        await seminars.create_seminar(seminar_data(TODAY))

        assert not await cache.has(KEY_SEMINARS)
        assert len(await seminars.list_seminars(today=TODAY)) == 2
