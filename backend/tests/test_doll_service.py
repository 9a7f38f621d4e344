"""
Doll Pin API: Doll Service Unit Tests
=======================================

What:  DollService rules and persistence against a real SQLite database.
How:   Each test gets a fresh database file (see conftest `database`).

Test Strategy:
    ✅ create → get round trip, defaults, trimming
    ✅ name / color / size boundaries, multi-field error reporting
    ✅ partial update semantics (blank or zero ignored, imageUrl null clears)
    ✅ pin append / remove, unknown pin id is a no-op
    ✅ every mutation moves updatedAt forward
    ✅ delete returns snapshot, then NotFoundError
    ✅ commit failures surface as StorageError
"""

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import OperationalError

from app.exceptions import NotFoundError, StorageError, ValidationError
from app.schemas.doll import DollCreate, DollUpdate, PinCreate
from app.services.doll_service import DollService


def _ticking_clock():
    """Patch the service clock so every call is one second after the last."""
    base = datetime(2025, 10, 6, 10, 30, tzinfo=timezone.utc)
    clock = iter(base + timedelta(seconds=i) for i in range(100))
    return patch("app.services.doll_service.utcnow", side_effect=lambda: next(clock))


class TestDollCreate:
    """Creating dolls."""

    def setup_method(self):
        self.service = DollService()

    @pytest.mark.asyncio
    async def test_create_then_get_round_trip(self, db_session):
        created = await self.service.create(
            db_session,
            DollCreate(name="Bob", color="#00ff00", size=30, image_url="http://x/a.jpg"),
        )
        fetched = await self.service.get_by_id(db_session, created.id)

        assert fetched.name == "Bob"
        assert fetched.color == "#00ff00"
        assert fetched.size == 30
        assert fetched.image_url == "http://x/a.jpg"
        assert fetched.pins == []

    @pytest.mark.asyncio
    async def test_create_applies_defaults(self, db_session):
        doll = await self.service.create(db_session, DollCreate(name="Bob"))

        assert doll.color == "#ff0000"
        assert doll.size == 50
        assert doll.image_url is None
        assert doll.pins == []
        assert doll.created_at == doll.updated_at

    @pytest.mark.asyncio
    async def test_create_trims_name(self, db_session):
        doll = await self.service.create(db_session, DollCreate(name="  Bob  "))
        assert doll.name == "Bob"

    @pytest.mark.asyncio
    async def test_create_requires_name(self, db_session):
        with pytest.raises(ValidationError, match="Missing required fields"):
            await self.service.create(db_session, DollCreate(color="#ffffff"))

    @pytest.mark.asyncio
    async def test_create_empty_name_is_missing(self, db_session):
        with pytest.raises(ValidationError, match="Missing required fields"):
            await self.service.create(db_session, DollCreate(name=""))

    @pytest.mark.asyncio
    async def test_whitespace_name_rejected(self, db_session):
        with pytest.raises(ValidationError, match="at least 1 character"):
            await self.service.create(db_session, DollCreate(name="   "))

    @pytest.mark.asyncio
    async def test_name_length_boundaries(self, db_session):
        await self.service.create(db_session, DollCreate(name="a"))
        await self.service.create(db_session, DollCreate(name="a" * 50))

        with pytest.raises(ValidationError, match="cannot exceed 50"):
            await self.service.create(db_session, DollCreate(name="a" * 51))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("color", ["#ffffff", "#000000", "#AbCdEf"])
    async def test_valid_colors_accepted(self, db_session, color):
        doll = await self.service.create(db_session, DollCreate(name="Bob", color=color))
        assert doll.color == color

    @pytest.mark.asyncio
    @pytest.mark.parametrize("color", ["red", "#fff", "#gggggg", "ff0000", "#ff00000"])
    async def test_invalid_colors_rejected(self, db_session, color):
        with pytest.raises(ValidationError, match="valid hex color"):
            await self.service.create(db_session, DollCreate(name="Bob", color=color))

    @pytest.mark.asyncio
    async def test_size_boundaries(self, db_session):
        await self.service.create(db_session, DollCreate(name="Bob", size=1))
        await self.service.create(db_session, DollCreate(name="Bob", size=100))

        with pytest.raises(ValidationError, match="at least 1"):
            await self.service.create(db_session, DollCreate(name="Bob", size=0))
        with pytest.raises(ValidationError, match="cannot exceed 100"):
            await self.service.create(db_session, DollCreate(name="Bob", size=101))

    @pytest.mark.asyncio
    async def test_every_bad_field_is_reported(self, db_session):
        with pytest.raises(ValidationError) as exc_info:
            await self.service.create(
                db_session, DollCreate(name="a" * 51, color="blue", size=500)
            )

        err = exc_info.value
        assert err.message == "Validation Error"
        assert len(err.errors) == 3
        assert err.context["fields"] == ["name", "color", "size"]

    @pytest.mark.asyncio
    async def test_invalid_doll_is_not_persisted(self, db_session):
        with pytest.raises(ValidationError):
            await self.service.create(db_session, DollCreate(name="Bob", size=0))

        assert await self.service.list_all(db_session) == []


class TestDollReadAndDelete:
    """Listing, lookups and deletion."""

    def setup_method(self):
        self.service = DollService()

    @pytest.mark.asyncio
    async def test_list_empty(self, db_session):
        assert await self.service.list_all(db_session) == []

    @pytest.mark.asyncio
    async def test_list_newest_first(self, db_session):
        with _ticking_clock():
            await self.service.create(db_session, DollCreate(name="first"))
            await self.service.create(db_session, DollCreate(name="second"))
            await self.service.create(db_session, DollCreate(name="third"))

        names = [doll.name for doll in await self.service.list_all(db_session)]
        assert names == ["third", "second", "first"]

    @pytest.mark.asyncio
    async def test_get_unknown_id(self, db_session):
        with pytest.raises(NotFoundError, match="was not found"):
            await self.service.get_by_id(db_session, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_delete_returns_snapshot_then_gone(self, db_session):
        doll = await self.service.create(db_session, DollCreate(name="Bob"))
        await self.service.append_pin(db_session, doll.id, PinCreate(x=1, y=2))

        snapshot = await self.service.delete(db_session, doll.id)

        assert snapshot.id == doll.id
        assert len(snapshot.pins) == 1
        with pytest.raises(NotFoundError):
            await self.service.get_by_id(db_session, doll.id)

    @pytest.mark.asyncio
    async def test_delete_unknown_id(self, db_session):
        with pytest.raises(NotFoundError):
            await self.service.delete(db_session, uuid.uuid4())


class TestDollUpdate:
    """Partial updates."""

    def setup_method(self):
        self.service = DollService()

    @pytest.mark.asyncio
    async def test_update_changes_only_sent_fields(self, db_session):
        with _ticking_clock():
            doll = await self.service.create(db_session, DollCreate(name="Bob", size=20))
            updated = await self.service.update(db_session, doll.id, DollUpdate(color="#123456"))

        assert updated.color == "#123456"
        assert updated.name == "Bob"
        assert updated.size == 20
        assert updated.created_at == doll.created_at
        assert updated.updated_at > doll.updated_at

    @pytest.mark.asyncio
    async def test_blank_name_is_ignored(self, db_session):
        doll = await self.service.create(db_session, DollCreate(name="Bob"))

        updated = await self.service.update(
            db_session, doll.id, DollUpdate.model_validate({"name": "", "color": None})
        )

        assert updated.name == "Bob"
        assert updated.color == "#ff0000"

    @pytest.mark.asyncio
    async def test_null_image_url_clears_image(self, db_session):
        doll = await self.service.create(
            db_session, DollCreate(name="Bob", image_url="http://x/a.jpg")
        )

        updated = await self.service.update(
            db_session, doll.id, DollUpdate.model_validate({"imageUrl": None})
        )

        assert updated.image_url is None

    @pytest.mark.asyncio
    async def test_omitted_image_url_is_kept(self, db_session):
        doll = await self.service.create(
            db_session, DollCreate(name="Bob", image_url="http://x/a.jpg")
        )

        updated = await self.service.update(db_session, doll.id, DollUpdate(name="Rob"))

        assert updated.name == "Rob"
        assert updated.image_url == "http://x/a.jpg"

    @pytest.mark.asyncio
    async def test_size_zero_is_ignored(self, db_session):
        doll = await self.service.create(db_session, DollCreate(name="Bob", size=30))

        updated = await self.service.update(db_session, doll.id, DollUpdate(size=0, name="Rob"))

        assert updated.size == 30
        assert updated.name == "Rob"

    def test_size_zero_is_not_a_change(self):
        assert DollUpdate(size=0).changes() == {}

    @pytest.mark.asyncio
    async def test_negative_size_still_rejected(self, db_session):
        doll = await self.service.create(db_session, DollCreate(name="Bob"))

        with pytest.raises(ValidationError, match="at least 1"):
            await self.service.update(db_session, doll.id, DollUpdate(size=-5))

    @pytest.mark.asyncio
    async def test_invalid_update_leaves_row_untouched(self, db_session):
        doll = await self.service.create(db_session, DollCreate(name="Bob"))

        with pytest.raises(ValidationError):
            await self.service.update(
                db_session, doll.id, DollUpdate(name="Rob", color="nope")
            )

        fetched = await self.service.get_by_id(db_session, doll.id)
        assert fetched.name == "Bob"

    @pytest.mark.asyncio
    async def test_update_unknown_id(self, db_session):
        with pytest.raises(NotFoundError):
            await self.service.update(db_session, uuid.uuid4(), DollUpdate(name="x"))


class TestPins:
    """Appending and removing pins."""

    def setup_method(self):
        self.service = DollService()

    @pytest.mark.asyncio
    async def test_append_pin_defaults_color(self, db_session):
        doll = await self.service.create(db_session, DollCreate(name="Bob"))

        updated, pin = await self.service.append_pin(db_session, doll.id, PinCreate(x=10, y=20))

        assert pin.color == "#ff0000"
        assert (pin.x, pin.y) == (10.0, 20.0)
        assert [p.id for p in updated.pins] == [pin.id]

    @pytest.mark.asyncio
    async def test_pins_keep_insertion_order(self, db_session):
        doll = await self.service.create(db_session, DollCreate(name="Bob"))

        ids = []
        for x in range(3):
            _, pin = await self.service.append_pin(db_session, doll.id, PinCreate(x=x, y=x))
            ids.append(pin.id)

        fetched = await self.service.get_by_id(db_session, doll.id)
        assert [p.id for p in fetched.pins] == ids
        assert len(set(ids)) == 3

    @pytest.mark.asyncio
    async def test_append_then_remove_restores_pins(self, db_session):
        doll = await self.service.create(db_session, DollCreate(name="Bob"))
        await self.service.append_pin(db_session, doll.id, PinCreate(x=1, y=1))
        before = await self.service.get_by_id(db_session, doll.id)

        _, pin = await self.service.append_pin(
            db_session, doll.id, PinCreate(x=5, y=6, color="#00ff00")
        )
        after = await self.service.remove_pin(db_session, doll.id, pin.id)

        assert after.pins == before.pins

    @pytest.mark.asyncio
    async def test_remove_unknown_pin_is_noop(self, db_session):
        doll = await self.service.create(db_session, DollCreate(name="Bob"))
        await self.service.append_pin(db_session, doll.id, PinCreate(x=1, y=1))

        after = await self.service.remove_pin(db_session, doll.id, "does-not-exist")

        assert len(after.pins) == 1

    @pytest.mark.asyncio
    async def test_pin_mutations_advance_updated_at(self, db_session):
        with _ticking_clock():
            doll = await self.service.create(db_session, DollCreate(name="Bob"))
            appended, pin = await self.service.append_pin(
                db_session, doll.id, PinCreate(x=1, y=1)
            )
            removed = await self.service.remove_pin(db_session, doll.id, pin.id)
            unchanged = await self.service.remove_pin(db_session, doll.id, "does-not-exist")

        assert appended.updated_at > doll.updated_at
        assert removed.updated_at > appended.updated_at
        assert unchanged.updated_at > removed.updated_at
        assert unchanged.pins == []
        assert unchanged.created_at == doll.created_at

    def test_non_finite_coordinates_rejected(self):
        with pytest.raises(PydanticValidationError):
            PinCreate(x=float("nan"), y=1)
        with pytest.raises(PydanticValidationError):
            PinCreate(x=1, y=float("inf"))

    @pytest.mark.asyncio
    async def test_missing_coordinates_rejected_before_lookup(self, db_session):
        # Unknown doll, but the body problem wins
        with pytest.raises(ValidationError, match="coordinates"):
            await self.service.append_pin(db_session, uuid.uuid4(), PinCreate(x=1))

    @pytest.mark.asyncio
    async def test_zero_coordinates_are_valid(self, db_session):
        doll = await self.service.create(db_session, DollCreate(name="Bob"))
        _, pin = await self.service.append_pin(db_session, doll.id, PinCreate(x=0, y=0))
        assert (pin.x, pin.y) == (0.0, 0.0)

    @pytest.mark.asyncio
    async def test_bad_pin_color_rejected(self, db_session):
        doll = await self.service.create(db_session, DollCreate(name="Bob"))
        with pytest.raises(ValidationError, match="valid hex color"):
            await self.service.append_pin(
                db_session, doll.id, PinCreate(x=1, y=1, color="red")
            )

    @pytest.mark.asyncio
    async def test_pin_on_unknown_doll(self, db_session):
        with pytest.raises(NotFoundError):
            await self.service.append_pin(db_session, uuid.uuid4(), PinCreate(x=1, y=1))

    @pytest.mark.asyncio
    async def test_remove_pin_unknown_doll(self, db_session):
        with pytest.raises(NotFoundError):
            await self.service.remove_pin(db_session, uuid.uuid4(), "abc")


class TestStorageFailures:
    """Driver errors become StorageError."""

    def setup_method(self):
        self.service = DollService()

    @pytest.mark.asyncio
    async def test_commit_failure_raises_storage_error(self, db_session):
        failure = OperationalError("INSERT", {}, Exception("disk I/O error"))
        with patch.object(db_session, "commit", AsyncMock(side_effect=failure)):
            with pytest.raises(StorageError) as exc_info:
                await self.service.create(db_session, DollCreate(name="Bob"))

        assert exc_info.value.message == "Failed to create doll"
        assert "disk I/O error" in exc_info.value.context["reason"]
