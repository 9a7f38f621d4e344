"""
Doll Pin API: Doll Service (Aggregate Store)
==============================================

What:  Business rules and persistence for the Doll aggregate and its pins.
How:   Stateless service; every method receives the AsyncSession to use.
       Validation happens here, before anything is added to the session, so
       an invalid doll never reaches the database.
Who:   Called by the /api/dolls route handlers and by tests directly.

Write discipline:
    Each successful mutation ends in exactly one `commit()` of the full row
    (scalar columns + JSON pin list). Reads never commit.

Concurrency:
    Mutations load the row with SELECT ... FOR UPDATE. On PostgreSQL this
    serializes concurrent writers on the same doll (two simultaneous pin
    appends both survive). SQLite ignores the clause and relies on its
    database-level write lock. Writers on different dolls never block each
    other.
"""

import logging
import re
import uuid
from typing import List, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import NotFoundError, StorageError, ValidationError
from app.models.doll import (
    DEFAULT_COLOR,
    DEFAULT_SIZE,
    NAME_MAX_LENGTH,
    SIZE_MAX,
    SIZE_MIN,
    Doll,
    utcnow,
)
from app.schemas.doll import DollCreate, DollResponse, DollUpdate, PinCreate, PinResponse

logger = logging.getLogger(__name__)

HEX_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")


def _collect_problems(name: str, color: str, size: int) -> List[Tuple[str, str]]:
    """Return (field, message) pairs for every rule the values break."""
    problems: List[Tuple[str, str]] = []

    if len(name) < 1:
        problems.append(("name", "Name must be at least 1 character"))
    elif len(name) > NAME_MAX_LENGTH:
        problems.append(("name", f"Name cannot exceed {NAME_MAX_LENGTH} characters"))

    if not HEX_COLOR_RE.fullmatch(color):
        problems.append(("color", "Please provide a valid hex color"))

    if size < SIZE_MIN:
        problems.append(("size", f"Size must be at least {SIZE_MIN}"))
    elif size > SIZE_MAX:
        problems.append(("size", f"Size cannot exceed {SIZE_MAX}"))

    return problems


def _raise_if_invalid(problems: List[Tuple[str, str]]) -> None:
    if not problems:
        return
    fields = [field for field, _ in problems]
    messages = [message for _, message in problems]
    raise ValidationError(
        message=messages[0] if len(messages) == 1 else "Validation Error",
        field=fields[0] if len(fields) == 1 else None,
        errors=messages,
        context={"fields": fields},
    )


class DollService:
    """
    Business logic layer for dolls and pins.

    Responsibilities:
        - create / list_all / get_by_id / update / delete
        - append_pin / remove_pin

    Error Handling Strategy:
        Missing rows become NotFoundError, rule violations ValidationError,
        and any SQLAlchemy failure StorageError with the driver message in
        context["reason"]. Nothing is retried.
    """

    # ── Internal helpers ──────────────────────────────────────────────────

    async def _load(self, db: AsyncSession, doll_id: uuid.UUID, lock: bool = False) -> Doll:
        stmt = select(Doll).where(Doll.id == doll_id)
        if lock:
            stmt = stmt.with_for_update()
        try:
            result = await db.execute(stmt)
            doll = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Database error loading doll %s: %s", doll_id, str(e))
            raise StorageError(
                message="Failed to retrieve doll",
                context={"reason": str(e), "doll_id": str(doll_id)},
            )

        if doll is None:
            raise NotFoundError(resource="Doll", resource_id=str(doll_id))
        return doll

    async def _commit(self, db: AsyncSession, action: str) -> None:
        try:
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Database error during %s: %s", action, str(e))
            raise StorageError(
                message=f"Failed to {action}",
                context={"reason": str(e)},
            )

    # ── Dolls ─────────────────────────────────────────────────────────────

    async def create(self, db: AsyncSession, payload: DollCreate) -> DollResponse:
        """
        Validate and persist a new doll with an empty pin list.

        Defaults: color #ff0000, size 50, imageUrl null.

        Raises:
            ValidationError: name missing, or any field out of bounds
            StorageError: the insert failed
        """
        if payload.name is None or payload.name == "":
            raise ValidationError(
                message="Missing required fields: name is required",
                field="name",
            )

        name = payload.name.strip()
        color = payload.color or DEFAULT_COLOR
        size = DEFAULT_SIZE if payload.size is None else payload.size

        _raise_if_invalid(_collect_problems(name, color, size))

        now = utcnow()
        doll = Doll(
            name=name,
            color=color,
            size=size,
            image_url=payload.image_url or None,
            pins=[],
            created_at=now,
            updated_at=now,
        )
        db.add(doll)
        await self._commit(db, "create doll")

        logger.info("Doll created: %s (%s)", doll.id, doll.name)
        return DollResponse.model_validate(doll)

    async def list_all(self, db: AsyncSession) -> List[DollResponse]:
        """All dolls, newest first. An empty store yields an empty list."""
        try:
            result = await db.execute(select(Doll).order_by(Doll.created_at.desc()))
            dolls = list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Database error listing dolls: %s", str(e), exc_info=True)
            raise StorageError(
                message="Failed to retrieve dolls",
                context={"reason": str(e)},
            )
        return [DollResponse.model_validate(doll) for doll in dolls]

    async def get_by_id(self, db: AsyncSession, doll_id: uuid.UUID) -> DollResponse:
        doll = await self._load(db, doll_id)
        return DollResponse.model_validate(doll)

    async def update(
        self,
        db: AsyncSession,
        doll_id: uuid.UUID,
        payload: DollUpdate,
    ) -> DollResponse:
        """
        Apply a partial update (see DollUpdate.changes for what counts as sent).

        The merged result is validated as a whole before anything is written;
        updated_at is refreshed even when no field changed.

        Raises:
            NotFoundError: unknown id
            ValidationError: merged values break a rule
        """
        doll = await self._load(db, doll_id, lock=True)
        changes = payload.changes()

        name = changes["name"].strip() if "name" in changes else doll.name
        color = changes.get("color", doll.color)
        size = changes.get("size", doll.size)

        _raise_if_invalid(_collect_problems(name, color, size))

        doll.name = name
        doll.color = color
        doll.size = size
        if "image_url" in changes:
            doll.image_url = changes["image_url"]
        doll.updated_at = utcnow()

        await self._commit(db, "update doll")

        logger.info("Doll updated: %s fields=%s", doll.id, sorted(changes))
        return DollResponse.model_validate(doll)

    async def delete(self, db: AsyncSession, doll_id: uuid.UUID) -> DollResponse:
        """Delete the doll (and with it every pin). Returns the pre-delete snapshot."""
        doll = await self._load(db, doll_id, lock=True)
        snapshot = DollResponse.model_validate(doll)

        await db.delete(doll)
        await self._commit(db, "delete doll")

        logger.info("Doll deleted: %s (%d pins)", doll_id, len(snapshot.pins))
        return snapshot

    # ── Pins ──────────────────────────────────────────────────────────────

    async def append_pin(
        self,
        db: AsyncSession,
        doll_id: uuid.UUID,
        payload: PinCreate,
    ) -> Tuple[DollResponse, PinResponse]:
        """
        Append a pin at (x, y). Coordinates are checked before the doll is
        looked up, so a bad body is a 400 even for an unknown doll.

        Returns:
            (updated doll, the new pin)
        """
        if payload.x is None or payload.y is None:
            raise ValidationError(
                message="Pin coordinates (x, y) are required",
                field="x" if payload.x is None else "y",
            )

        color = payload.color or DEFAULT_COLOR
        if not HEX_COLOR_RE.fullmatch(color):
            raise ValidationError(message="Please provide a valid hex color", field="color")

        doll = await self._load(db, doll_id, lock=True)

        now = utcnow()
        pin = {
            "id": uuid.uuid4().hex,
            "x": float(payload.x),
            "y": float(payload.y),
            "color": color,
            "timestamp": now.isoformat(),
        }
        doll.pins = [*(doll.pins or []), pin]
        doll.updated_at = now

        await self._commit(db, "add pin")

        logger.info("Pin %s added to doll %s (%d pins)", pin["id"], doll.id, len(doll.pins))
        return DollResponse.model_validate(doll), PinResponse.model_validate(pin)

    async def remove_pin(
        self,
        db: AsyncSession,
        doll_id: uuid.UUID,
        pin_id: str,
    ) -> DollResponse:
        """
        Drop the pin with `pin_id`. An unknown pin id leaves the list as is
        and still succeeds.
        """
        doll = await self._load(db, doll_id, lock=True)

        pins = doll.pins or []
        remaining = [pin for pin in pins if pin.get("id") != pin_id]
        if len(remaining) == len(pins):
            logger.info("Pin %s not on doll %s; nothing removed", pin_id, doll.id)

        doll.pins = remaining
        doll.updated_at = utcnow()

        await self._commit(db, "remove pin")
        return DollResponse.model_validate(doll)


# Stateless; one shared instance
doll_service = DollService()
