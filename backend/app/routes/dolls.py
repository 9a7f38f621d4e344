"""
Doll Pin API: Doll & Pin Route Handlers
=========================================

What:  CRUD for dolls under /api/dolls plus pin append/remove.
How:   Thin handlers: extract path/body, delegate to DollService, wrap the
       result in the `{message, ...payload}` success envelope.
Who:   The doll editor front end.

Path ids are typed as UUID; a malformed id fails request validation and is
returned as 400 by the RequestValidationError handler in main.py.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db_session
from app.schemas.common import ErrorResponse
from app.schemas.doll import (
    DeletedDollResponse,
    DollCreate,
    DollEnvelope,
    DollListResponse,
    DollUpdate,
    PinAddedResponse,
    PinCreate,
)
from app.services.doll_service import doll_service

logger = logging.getLogger(__name__)

# ── Router Configuration ──────────────────────────────────────────────────
router = APIRouter(prefix="/api", tags=["Dolls"])

_NOT_FOUND = {404: {"description": "Doll not found", "model": ErrorResponse}}
_BAD_REQUEST = {400: {"description": "Invalid input", "model": ErrorResponse}}


@router.post(
    "/dolls",
    status_code=status.HTTP_201_CREATED,
    response_model=DollEnvelope,
    responses={**_BAD_REQUEST},
    summary="Create a doll",
)
async def create_doll(
    payload: Optional[DollCreate] = Body(default=None),
    db: AsyncSession = Depends(get_db_session),
) -> DollEnvelope:
    doll = await doll_service.create(db, payload or DollCreate())
    return DollEnvelope(message="Doll created successfully", doll=doll)


@router.get(
    "/dolls",
    response_model=DollListResponse,
    summary="List all dolls, newest first",
)
async def list_dolls(db: AsyncSession = Depends(get_db_session)) -> DollListResponse:
    dolls = await doll_service.list_all(db)
    return DollListResponse(
        message="Dolls retrieved successfully",
        count=len(dolls),
        dolls=dolls,
    )


@router.get(
    "/dolls/{doll_id}",
    response_model=DollEnvelope,
    responses={**_NOT_FOUND, **_BAD_REQUEST},
    summary="Get a single doll with its pins",
)
async def get_doll(doll_id: UUID, db: AsyncSession = Depends(get_db_session)) -> DollEnvelope:
    doll = await doll_service.get_by_id(db, doll_id)
    return DollEnvelope(message="Doll retrieved successfully", doll=doll)


@router.put(
    "/dolls/{doll_id}",
    response_model=DollEnvelope,
    responses={**_NOT_FOUND, **_BAD_REQUEST},
    summary="Partially update a doll",
    description=(
        "Only fields present in the body are applied. An empty or null name, "
        "color or size is ignored; a null or empty imageUrl removes the image."
    ),
)
async def update_doll(
    doll_id: UUID,
    payload: Optional[DollUpdate] = Body(default=None),
    db: AsyncSession = Depends(get_db_session),
) -> DollEnvelope:
    doll = await doll_service.update(db, doll_id, payload or DollUpdate())
    return DollEnvelope(message="Doll updated successfully", doll=doll)


@router.delete(
    "/dolls/{doll_id}",
    response_model=DeletedDollResponse,
    responses={**_NOT_FOUND},
    summary="Delete a doll and all of its pins",
)
async def delete_doll(
    doll_id: UUID,
    db: AsyncSession = Depends(get_db_session),
) -> DeletedDollResponse:
    snapshot = await doll_service.delete(db, doll_id)
    return DeletedDollResponse(message="Doll deleted successfully", deleted_doll=snapshot)


# ── Pins ──────────────────────────────────────────────────────────────────


@router.post(
    "/dolls/{doll_id}/pins",
    response_model=PinAddedResponse,
    responses={**_NOT_FOUND, **_BAD_REQUEST},
    summary="Add a pin to a doll",
)
async def add_pin(
    doll_id: UUID,
    payload: Optional[PinCreate] = Body(default=None),
    db: AsyncSession = Depends(get_db_session),
) -> PinAddedResponse:
    doll, pin = await doll_service.append_pin(db, doll_id, payload or PinCreate())
    return PinAddedResponse(message="Pin added successfully", doll=doll, new_pin=pin)


@router.delete(
    "/dolls/{doll_id}/pins/{pin_id}",
    response_model=DollEnvelope,
    responses={**_NOT_FOUND},
    summary="Remove a pin from a doll",
    description="Removing a pin id that is not on the doll succeeds and changes nothing.",
)
async def remove_pin(
    doll_id: UUID,
    pin_id: str,
    db: AsyncSession = Depends(get_db_session),
) -> DollEnvelope:
    doll = await doll_service.remove_pin(db, doll_id, pin_id)
    return DollEnvelope(message="Pin removed successfully", doll=doll)
