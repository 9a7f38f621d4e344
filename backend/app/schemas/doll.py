"""
Doll Pin API: Doll & Pin Schemas
==================================

What:  Request and response models for /api/dolls.
How:   Request models are deliberately loose (every field optional) so that
       business rules (required name, hex colors, size range) are enforced
       in DollService and reported as a 400 ValidationError naming the field.

Partial updates:
    `DollUpdate.changes()` turns the request into an explicit mapping of the
    fields to apply. Pydantic's `model_fields_set` tells us which keys the
    client actually sent, so "omitted" and "sent as null" are different
    things:

        {"name": ""}        → {}                      (blank name is ignored)
        {"size": 0}         → {}                      (zero size is ignored)
        {"imageUrl": null}  → {"image_url": None}     (clears the image)
        {}                  → {}
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator

from app.schemas.common import CamelModel


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class DollCreate(CamelModel):
    """Body of POST /api/dolls. Only `name` is mandatory."""
    name: Optional[str] = Field(default=None, description="1-50 characters, trimmed")
    color: Optional[str] = Field(default=None, description="Hex color #RRGGBB, default #ff0000")
    size: Optional[int] = Field(default=None, description="1-100, default 50")
    image_url: Optional[str] = Field(default=None, description="URL returned by POST /api/upload")


class DollUpdate(CamelModel):
    """Body of PUT /api/dolls/{id}. Any subset of the DollCreate fields."""
    name: Optional[str] = None
    color: Optional[str] = None
    size: Optional[int] = None
    image_url: Optional[str] = None

    def changes(self) -> Dict[str, Any]:
        """
        Fields the update should apply.

        name/color/size: applied only when sent with a truthy value, so null,
        "" and size 0 leave the stored value alone.
        image_url: applied whenever the key was sent; null or "" clears it.
        """
        provided: Dict[str, Any] = {}
        for field in ("name", "color", "size"):
            if field not in self.model_fields_set:
                continue
            value = getattr(self, field)
            if not value:
                continue
            provided[field] = value

        if "image_url" in self.model_fields_set:
            provided["image_url"] = self.image_url or None

        return provided


class PinCreate(CamelModel):
    """Body of POST /api/dolls/{id}/pins."""
    # Finite numbers only
    x: Optional[float] = Field(
        default=None, allow_inf_nan=False, description="Horizontal position in rendered-image pixels"
    )
    y: Optional[float] = Field(
        default=None, allow_inf_nan=False, description="Vertical position in rendered-image pixels"
    )
    color: Optional[str] = Field(default=None, description="Hex color #RRGGBB, default #ff0000")


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class PinResponse(CamelModel):
    id: str
    x: float
    y: float
    color: str
    timestamp: datetime


class DollResponse(CamelModel):
    """
    Full representation of a doll, pins included.

    Built straight from the ORM row (`from_attributes`); the JSON `pins`
    column validates into PinResponse items.
    """
    id: uuid.UUID
    name: str
    color: str
    size: int
    image_url: Optional[str] = None
    pins: List[PinResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        # SQLite hands back naive datetimes; stored values are always UTC
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class DollEnvelope(CamelModel):
    message: str
    doll: DollResponse


class DollListResponse(CamelModel):
    message: str
    count: int
    dolls: List[DollResponse]


class DeletedDollResponse(CamelModel):
    message: str
    deleted_doll: DollResponse


class PinAddedResponse(CamelModel):
    message: str
    doll: DollResponse
    new_pin: PinResponse
