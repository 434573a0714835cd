"""
Wire record appended to the shared log for each accepted local claim.

Field names on the wire follow the community log format:
{cellId, lng, lat, color, timestamp[, origin]}.
"""
import logging
import math
from collections.abc import Mapping
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from community_grid.core.exceptions import MalformedRemoteEventError
from community_grid.domain.grid.value_objects.cell_id import CellId

logger = logging.getLogger(__name__)


class RemoteEvent(BaseModel):
    """
    One participant's claim as carried by the shared log.

    `lng`/`lat` are the raw fix that produced the claim and are informational:
    receivers always rebuild geometry from `cell_id`. `timestamp` never
    decides ordering.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    cell_id: str = Field(..., alias="cellId", description="Canonical cell key, e.g. '426536_138552'.")
    lng: float = Field(..., allow_inf_nan=False)
    lat: float = Field(..., allow_inf_nan=False)
    color: str = Field(..., min_length=1)
    timestamp: Optional[int] = Field(None, description="Origin time in epoch milliseconds.")
    origin: Optional[str] = Field(None, description="Replica id of the publisher.")

    @field_validator("cell_id")
    @classmethod
    def _cell_key_is_canonical(cls, value: str) -> str:
        # normalizes keys such as ' 01_2' to '1_2'
        return CellId.parse(value).key

    @field_validator("timestamp", mode="before")
    @classmethod
    def _usable_timestamp_or_none(cls, value: Any) -> Optional[int]:
        # informational only: an unusable value never rejects the claim
        if value is None or (isinstance(value, int) and not isinstance(value, bool)):
            return value
        try:
            number = float(value)
        except (TypeError, ValueError):
            number = math.nan
        if isinstance(value, bool) or not math.isfinite(number):
            logger.warning(f"Ignoring unusable timestamp {value!r} on remote event")
            return None
        return int(number)

    @field_validator("color")
    @classmethod
    def _color_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("color must not be blank")
        return value

    @property
    def cell(self) -> CellId:
        return CellId.parse(self.cell_id)

    @classmethod
    def from_payload(cls, payload: Any) -> "RemoteEvent":
        """
        Decode a raw shared-log payload.

        Raises:
            MalformedRemoteEventError: If the payload is not a mapping or any
                required field is missing or invalid.
        """
        if not isinstance(payload, Mapping):
            raise MalformedRemoteEventError(payload, f"expected a mapping, got {type(payload).__name__}")
        try:
            return cls.model_validate(dict(payload))
        except ValidationError as e:
            reasons = "; ".join(
                f"{'.'.join(str(part) for part in err['loc']) or 'payload'}: {err['msg']}"
                for err in e.errors()
            )
            raise MalformedRemoteEventError(payload, reasons) from e

    def to_wire(self) -> Dict[str, Any]:
        """JSON-serializable payload using wire field names."""
        return self.model_dump(by_alias=True, exclude_none=True)
