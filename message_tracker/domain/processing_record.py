"""
Processing record domain model and schemas.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from message_tracker.utils.time import parse_iso

# Fields generated by the tracker (wire and attribute names);
# caller metadata may not override them
RESERVED_FIELDS = ("msgId", "processedAt", "timestamp", "msg_id", "processed_at")


class ErrorPolicy(str, Enum):
    """How an operation reacts when the store fails."""
    FAIL_OPEN = "fail_open"  # behave as if no record exists
    REPORT = "report"        # return a failure flag to the caller
    DEGRADE = "degrade"      # return a safe default value
    RAISE = "raise"          # propagate the store error


class ProcessingRecord(BaseModel):
    """
    Persisted outcome of handling one message.

    Serialized as a flat JSON object: the three reserved fields plus any
    caller metadata at the top level.
    """
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    msg_id: str = Field(..., alias="msgId", min_length=1)
    processed_at: str = Field(..., alias="processedAt")
    timestamp: int

    @property
    def metadata(self) -> Dict[str, Any]:
        """Caller-supplied fields stored alongside the record."""
        return dict(self.model_extra or {})

    @property
    def processed_at_datetime(self) -> datetime:
        """Wall-clock processing time as an aware UTC datetime."""
        return parse_iso(self.processed_at)

    def to_wire(self) -> Dict[str, Any]:
        """Flat JSON-ready dict using the wire field names."""
        return self.model_dump(by_alias=True)


class TrackerOptions(BaseModel):
    """Configuration surface accepted by the tracker."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    expiration_ttl: int = Field(86400, alias="expirationTtl", ge=1)
    key_prefix: str = Field("processed_msg", alias="keyPrefix", min_length=1)

    @field_validator("expiration_ttl", "key_prefix", mode="before")
    @classmethod
    def unset_means_default(cls, value: Any, info: ValidationInfo) -> Any:
        """Missing, zero or empty option values fall back to the default."""
        if value is None or value == 0 or value == "":
            return cls.model_fields[info.field_name].default
        return value


# API Schemas

class CheckRequest(BaseModel):
    """Schema for a batch lookup."""
    msg_ids: List[str] = Field(default_factory=list)


class CheckResponse(BaseModel):
    """Schema for a batch lookup result."""
    results: Dict[str, bool]


class MessageStatusResponse(BaseModel):
    """Schema for a single message status."""
    msg_id: str
    processed: bool
    record: Optional[Dict[str, Any]] = None


class MarkResponse(BaseModel):
    """Schema for a mark request result."""
    msg_id: str
    marked: bool


class ClaimResponse(BaseModel):
    """Schema for a claim request result."""
    msg_id: str
    claimed: bool


class ClearResponse(BaseModel):
    """Schema for a best-effort delete result."""
    msg_id: str
    cleared: bool
