"""
Data models for microsubs (pre-paid, multi-use query credits)
"""

from datetime import datetime
from enum import Enum
from typing import Any, Iterable, List, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, computed_field

logger = structlog.get_logger()


class InvalidReason(str, Enum):
    """Why a microsub cannot be used, in precedence order"""
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"
    INVALID = "invalid"


class Microsub(BaseModel):
    """A reusable credit grant created by a settled payment"""

    model_config = ConfigDict(frozen=True, extra="ignore")

    tx_hash: str = Field(min_length=1, description="Settlement transaction that created the microsub")
    is_valid: bool = True
    is_expired: bool = False
    is_exhausted: bool = False
    queries_remaining: int = 0
    expires_at: Optional[datetime] = None
    created_by_address: Optional[str] = Field(default=None, description="Owning wallet")

    agent_id: Optional[str] = None
    query_limit: Optional[int] = None
    queries_used: Optional[int] = None
    created_at: Optional[datetime] = None

    # Data room configuration
    dataroom_id: Optional[str] = None
    description: Optional[str] = None
    center_node_uuid: Optional[str] = None
    system_prompt: Optional[str] = None
    bonfire_id: Optional[str] = None

    @computed_field
    @property
    def disabled(self) -> bool:
        return self.is_expired or self.is_exhausted or not self.is_valid

    @property
    def invalid_reason(self) -> Optional[InvalidReason]:
        if self.is_expired:
            return InvalidReason.EXPIRED
        if self.is_exhausted:
            return InvalidReason.EXHAUSTED
        if not self.is_valid:
            return InvalidReason.INVALID
        return None


class MicrosubList(BaseModel):
    """Response of the microsub list endpoint"""
    microsubs: List[Microsub] = Field(default_factory=list)
    total_count: int = 0
    active_count: int = 0


def normalize_microsub(raw: Any) -> Optional[Microsub]:
    """
    Map a loosely-typed backend record into a Microsub.

    Records without a tx_hash, or with fields of the wrong type, are rejected.
    A missing is_valid is treated as valid.
    """
    if not isinstance(raw, dict):
        return None

    tx_hash = raw.get("tx_hash")
    if not isinstance(tx_hash, str) or not tx_hash:
        return None

    data = dict(raw)
    if data.get("is_valid") is None:
        data.pop("is_valid", None)
    for flag in ("is_expired", "is_exhausted"):
        if data.get(flag) is None:
            data.pop(flag, None)
    if data.get("queries_remaining") is None:
        data.pop("queries_remaining", None)

    try:
        return Microsub.model_validate(data)
    except ValidationError as e:
        logger.warning("microsub_record_invalid", tx_hash=tx_hash, error=str(e))
        return None


def normalize_microsubs(items: Iterable[Any]) -> List[Microsub]:
    microsubs = []
    dropped = 0
    for raw in items or []:
        microsub = normalize_microsub(raw)
        if microsub is None:
            dropped += 1
            continue
        microsubs.append(microsub)

    if dropped:
        logger.warning("microsub_records_dropped", count=dropped)
    return microsubs


def parse_microsub_list(data: Any) -> MicrosubList:
    """Normalize a raw list response, tolerating missing counters"""
    if not isinstance(data, dict):
        data = {}

    microsubs = normalize_microsubs(data.get("microsubs") or [])
    total_count = data.get("total_count")
    active_count = data.get("active_count")
    return MicrosubList(
        microsubs=microsubs,
        total_count=total_count if isinstance(total_count, int) else len(microsubs),
        active_count=(
            active_count if isinstance(active_count, int)
            else sum(1 for m in microsubs if not m.disabled)
        ),
    )
