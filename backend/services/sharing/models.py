"""
Sharing Service Models
Pydantic models for permission issuance and verification results
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class PermissionGrant(BaseModel):
    """Result of issuing a new permission"""

    permission_id: str = Field(..., min_length=32, max_length=32, description="Capability token")
    expires_at: datetime = Field(..., description="Absolute expiry (UTC)")
    usage_limit: int = Field(..., ge=1, description="Maximum successful views")


class VerificationResult(BaseModel):
    """Result of a successful verification"""

    chart: Dict[str, Any] = Field(..., description="Owner's chart document")
    remaining_views: int = Field(..., ge=0, description="Views left after this one")
    expires_at: datetime = Field(..., description="Absolute expiry (UTC)")


class PermissionSummary(BaseModel):
    """
    Owner-facing view of an issued permission

    Attributes:
        status: Persisted status
        effective_status: Status derived at read time from expiry and usage,
            without writing the lazy transition back to the store
    """

    permission_id: str
    owner_name: str
    status: str
    effective_status: str
    usage_count: int
    usage_limit: int
    expires_at: datetime
    created_at: datetime
    granted_to: Optional[str] = None
    last_viewed_at: Optional[datetime] = None
