"""
Permission API Models
Request/response schemas for chart sharing permissions (camelCase on the wire)
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase field names"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreatePermissionRequest(CamelModel):
    """Request body for issuing a permission"""
    owner_id: Optional[str] = Field(None, description="Chart owner ID (must match the caller)")
    owner_name: Optional[str] = Field(None, description="Owner display name as of share time")


class CreatePermissionResponse(CamelModel):
    """Response body for an issued permission"""
    permission_id: str = Field(..., description="Capability token carried in the share link")
    expires_at: str = Field(..., description="Expiry as ISO-8601")
    usage_limit: int = Field(..., description="Maximum number of views")


class VerifyPermissionRequest(CamelModel):
    """Request body for verifying a permission"""
    permission_id: Optional[str] = Field(None, description="Capability token")
    viewer_id: Optional[str] = Field(None, description="Requesting viewer ID")


class VerifyPermissionResponse(CamelModel):
    """Response body for a successful verification"""
    chart: Dict[str, Any] = Field(..., description="Owner's chart document")
    remaining_views: int = Field(..., ge=0, description="Views left")
    expires_at: str = Field(..., description="Expiry as ISO-8601")


class PermissionSummaryResponse(CamelModel):
    """Owner-facing permission entry"""
    permission_id: str
    owner_name: str
    status: str
    effective_status: str
    usage_count: int
    usage_limit: int
    expires_at: str
    created_at: str
    granted_to: Optional[str] = None
    last_viewed_at: Optional[str] = None


class PermissionListResponse(CamelModel):
    """Owner's permissions, newest first"""
    permissions: List[PermissionSummaryResponse]
