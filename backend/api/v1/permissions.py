"""
Permission Sharing API Routes
Issue chart sharing permissions and redeem them for the owner's chart
"""

from typing import Optional

from fastapi import APIRouter, Depends, status

from backend.api.dependencies import (
    get_current_user_id,
    get_current_user_id_optional,
    get_sharing_service,
    rate_limit,
)
from backend.core.config import settings
from backend.core.exceptions import AuthorizationException
from backend.core.logging import get_logger
from backend.models.common import ErrorResponse
from backend.models.permission import (
    CreatePermissionRequest,
    CreatePermissionResponse,
    PermissionListResponse,
    PermissionSummaryResponse,
    VerifyPermissionRequest,
    VerifyPermissionResponse,
)
from backend.monitoring.metrics import track_request
from backend.services.sharing import SharingService

logger = get_logger(__name__)
router = APIRouter(
    responses={
        400: {"model": ErrorResponse, "description": "Missing or malformed fields"},
        429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
        500: {"model": ErrorResponse, "description": "Store failure"},
    }
)


@router.post(
    "",
    response_model=CreatePermissionResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("permissions:create", lambda: settings.RATE_LIMIT_PER_MINUTE))],
)
@track_request("POST", "/permissions")
async def create_permission(
    request: CreatePermissionRequest,
    service: SharingService = Depends(get_sharing_service),
    current_user_id: str = Depends(get_current_user_id),
):
    """
    Issue a sharing permission for the caller's own chart

    - **ownerId**: Chart owner, must be the authenticated caller
    - **ownerName**: Display name shown to viewers

    The permission allows a fixed number of views within a fixed lifetime.
    """
    owner_id = (request.owner_id or "").strip()
    if owner_id and owner_id != current_user_id:
        logger.warning(f"User {current_user_id} tried to share chart of {owner_id}")
        raise AuthorizationException(message="You can only share your own chart")

    grant = await service.create_permission(request.owner_id, request.owner_name)

    return CreatePermissionResponse(
        permission_id=grant.permission_id,
        expires_at=grant.expires_at.isoformat(),
        usage_limit=grant.usage_limit,
    )


@router.post(
    "/verify",
    response_model=VerifyPermissionResponse,
    responses={
        403: {"model": ErrorResponse, "description": "Expired, used up or revoked"},
        404: {"model": ErrorResponse, "description": "Unknown permission or missing chart"},
        409: {"model": ErrorResponse, "description": "Concurrent use, retry"},
    },
    dependencies=[Depends(rate_limit("permissions:verify", lambda: settings.RATE_LIMIT_VERIFY_PER_MINUTE))],
)
@track_request("POST", "/permissions/verify")
async def verify_permission(
    request: VerifyPermissionRequest,
    service: SharingService = Depends(get_sharing_service),
    current_user_id: Optional[str] = Depends(get_current_user_id_optional),
):
    """
    Redeem a permission token for the owner's chart

    - **permissionId**: Token from the share link
    - **viewerId**: Requesting viewer; must match the bearer token when one is sent

    Each successful call consumes one view.
    """
    viewer_id = (request.viewer_id or "").strip()
    if current_user_id is not None and viewer_id and viewer_id != current_user_id:
        raise AuthorizationException(message="Viewer does not match the authenticated user")

    result = await service.verify_and_fetch(request.permission_id, request.viewer_id)

    return VerifyPermissionResponse(
        chart=result.chart,
        remaining_views=result.remaining_views,
        expires_at=result.expires_at.isoformat(),
    )


@router.get("", response_model=PermissionListResponse)
async def list_permissions(
    service: SharingService = Depends(get_sharing_service),
    current_user_id: str = Depends(get_current_user_id),
):
    """
    List permissions the caller has issued, newest first

    effectiveStatus reflects expiry and usage as of now without
    changing the stored record.
    """
    summaries = await service.list_permissions(current_user_id)

    return PermissionListResponse(
        permissions=[
            PermissionSummaryResponse(
                permission_id=s.permission_id,
                owner_name=s.owner_name,
                status=s.status,
                effective_status=s.effective_status,
                usage_count=s.usage_count,
                usage_limit=s.usage_limit,
                expires_at=s.expires_at.isoformat(),
                created_at=s.created_at.isoformat(),
                granted_to=s.granted_to,
                last_viewed_at=s.last_viewed_at.isoformat() if s.last_viewed_at else None,
            )
            for s in summaries
        ]
    )
