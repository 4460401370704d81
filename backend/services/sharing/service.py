"""
Sharing Service
Issue and verify time-boxed, usage-limited chart sharing permissions

This service provides:
- Permission issuance for a chart owner
- Verification of a permission token followed by chart retrieval
- Owner listing with read-time effective status
- Administrative revocation (operator tooling only)

Expiry and exhaustion are detected lazily: the first verification attempt
after a permission runs out records the terminal status, so later attempts
are rejected by the status check alone.
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from backend.core.config import settings
from backend.core.exceptions import (
    AppException,
    ChartNotFoundException,
    ConflictException,
    PermissionExpiredException,
    PermissionNotFoundException,
    PermissionRevokedException,
    UsageExceededException,
    ValidationException,
)
from backend.core.logging import get_logger
from backend.db.models import Permission, PermissionStatus
from backend.monitoring.metrics import (
    permission_update_conflicts_total,
    permissions_created_total,
    record_verification,
)
from backend.services.sharing.models import (
    PermissionGrant,
    PermissionSummary,
    VerificationResult,
)
from backend.services.sharing.store import ChartStore, PermissionStore

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (some drivers drop the offset)"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def generate_permission_id() -> str:
    """128-bit random capability token, 32 lowercase hex characters"""
    return secrets.token_hex(16)


def effective_status(permission: Permission, now: datetime) -> str:
    """Status the permission would have after a lazy transition at ``now``"""
    if permission.status != PermissionStatus.ACTIVE.value:
        return permission.status
    if now > as_utc(permission.expires_at):
        return PermissionStatus.EXPIRED.value
    if permission.usage_count >= permission.usage_limit:
        return PermissionStatus.USED.value
    return PermissionStatus.ACTIVE.value


def _rejection_for_status(status: str) -> AppException:
    if status == PermissionStatus.EXPIRED.value:
        return PermissionExpiredException()
    if status == PermissionStatus.USED.value:
        return UsageExceededException()
    return PermissionRevokedException()


class SharingService:
    """
    Permission issuer and verifier

    Example:
        ```python
        service = SharingService(session)

        grant = await service.create_permission("u1", "Kim")
        result = await service.verify_and_fetch(grant.permission_id, "v1")
        print(result.remaining_views)  # 2
        ```
    """

    def __init__(
        self,
        session: AsyncSession,
        clock: Optional[Clock] = None,
        ttl_days: Optional[int] = None,
        usage_limit: Optional[int] = None,
        max_retries: Optional[int] = None,
    ):
        self.permissions = PermissionStore(session)
        self.charts = ChartStore(session)
        self.clock = clock or utc_now
        self.ttl_days = ttl_days if ttl_days is not None else settings.PERMISSION_TTL_DAYS
        self.usage_limit = usage_limit if usage_limit is not None else settings.PERMISSION_USAGE_LIMIT
        self.max_retries = (
            max_retries if max_retries is not None else settings.PERMISSION_UPDATE_MAX_RETRIES
        )

    async def create_permission(self, owner_id: Optional[str], owner_name: Optional[str]) -> PermissionGrant:
        """
        Mint a new permission for a chart owner

        Args:
            owner_id: Owner whose chart is shared
            owner_name: Display name captured as of share time

        Returns:
            PermissionGrant with the capability token, expiry and usage limit

        Raises:
            ValidationException: If either input is missing or blank
            StoreException: If the permission could not be persisted
        """
        owner_id = (owner_id or "").strip()
        owner_name = (owner_name or "").strip()
        if not owner_id or not owner_name:
            raise ValidationException(
                message="Required fields are missing",
                details={"required": ["ownerId", "ownerName"]},
            )

        now = self.clock()
        permission = Permission(
            permission_id=generate_permission_id(),
            owner_id=owner_id,
            owner_name=owner_name,
            expires_at=now + timedelta(days=self.ttl_days),
            usage_limit=self.usage_limit,
            usage_count=0,
            status=PermissionStatus.ACTIVE.value,
            created_at=now,
        )
        grant = PermissionGrant(
            permission_id=permission.permission_id,
            expires_at=permission.expires_at,
            usage_limit=permission.usage_limit,
        )

        await self.permissions.create(permission)
        permissions_created_total.inc()

        logger.info(f"Permission created: {grant.permission_id} (owner: {owner_name})")
        return grant

    async def verify_and_fetch(self, permission_id: Optional[str], viewer_id: Optional[str]) -> VerificationResult:
        """
        Check a permission, record the view and return the owner's chart

        Checks run in order and the first failure short-circuits:
        existence, persisted status, expiry, usage. Expiry and exhaustion
        are persisted before the rejection is raised.

        Args:
            permission_id: Capability token from the share link
            viewer_id: Identity of the requesting viewer

        Returns:
            VerificationResult with the chart and remaining view count

        Raises:
            ValidationException: Missing input
            PermissionNotFoundException: Unknown token
            PermissionExpiredException: Expired now or earlier
            UsageExceededException: View limit reached
            PermissionRevokedException: Revoked or unknown status
            ConflictException: Lost every compare-and-swap retry
            ChartNotFoundException: Owner has no chart (the view stays recorded)
        """
        permission_id = (permission_id or "").strip()
        viewer_id = (viewer_id or "").strip()
        if not permission_id or not viewer_id:
            raise ValidationException(
                message="Required fields are missing",
                details={"required": ["permissionId", "viewerId"]},
            )

        log = logger.bind(permission_id=permission_id, viewer_id=viewer_id)

        for attempt in range(self.max_retries + 1):
            permission = await self.permissions.get(permission_id)
            if permission is None:
                record_verification("not_found")
                log.info("Permission not found")
                raise PermissionNotFoundException()

            if permission.status != PermissionStatus.ACTIVE.value:
                record_verification(permission.status)
                log.info(f"Permission rejected, status={permission.status}")
                raise _rejection_for_status(permission.status)

            now = self.clock()
            expires_at = as_utc(permission.expires_at)
            usage_count = permission.usage_count
            usage_limit = permission.usage_limit

            if now > expires_at:
                await self.permissions.transition(permission_id, PermissionStatus.EXPIRED)
                record_verification("expired")
                log.info(f"Permission expired at {expires_at.isoformat()}")
                lifetime = expires_at - as_utc(permission.created_at)
                raise PermissionExpiredException(
                    message=f"Permission has expired ({lifetime.days} days elapsed)"
                )

            if usage_count >= usage_limit:
                await self.permissions.transition(permission_id, PermissionStatus.USED)
                record_verification("usage_exceeded")
                log.info(f"Permission exhausted ({usage_count}/{usage_limit})")
                raise UsageExceededException(
                    message=f"View limit exceeded ({usage_limit} views)"
                )

            recorded = await self.permissions.record_view(
                permission_id,
                expected_usage_count=usage_count,
                viewer_id=viewer_id,
                viewed_at=now,
            )
            if recorded:
                break

            permission_update_conflicts_total.inc()
            log.debug(f"Permission changed concurrently, retry {attempt + 1}")
        else:
            record_verification("conflict")
            log.warning(f"Permission still contended after {self.max_retries} retries")
            raise ConflictException(
                message="Permission is being used concurrently, please retry",
                details={"permission_id": permission_id},
            )

        new_usage_count = usage_count + 1

        chart = await self.charts.get(permission.owner_id)
        if chart is None:
            record_verification("chart_not_found")
            log.warning(f"Chart not found for owner {permission.owner_id}")
            raise ChartNotFoundException()

        record_verification("granted")
        log.info(f"Permission granted ({new_usage_count}/{usage_limit})")

        return VerificationResult(
            chart=chart.data,
            remaining_views=usage_limit - new_usage_count,
            expires_at=expires_at,
        )

    async def list_permissions(self, owner_id: str) -> List[PermissionSummary]:
        """Owner's permissions with read-time effective status (no writes)"""
        now = self.clock()
        permissions = await self.permissions.list_by_owner(owner_id)
        return [
            PermissionSummary(
                permission_id=p.permission_id,
                owner_name=p.owner_name,
                status=p.status,
                effective_status=effective_status(p, now),
                usage_count=p.usage_count,
                usage_limit=p.usage_limit,
                expires_at=as_utc(p.expires_at),
                created_at=as_utc(p.created_at),
                granted_to=p.granted_to,
                last_viewed_at=as_utc(p.last_viewed_at) if p.last_viewed_at else None,
            )
            for p in permissions
        ]

    async def revoke_permission(self, permission_id: str) -> bool:
        """
        Revoke an active permission (operator tooling)

        Returns:
            True if the permission was active and is now revoked

        Raises:
            PermissionNotFoundException: Unknown token
        """
        permission = await self.permissions.get(permission_id)
        if permission is None:
            raise PermissionNotFoundException()

        revoked = await self.permissions.transition(permission_id, PermissionStatus.REVOKED)
        if revoked:
            logger.info(f"Permission {permission_id} revoked")
        else:
            logger.info(f"Permission {permission_id} left as {permission.status}, not active")
        return revoked
