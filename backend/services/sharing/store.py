"""
Permission and Chart Stores
Persistence for sharing permissions and read access to owner charts

Every write commits immediately: a lazy transition or a recorded view stays
durable even when the caller goes on to reject the request.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.core.exceptions import ConflictException, StoreException
from backend.core.logging import get_logger
from backend.db.models import Chart, Permission, PermissionStatus

logger = get_logger(__name__)


class PermissionStore:
    """Permission collection keyed by permission_id"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, permission: Permission) -> None:
        """Insert a new permission (create-only, never overwrites)"""
        try:
            self.session.add(permission)
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            raise ConflictException(
                message="Permission already exists",
                details={"permission_id": permission.permission_id},
            ) from e
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Failed to save permission {permission.permission_id}: {e}")
            raise StoreException(
                message="Failed to save permission",
                details={"error": str(e)},
            ) from e

    async def get(self, permission_id: str) -> Optional[Permission]:
        """Read the current state of a permission, bypassing the identity map"""
        try:
            result = await self.session.execute(
                select(Permission)
                .where(Permission.permission_id == permission_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load permission {permission_id}: {e}")
            raise StoreException(
                message="Failed to load permission",
                details={"error": str(e)},
            ) from e

    async def list_by_owner(self, owner_id: str) -> List[Permission]:
        """All permissions issued by an owner, newest first"""
        try:
            result = await self.session.execute(
                select(Permission)
                .where(Permission.owner_id == owner_id)
                .order_by(Permission.created_at.desc())
                .execution_options(populate_existing=True)
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Failed to list permissions for {owner_id}: {e}")
            raise StoreException(
                message="Failed to list permissions",
                details={"error": str(e)},
            ) from e

    async def transition(self, permission_id: str, new_status: PermissionStatus) -> bool:
        """
        Move an active permission to a terminal status

        The update only matches rows still in ``active``, so a terminal
        status is never overwritten and never reverts.

        Returns:
            True if this call performed the transition
        """
        stmt = (
            update(Permission)
            .where(
                Permission.permission_id == permission_id,
                Permission.status == PermissionStatus.ACTIVE.value,
            )
            .values(status=new_status.value)
            .execution_options(synchronize_session=False)
        )
        return await self._execute_update(stmt, permission_id)

    async def record_view(
        self,
        permission_id: str,
        expected_usage_count: int,
        viewer_id: str,
        viewed_at: datetime,
    ) -> bool:
        """
        Compare-and-swap increment of usage_count

        Matches only when the record is still active and its usage_count
        equals the value the caller read. Objects already loaded in the
        session are left as read; call ``get`` again for the new state.

        Returns:
            True if the increment was applied, False on a lost race
        """
        stmt = (
            update(Permission)
            .where(
                Permission.permission_id == permission_id,
                Permission.status == PermissionStatus.ACTIVE.value,
                Permission.usage_count == expected_usage_count,
            )
            .values(
                usage_count=expected_usage_count + 1,
                granted_to=viewer_id,
                last_viewed_at=viewed_at,
            )
            .execution_options(synchronize_session=False)
        )
        return await self._execute_update(stmt, permission_id)

    async def _execute_update(self, stmt, permission_id: str) -> bool:
        try:
            result = await self.session.execute(stmt)
            await self.session.commit()
            return result.rowcount == 1
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Failed to update permission {permission_id}: {e}")
            raise StoreException(
                message="Failed to update permission",
                details={"error": str(e)},
            ) from e


class ChartStore:
    """Read-only view of owner charts"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, owner_id: str) -> Optional[Chart]:
        try:
            result = await self.session.execute(
                select(Chart).where(Chart.owner_id == owner_id)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load chart for {owner_id}: {e}")
            raise StoreException(
                message="Failed to load chart",
                details={"error": str(e)},
            ) from e
