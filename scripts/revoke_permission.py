#!/usr/bin/env python3
"""
Revoke Permission Script
Operator tool: move an active sharing permission to ``revoked``

Usage:
    python scripts/revoke_permission.py <permission_id> [<permission_id> ...]
"""

import argparse
import asyncio
import sys

from backend.db import session as db_session
from backend.core.exceptions import AppException
from backend.core.logging import setup_logging, get_logger
from backend.services.sharing import SharingService

setup_logging()
logger = get_logger(__name__)


async def revoke(permission_ids) -> int:
    """Revoke each permission, returning the number of failures"""
    failures = 0

    await db_session.init_db()
    try:
        async with db_session.async_session_maker() as session:
            service = SharingService(session)
            for permission_id in permission_ids:
                try:
                    if await service.revoke_permission(permission_id):
                        print(f"revoked  {permission_id}")
                    else:
                        print(f"skipped  {permission_id} (not active)")
                except AppException as e:
                    failures += 1
                    logger.error(f"Failed to revoke {permission_id}: {e.message}")
                    print(f"failed   {permission_id}: {e.message}")
    finally:
        await db_session.close_db()

    return failures


def main() -> int:
    parser = argparse.ArgumentParser(description="Revoke chart sharing permissions")
    parser.add_argument("permission_ids", nargs="+", help="Permission tokens to revoke")
    args = parser.parse_args()

    failures = asyncio.run(revoke(args.permission_ids))
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
