"""
Sharing Service
Time-boxed, usage-limited permissions that let a viewer read an owner's chart
"""

from backend.services.sharing.service import SharingService, effective_status, generate_permission_id
from backend.services.sharing.store import ChartStore, PermissionStore
from backend.services.sharing.models import (
    PermissionGrant,
    PermissionSummary,
    VerificationResult,
)

__all__ = [
    # Service
    "SharingService",
    "effective_status",
    "generate_permission_id",
    # Stores
    "PermissionStore",
    "ChartStore",
    # Models
    "PermissionGrant",
    "PermissionSummary",
    "VerificationResult",
]
