"""
Hub Grégoire - Permission System
Granular permission keys + role presets + FastAPI dependencies.
Permissions are the source of truth. Roles are presets only.
"""

import logging
from typing import Dict
from fastapi import Depends, HTTPException

logger = logging.getLogger("permissions")

# ════════════════════════════════════════════════════════════════════════
# ALL PERMISSION KEYS
# ════════════════════════════════════════════════════════════════════════

ALL_PERMISSION_KEYS = [
    "proofs.view",
    "proofs.upload",
    "proofs.send",

    "history.view",
]

# ════════════════════════════════════════════════════════════════════════
# ROLE PRESETS (defaults when creating a user with a role)
# ════════════════════════════════════════════════════════════════════════

ROLE_PRESETS: Dict[str, Dict[str, bool]] = {
    "super_admin": {k: True for k in ALL_PERMISSION_KEYS},

    "admin": {
        "proofs.view": True, "proofs.upload": True, "proofs.send": True,
        "history.view": True,
    },

    "production": {
        "proofs.view": True, "proofs.upload": True, "proofs.send": False,
        "history.view": True,
    },

    "viewer": {
        "proofs.view": True, "proofs.upload": False, "proofs.send": False,
        "history.view": False,
    },
}

VALID_ROLES = list(ROLE_PRESETS.keys())


def get_preset_permissions(role: str) -> Dict[str, bool]:
    """Returns the default permissions for a role."""
    return dict(ROLE_PRESETS.get(role, ROLE_PRESETS["viewer"]))


def user_has_permission(user: dict, key: str) -> bool:
    """Check if user has a specific permission."""
    if user.get("role") == "super_admin":
        return True
    perms = user.get("permissions") or get_preset_permissions(user.get("role", "viewer"))
    return perms.get(key, False) is True


# ════════════════════════════════════════════════════════════════════════
# FASTAPI DEPENDENCIES
# ════════════════════════════════════════════════════════════════════════

def require_permission(permission_key: str):
    """
    FastAPI dependency factory.
    Usage: user: dict = Depends(require_permission("proofs.send"))
    """
    from routes.auth import get_current_user

    async def _check(user: dict = Depends(get_current_user)):
        if not user_has_permission(user, permission_key):
            logger.warning(
                f"[PERMISSION_DENIED] user={user.get('email')} "
                f"key={permission_key} role={user.get('role')}"
            )
            raise HTTPException(
                status_code=403,
                detail=f"Permission requise: {permission_key}"
            )
        return user

    return _check
