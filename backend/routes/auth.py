"""
Hub Grégoire - Routes Auth
Login / Logout / Session pour l'équipe interne (console des épreuves).
"""

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from datetime import datetime, timezone, timedelta
import logging

from models.auth import UserLogin, UserResponse
from config import get_db, hash_password, generate_session_token, now_iso
from services.permissions import get_preset_permissions

logger = logging.getLogger("auth")

router = APIRouter(prefix="/auth", tags=["Auth"])
security = HTTPBearer(auto_error=False)

SESSION_DAYS = 7


# ==================== HELPERS ====================

async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db=Depends(get_db)
):
    """Récupère l'utilisateur connecté depuis le token."""
    if not credentials:
        raise HTTPException(status_code=401, detail="Non authentifié")

    session = await db.sessions.find_one({
        "token": credentials.credentials,
        "expires_at": {"$gt": now_iso()}
    })

    if not session:
        raise HTTPException(status_code=401, detail="Session expirée")

    user = await db.users.find_one(
        {"id": session["user_id"]},
        {"_id": 0, "password": 0}
    )

    if not user:
        raise HTTPException(status_code=401, detail="Utilisateur non trouvé")

    if not user.get("is_active", True):
        raise HTTPException(status_code=403, detail="Compte désactivé")

    if not user.get("permissions"):
        user["permissions"] = get_preset_permissions(user.get("role", "viewer"))

    return user


def _public_user(user: dict) -> dict:
    return UserResponse(
        id=user["id"],
        email=user["email"],
        nom=user.get("nom", ""),
        role=user.get("role", "viewer"),
        permissions=user.get("permissions") or get_preset_permissions(user.get("role", "viewer")),
        is_active=user.get("is_active", True)
    ).model_dump()


# ==================== LOGIN / LOGOUT ====================

@router.post("/login")
async def login(data: UserLogin, db=Depends(get_db)):
    """Connexion utilisateur."""
    user = await db.users.find_one(
        {"email": data.email.lower().strip()},
        {"_id": 0}
    )

    if not user or user.get("password") != hash_password(data.password):
        logger.info(f"[AUTH] Failed login for {data.email.lower().strip()}")
        raise HTTPException(status_code=401, detail="Email ou mot de passe incorrect")

    if not user.get("is_active", True):
        raise HTTPException(status_code=403, detail="Compte désactivé")

    token = generate_session_token()
    expires_at = (datetime.now(timezone.utc) + timedelta(days=SESSION_DAYS)).isoformat()

    await db.sessions.insert_one({
        "token": token,
        "user_id": user["id"],
        "created_at": now_iso(),
        "expires_at": expires_at
    })

    logger.info(f"[AUTH] {user['email']} logged in")

    return {
        "token": token,
        "user": _public_user(user)
    }


@router.post("/logout")
async def logout(
    user: dict = Depends(get_current_user),
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db=Depends(get_db)
):
    if credentials:
        await db.sessions.delete_one({"token": credentials.credentials})
    return {"success": True}


@router.get("/me")
async def get_me(user: dict = Depends(get_current_user)):
    """Retourne user + permissions."""
    return _public_user(user)
