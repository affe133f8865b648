from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import jwt
from cloudkitchen.config import settings
from cloudkitchen.services.notifications import NotificationConfig

auth_scheme = HTTPBearer(auto_error=False)

ADMIN_ROLES = {"admin", "superadmin"}

def _claims(creds: HTTPAuthorizationCredentials | None) -> dict:
    if not creds:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        return jwt.decode(creds.credentials, settings.APP_SECRET, algorithms=["HS256"], options={"verify_aud": False})
    except jwt.PyJWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

def require_claims(creds: HTTPAuthorizationCredentials | None = Depends(auth_scheme)) -> dict:
    data = _claims(creds)
    if not data.get("sub"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    return data

def require_auth(claims: dict = Depends(require_claims)) -> str:
    return claims["sub"]

def require_admin(claims: dict = Depends(require_claims)) -> str:
    if claims.get("role") not in ADMIN_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return claims["sub"]

def is_admin(claims: dict) -> bool:
    return claims.get("role") in ADMIN_ROLES

def notification_config(request: Request) -> NotificationConfig:
    # resolved once at startup; fall back for apps built without the startup hook
    cfg = getattr(request.app.state, "notification_config", None)
    return cfg or NotificationConfig.from_settings()
