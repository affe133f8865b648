import jwt
from datetime import datetime, timedelta, timezone
from cloudkitchen.config import settings

ROLE_USER = "user"
ROLE_ADMIN = "admin"


def create_token(sub: str, role: str = ROLE_USER) -> str:
    """Sessions are issued by the identity service; this mints compatible tokens for tooling and tests."""
    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=settings.JWT_EXP_MIN)
    payload = {"sub": sub, "role": role, "iss": settings.JWT_ISS,
               "iat": int(now.timestamp()), "exp": int(exp.timestamp())}
    return jwt.encode(payload, settings.APP_SECRET, algorithm="HS256")
