import asyncpg
import bcrypt
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Optional

from fastapi import Cookie, Depends, HTTPException
from jose import JWTError, jwt

from ..config import settings
from ..db import get_pool

_ALGORITHM = "HS256"
COOKIE_NAME = "studio_token"

BUSINESS_OWNER = "business_owner"
TEAM_MEMBER = "team_member"
CLIENT = "client"

ROLES: frozenset[str] = frozenset([BUSINESS_OWNER, TEAM_MEMBER, CLIENT])
STAFF_ROLES: frozenset[str] = frozenset([BUSINESS_OWNER, TEAM_MEMBER])


class NotAuthenticated(Exception):
    """Raised by require_user when no valid JWT cookie is present."""


# ---------------------------------------------------------------------------
# Password helpers
# ---------------------------------------------------------------------------

def hash_password(plain: str) -> str:
    return bcrypt.hashpw(plain.encode(), bcrypt.gensalt()).decode()


def verify_password(plain: str, hashed: str) -> bool:
    return bcrypt.checkpw(plain.encode(), hashed.encode())


# ---------------------------------------------------------------------------
# JWT helpers
# ---------------------------------------------------------------------------

def create_jwt(user_id: str, role: str) -> str:
    expire = datetime.now(timezone.utc) + timedelta(hours=settings.jwt_expire_hours)
    payload = {"sub": str(user_id), "role": role, "exp": expire}
    return jwt.encode(payload, settings.jwt_secret, algorithm=_ALGORITHM)


def decode_jwt(token: str) -> dict:
    """Returns {"user_id", "role"} from a token. Raises NotAuthenticated if invalid/expired."""
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[_ALGORITHM])
        return {"user_id": payload["sub"], "role": payload["role"]}
    except (JWTError, KeyError):
        raise NotAuthenticated()


# ---------------------------------------------------------------------------
# Shared DB dependency (used by every router)
# ---------------------------------------------------------------------------

async def get_conn() -> AsyncGenerator[asyncpg.Connection, None]:
    pool = await get_pool()
    async with pool.acquire() as conn:
        yield conn


# ---------------------------------------------------------------------------
# Auth dependencies
# ---------------------------------------------------------------------------

async def require_user(
    studio_token: Optional[str] = Cookie(default=None),
    conn: asyncpg.Connection = Depends(get_conn),
) -> dict:
    """Decodes JWT cookie and fetches current role from DB. Raises NotAuthenticated if missing/invalid."""
    if not studio_token:
        raise NotAuthenticated()
    claims = decode_jwt(studio_token)

    row = await conn.fetchrow(
        """
        SELECT id::text AS id, email, full_name, role, client_id::text AS client_id
        FROM studio.users
        WHERE id = $1::uuid AND is_active = true
        """,
        claims["user_id"],
    )
    if not row:
        raise NotAuthenticated()

    return {
        "user_id": row["id"],
        "email": row["email"],
        "full_name": row["full_name"],
        "role": row["role"],
        "client_id": row["client_id"],
    }


async def require_staff(user: dict = Depends(require_user)) -> dict:
    """Extends require_user: raises 403 unless the user is owner or team member."""
    if user["role"] not in STAFF_ROLES:
        raise HTTPException(status_code=403, detail="Staff access required")
    return user


async def require_owner(user: dict = Depends(require_user)) -> dict:
    if user["role"] != BUSINESS_OWNER:
        raise HTTPException(status_code=403, detail="Business owner access required")
    return user


def is_staff(user: dict) -> bool:
    return user.get("role") in STAFF_ROLES


def ensure_client_access(user: dict, client_id: Optional[str]) -> None:
    """Staff see everything; a client user only records of its own client."""
    if is_staff(user):
        return
    if not client_id or user.get("client_id") != str(client_id):
        raise HTTPException(status_code=404, detail="Not found")
