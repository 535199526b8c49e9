import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone

import asyncpg
from fastapi import APIRouter, Depends, HTTPException, Response

from ..activity import log_activity
from ..config import settings
from .auth import (
    CLIENT,
    COOKIE_NAME,
    create_jwt,
    get_conn,
    hash_password,
    require_owner,
    require_user,
    verify_password,
)
from .schemas import LoginRequest, RecoverRequest, ResetRequest, SignUpRequest, StaffUserCreate
from .session import AuthSession

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_email(email: str) -> str:
    return email.lower().strip()


def _set_session_cookie(response: Response, user_id: str, role: str) -> None:
    response.set_cookie(
        key=COOKIE_NAME,
        value=create_jwt(user_id, role),
        httponly=True,
        samesite="lax",
        max_age=settings.jwt_expire_hours * 3600,
    )


# ---------------------------------------------------------------------------
# Sign-in / sign-out
# ---------------------------------------------------------------------------

@router.post("/login")
async def login(
    body: LoginRequest,
    response: Response,
    conn: asyncpg.Connection = Depends(get_conn),
):
    session = AuthSession()
    session.begin_sign_in()

    row = await conn.fetchrow(
        """
        SELECT id::text AS id, password_hash, role, is_active, client_id::text AS client_id
        FROM studio.users
        WHERE email = $1
        """,
        _normalize_email(body.email),
    )

    if not row or not row["is_active"] or not verify_password(body.password, row["password_hash"]):
        session.fail()
        logger.info("login failed for %s", _normalize_email(body.email))
        raise HTTPException(status_code=401, detail="Invalid email or password")

    session.succeed(row["id"], row["role"])
    await conn.execute(
        "UPDATE studio.users SET last_login_at = now() WHERE id = $1::uuid",
        row["id"],
    )
    _set_session_cookie(response, row["id"], row["role"])
    return {
        "user_id": row["id"],
        "role": row["role"],
        "client_id": row["client_id"],
        "session": session.state,
    }


@router.post("/logout")
async def logout(response: Response, user: dict = Depends(require_user)):
    session = AuthSession.restored(user["user_id"], user["role"])
    session.sign_out()
    response.delete_cookie(COOKIE_NAME)
    return {"ok": True, "session": session.state}


@router.get("/me")
async def me(user: dict = Depends(require_user)):
    return user


# ---------------------------------------------------------------------------
# Sign-up (clients) and staff provisioning
# ---------------------------------------------------------------------------

@router.post("/signup", status_code=201)
async def signup(
    body: SignUpRequest,
    response: Response,
    conn: asyncpg.Connection = Depends(get_conn),
):
    email = _normalize_email(body.email)
    async with conn.transaction():
        exists = await conn.fetchval("SELECT 1 FROM studio.users WHERE email = $1", email)
        if exists:
            raise HTTPException(status_code=400, detail="Email already registered")

        client_id = await conn.fetchval(
            """
            INSERT INTO studio.clients (name, email, phone, status, lead_source)
            VALUES ($1, $2, $3, 'inquiry', 'signup')
            RETURNING id::text
            """,
            body.full_name, email, body.phone,
        )
        user_id = await conn.fetchval(
            """
            INSERT INTO studio.users (email, password_hash, full_name, role, client_id)
            VALUES ($1, $2, $3, $4, $5::uuid)
            RETURNING id::text
            """,
            email, hash_password(body.password), body.full_name, CLIENT, client_id,
        )
        await log_activity(
            conn,
            event_type="client_signed_up",
            actor_id=user_id,
            metadata={"client_id": client_id},
        )

    _set_session_cookie(response, user_id, CLIENT)
    return {"user_id": user_id, "role": CLIENT, "client_id": client_id}


@router.post("/users", status_code=201)
async def create_staff_user(
    body: StaffUserCreate,
    owner: dict = Depends(require_owner),
    conn: asyncpg.Connection = Depends(get_conn),
):
    email = _normalize_email(body.email)
    async with conn.transaction():
        exists = await conn.fetchval("SELECT 1 FROM studio.users WHERE email = $1", email)
        if exists:
            raise HTTPException(status_code=400, detail="Email already registered")
        user_id = await conn.fetchval(
            """
            INSERT INTO studio.users (email, password_hash, full_name, role)
            VALUES ($1, $2, $3, $4)
            RETURNING id::text
            """,
            email, hash_password(body.password), body.full_name, body.role,
        )
        await log_activity(
            conn,
            event_type="staff_user_created",
            actor_id=owner["user_id"],
            metadata={"user_id": user_id, "role": body.role},
        )
    return {"user_id": user_id, "email": email, "role": body.role}


# ---------------------------------------------------------------------------
# Password recovery
# ---------------------------------------------------------------------------

@router.post("/recover")
async def recover(body: RecoverRequest, conn: asyncpg.Connection = Depends(get_conn)):
    session = AuthSession()
    session.begin_recovery()

    user_id = await conn.fetchval(
        "SELECT id::text FROM studio.users WHERE email = $1 AND is_active = true",
        _normalize_email(body.email),
    )
    # Same response whether or not the email exists
    result = {"ok": True, "session": session.state}
    if not user_id:
        return result

    raw_token = secrets.token_urlsafe(32)
    expires_at = _now_utc() + timedelta(minutes=settings.reset_token_ttl_minutes)
    await conn.execute(
        """
        INSERT INTO studio.password_resets (user_id, token_hash, expires_at)
        VALUES ($1::uuid, $2, $3)
        """,
        user_id, _hash_token(raw_token), expires_at,
    )
    logger.info("password reset issued for user %s (expires %s)", user_id, expires_at.isoformat())

    # No mail delivery yet: hand the link back only on local dev
    if settings.env == "local":
        result["reset_link"] = f"{settings.base_url}/reset-password?token={raw_token}"
    return result


@router.post("/reset")
async def reset_password(body: ResetRequest, conn: asyncpg.Connection = Depends(get_conn)):
    session = AuthSession()
    session.begin_recovery()

    async with conn.transaction():
        tok = await conn.fetchrow(
            """
            SELECT id, user_id::text AS user_id, expires_at, used_at
            FROM studio.password_resets
            WHERE token_hash = $1
            LIMIT 1
            """,
            _hash_token(body.token),
        )
        if not tok:
            raise HTTPException(status_code=404, detail="Invalid reset link")
        if tok["used_at"] is not None:
            raise HTTPException(status_code=403, detail="Reset link already used")
        if tok["expires_at"] < _now_utc():
            raise HTTPException(status_code=403, detail="Reset link expired")

        await conn.execute(
            "UPDATE studio.users SET password_hash = $1 WHERE id = $2::uuid",
            hash_password(body.password), tok["user_id"],
        )
        await conn.execute(
            "UPDATE studio.password_resets SET used_at = now() WHERE id = $1",
            tok["id"],
        )
        await log_activity(conn, event_type="password_reset", actor_id=tok["user_id"])

    session.finish_recovery()
    return {"ok": True, "session": session.state}
