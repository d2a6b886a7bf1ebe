"""
Passwordless (magic code) login and bearer-session authentication.
"""

import hashlib
import logging
import os
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, Header
from pydantic import BaseModel, EmailStr

from database import create_document, get_db, get_documents
from exceptions import UnauthorizedError
from schemas import AuthCode, User

logger = logging.getLogger(__name__)

DEMO_MODE = os.getenv("DEMO_MODE", "false").lower() in ("1", "true", "yes")
SESSION_TTL_MINUTES = int(os.getenv("SESSION_TTL_MINUTES", "1440"))  # default 1 day
CODE_TTL_MINUTES = int(os.getenv("CODE_TTL_MINUTES", "10"))


class RequestCodeBody(BaseModel):
    email: EmailStr


class VerifyCodeBody(BaseModel):
    email: EmailStr
    code: str
    name: Optional[str] = None


def _now():
    return datetime.now(timezone.utc)


def _as_aware(value) -> Optional[datetime]:
    # Mongo hands datetimes back naive, in UTC.
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return None
    if isinstance(value, datetime) and value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _expired(value) -> bool:
    exp = _as_aware(value)
    return exp is None or exp < _now()


def gravatar_url(email: str) -> str:
    digest = hashlib.md5(email.strip().lower().encode("utf-8")).hexdigest()
    return f"https://gravatar.com/avatar/{digest}?d=mm&r=pg&s=200"


def request_code(db, email: str) -> dict:
    code = f"{secrets.randbelow(1000000):06d}"
    expires_at = _now() + timedelta(minutes=CODE_TTL_MINUTES)
    create_document(db, "authcode", AuthCode(email=email, code=code, expires_at=expires_at, used=False))
    # Delivery is out of band; demo mode echoes the code instead.
    resp = {"status": "ok", "message": "Code sent"}
    if DEMO_MODE:
        resp["debug_code"] = code
    return resp


def verify_code(db, payload: VerifyCodeBody) -> dict:
    """Consume a login code, creating the user on first login, and open a session."""
    email = str(payload.email)
    codes = get_documents(db, "authcode", {"email": email}, limit=50)
    codes_sorted = sorted(codes, key=lambda d: d.get("created_at", 0), reverse=True)
    valid = None
    for c in codes_sorted:
        if c.get("used") or _expired(c.get("expires_at")):
            continue
        if secrets.compare_digest(str(c.get("code")).encode(), payload.code.encode()):
            valid = c
            break
    if not valid:
        logger.warning("Rejected login code for %s", email)
        raise UnauthorizedError("Invalid or expired code")
    db["authcode"].update_one({"_id": valid["_id"]}, {"$set": {"used": True, "updated_at": _now()}})

    user = db["user"].find_one({"email": email})
    if not user:
        name = payload.name or email.split("@", 1)[0]
        user_id = create_document(db, "user", User(name=name, email=email, avatar=gravatar_url(email)))
        user = db["user"].find_one({"email": email})
        logger.info("Registered user %s", user_id)
    user_id = str(user["_id"])

    token = secrets.token_urlsafe(32)
    db["session"].insert_one({
        "user_id": user_id,
        "email": email,
        "token": token,
        "created_at": _now(),
        "expires_at": _now() + timedelta(minutes=SESSION_TTL_MINUTES),
    })
    logger.info("Opened session for user %s", user_id)
    return {
        "token": token,
        "user": {"id": user_id, "name": user.get("name"), "avatar": user.get("avatar"), "email": email},
    }


def get_current_user_id(authorization: Optional[str] = Header(default=None), db=Depends(get_db)) -> str:
    """FastAPI dependency: resolve the bearer session to the caller's user id, or 401."""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise UnauthorizedError("Missing bearer token")
    token = authorization.split(" ", 1)[1].strip()
    sess = db["session"].find_one({"token": token})
    if not sess:
        logger.warning("Unknown session token")
        raise UnauthorizedError("Invalid session")
    if _expired(sess.get("expires_at")):
        raise UnauthorizedError("Session expired")
    return str(sess["user_id"])
