import hashlib
import hmac
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from config import JWT_ALGO, JWT_EXPIRE_DAYS, JWT_SECRET
from database import get_db, serialize_doc, to_object_id
from errors import Forbidden, Unauthorized

TOKEN_COOKIE = "token"
PBKDF2_ROUNDS = 260000

security = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    salt = os.urandom(16).hex()
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), PBKDF2_ROUNDS).hex()
    return f"pbkdf2_sha256${PBKDF2_ROUNDS}${salt}${digest}"


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    try:
        _, rounds, salt, digest = password_hash.split("$")
    except ValueError:
        return False
    candidate = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), int(rounds)).hex()
    return hmac.compare_digest(candidate, digest)


def create_token(payload: dict) -> str:
    exp = datetime.now(timezone.utc) + timedelta(days=JWT_EXPIRE_DAYS)
    to_encode = {**payload, "exp": exp}
    return jwt.encode(to_encode, JWT_SECRET, algorithm=JWT_ALGO)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGO])
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Token expired")
    except jwt.InvalidTokenError:
        raise Unauthorized("Invalid token.")


def public_user(user: dict) -> dict:
    return {k: v for k, v in user.items() if k != "passwordHash"}


async def get_current_user(request: Request,
                           credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
                           database=Depends(get_db)):
    token = credentials.credentials if credentials else request.cookies.get(TOKEN_COOKIE)
    if not token:
        raise Unauthorized()
    payload = decode_token(token)
    user_id = to_object_id(payload.get("id"))
    if user_id is None:
        raise Unauthorized("Invalid token payload")
    user = database["user"].find_one({"_id": user_id})
    if not user or not user.get("isActive", True):
        raise Unauthorized("User not found or account deactivated.")
    return public_user(serialize_doc(user))


async def require_admin(user=Depends(get_current_user)):
    if user.get("role") != "admin":
        raise Forbidden("Access denied. Admin privileges required.")
    return user


async def get_optional_user(request: Request,
                            credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
                            database=Depends(get_db)):
    """Like get_current_user, but anonymous or invalid credentials give None."""
    try:
        return await get_current_user(request, credentials, database)
    except Unauthorized:
        return None
