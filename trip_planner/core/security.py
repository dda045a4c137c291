"""Bearer-token authentication and shared request dependencies.

Tokens are issued by the identity provider and signed with the shared
secret; ``sub`` is the user id. When the token carries an ``email`` claim the
local users table is refreshed from it, so a first request from a new account
provisions the user row.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Annotated, Any, Dict, Optional

import jwt
from fastapi import Depends, Header, Request

from trip_planner.core.config import Settings
from trip_planner.core.errors import UnauthorizedError
from trip_planner.db.dal import Database

logger = logging.getLogger("trip_planner.auth")


@dataclass(frozen=True)
class CurrentUser:
    id: str
    email: str
    full_name: Optional[str] = None


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_db(request: Request) -> Database:
    settings = request.app.state.settings
    return Database(settings.db_path)


def parse_bearer(authorization: Optional[str]) -> str:
    if not authorization:
        raise UnauthorizedError("Missing Authorization header")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise UnauthorizedError("Authorization header must use the Bearer scheme")
    return token.strip()


def decode_token(token: str, settings: Settings) -> Dict[str, Any]:
    options = {"require": ["sub"], "verify_aud": settings.jwt_audience is not None}
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            options=options,
        )
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token has expired")
    except jwt.InvalidTokenError as exc:
        logger.debug("rejected token: %s", exc)
        raise UnauthorizedError("Invalid token")


def _full_name_from_claims(claims: Dict[str, Any]) -> Optional[str]:
    metadata = claims.get("user_metadata")
    if isinstance(metadata, dict) and metadata.get("full_name"):
        return str(metadata["full_name"])
    name = claims.get("name")
    return str(name) if name else None


def resolve_user(db: Database, claims: Dict[str, Any]) -> CurrentUser:
    user_id = str(claims.get("sub") or "")
    if not user_id:
        raise UnauthorizedError("Invalid token")
    email = claims.get("email")
    if isinstance(email, str) and email.strip():
        db.upsert_user(user_id, email, _full_name_from_claims(claims))
    user = db.get_user(user_id)
    if not user:
        raise UnauthorizedError("Unknown user")
    return CurrentUser(id=user["id"], email=user["email"], full_name=user.get("full_name"))


def authenticate(token: str, settings: Settings, db: Database) -> CurrentUser:
    return resolve_user(db, decode_token(token, settings))


def get_current_user(
    request: Request,
    authorization: Annotated[Optional[str], Header()] = None,
    db: Database = Depends(get_db),
) -> CurrentUser:
    token = parse_bearer(authorization)
    return authenticate(token, get_app_settings(request), db)
