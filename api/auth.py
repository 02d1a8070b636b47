"""Credential store and access gate.

Passwords are hashed with passlib; access tokens are HS256 JWTs signed with
python-jose and carry ``sub`` (user id), ``email`` and ``role``. Every API
route except register/login depends on ``get_current_user``, which resolves
the bearer token to an ``Identity``.

Copyright (c) Bryn Gwalad 2025
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import case, func, literal
from sqlmodel import col, select

from utils.database import Store

from .errors import Conflict, ConstraintViolation, InvalidInput, Unauthorized
from .models import ROLE_ADMIN, ROLE_MEMBER, User

logger = logging.getLogger("inventory_api.auth")

MIN_PASSWORD_LENGTH = 6
INVALID_CREDENTIALS = "Invalid credentials"

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


@dataclass(frozen=True)
class Identity:
    """The authenticated caller, decoded from an access token."""

    id: int
    email: str
    role: str


def serialize_user(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "created_at": user.created_at,
    }


def _first_user_role():
    # Evaluated inside the INSERT; at most one user is ever the first.
    users = select(func.count()).select_from(User).scalar_subquery()
    return case((users == 0, literal(ROLE_ADMIN)), else_=literal(ROLE_MEMBER))


class CredentialStore:
    """Registers users, checks passwords and issues/validates access tokens."""

    def __init__(self, store: Store, secret: str, algorithm: str = "HS256", expire_days: int = 7):
        self.store = store
        self.secret = secret
        self.algorithm = algorithm
        self.expire_days = expire_days

    # -- tokens --------------------------------------------------------------

    def issue_token(self, user: User, expires_delta: Optional[timedelta] = None) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user.id),
            "email": user.email,
            "role": user.role,
            "iat": now,
            "exp": now + (expires_delta or timedelta(days=self.expire_days)),
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def decode_token(self, token: Optional[str]) -> Identity:
        """Validate signature and expiry and return the identity in the token."""
        if not token:
            raise Unauthorized("Access token required")
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
            return Identity(id=int(payload["sub"]), email=payload["email"], role=payload["role"])
        except (JWTError, KeyError, TypeError, ValueError) as exc:
            raise Unauthorized("Invalid or expired token") from exc

    # -- operations ----------------------------------------------------------

    def register(self, name: Optional[str], email: Optional[str], password: Optional[str]) -> dict:
        """Create a user and return ``{"user": ..., "token": ...}``.

        The first user ever registered becomes admin, everyone after is a
        member.
        """
        if not name or not email or not password:
            raise InvalidInput("Name, email, and password are required")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise InvalidInput(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

        password_hash = pwd_context.hash(password)
        try:
            with self.store.transaction() as session:
                if self.store.count(session, User, col(User.email) == email):
                    raise Conflict("User with this email already exists")
                user = User(name=name, email=email, password_hash=password_hash)
                user.role = _first_user_role()
                self.store.save(session, user)
                session.refresh(user)
                result = {"user": serialize_user(user), "token": self.issue_token(user)}
        except ConstraintViolation as exc:
            raise Conflict("User with this email already exists") from exc
        logger.info("Registered user %s with role %s", result["user"]["id"], result["user"]["role"])
        return result

    def login(self, email: Optional[str], password: Optional[str]) -> dict:
        if not email or not password:
            raise InvalidInput("Email and password are required")
        with self.store.transaction() as session:
            user = session.exec(select(User).where(col(User.email) == email)).first()
            if user is None:
                pwd_context.dummy_verify()
                raise Unauthorized(INVALID_CREDENTIALS)
            if not pwd_context.verify(password, user.password_hash):
                raise Unauthorized(INVALID_CREDENTIALS)
            result = {"user": serialize_user(user), "token": self.issue_token(user)}
        logger.info("User %s logged in", result["user"]["id"])
        return result

    def authenticate(self, token: Optional[str]) -> Identity:
        """Resolve a bearer token to the identity of an existing user."""
        identity = self.decode_token(token)
        with self.store.transaction() as session:
            if session.get(User, identity.id) is None:
                raise Unauthorized("User no longer exists")
        return identity

    def me(self, identity: Identity) -> dict:
        with self.store.transaction() as session:
            user = session.get(User, identity.id)
            if user is None:
                raise Unauthorized("User no longer exists")
            return serialize_user(user)


bearer = HTTPBearer(auto_error=False)


def get_credentials(request: Request) -> CredentialStore:
    return request.app.state.credentials


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    credential_store: CredentialStore = Depends(get_credentials),
) -> Identity:
    """FastAPI dependency gating every authenticated route."""
    token = credentials.credentials if credentials else None
    return credential_store.authenticate(token)
