from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

import bcrypt
import jwt

from pocketguard import database
from pocketguard.core.models import User
from pocketguard.errors import AuthenticationError, ValidationError

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
BCRYPT_ROUNDS = 10
# bcrypt only looks at the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72


def hash_password(password: str) -> str:
    raw = password.encode("utf-8")
    if len(raw) > MAX_PASSWORD_BYTES:
        raise ValidationError("Password is too long")
    return bcrypt.hashpw(raw, bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


def extract_bearer_token(header_value: str | None) -> str | None:
    if not header_value or not header_value.startswith("Bearer "):
        return None
    token = header_value[7:].strip()
    return token or None


@dataclass
class TokenIssuer:
    """Issue and check the signed tokens handed out at login."""

    secret: str
    ttl_days: int = 30

    def issue(self, user_id: int, email: str) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "userId": user_id,
            "email": email,
            "iat": now,
            "exp": now + timedelta(days=self.ttl_days),
        }
        return jwt.encode(payload, self.secret, algorithm=ALGORITHM)

    def decode(self, token: str, verify_exp: bool = True) -> Dict[str, Any]:
        try:
            claims = jwt.decode(
                token,
                self.secret,
                algorithms=[ALGORITHM],
                options={"verify_exp": verify_exp},
            )
        except jwt.ExpiredSignatureError as exc:
            raise AuthenticationError("Token expired") from exc
        except jwt.InvalidTokenError as exc:
            raise AuthenticationError("Invalid token") from exc
        if not claims.get("userId") or not claims.get("email"):
            raise AuthenticationError("Invalid token")
        return claims

    def refresh(self, token: str) -> str:
        """Re-issue a token whose signature checks out, even if it expired."""
        claims = self.decode(token, verify_exp=False)
        return self.issue(claims["userId"], claims["email"])

    def authenticate(self, header_value: str | None) -> Dict[str, Any]:
        token = extract_bearer_token(header_value)
        if token is None:
            raise AuthenticationError("No token provided")
        return self.decode(token)


def _session(issuer: TokenIssuer, user: User) -> Dict[str, Any]:
    return {
        "user": {"id": user.id, "name": user.name, "email": user.email},
        "token": issuer.issue(user.id, user.email),
    }


def register(db_path: str, issuer: TokenIssuer, name: str, email: str, password: str) -> Dict[str, Any]:
    if not name or not email or not password:
        raise ValidationError("Missing required fields")
    user = database.create_user(db_path, name, email, hash_password(password))
    logger.info("Registered user %s", user.id)
    return _session(issuer, user)


def login(db_path: str, issuer: TokenIssuer, email: str, password: str) -> Dict[str, Any]:
    if not email or not password:
        raise ValidationError("Missing email or password")
    found = database.get_user_credentials(db_path, email)
    if found is None or not verify_password(password, found[1]):
        raise AuthenticationError("Invalid credentials")
    return _session(issuer, found[0])


def verify_google_credential(credential: str, client_id: str) -> Dict[str, Any]:
    from google.auth.transport import requests as google_requests
    from google.oauth2 import id_token

    try:
        return id_token.verify_oauth2_token(credential, google_requests.Request(), client_id)
    except ValueError as exc:
        raise AuthenticationError("Invalid Google token") from exc


GoogleVerifier = Callable[[str, str], Dict[str, Any]]


def google_sign_in(
    db_path: str,
    issuer: TokenIssuer,
    credential: str,
    client_id: str | None,
    verifier: Optional[GoogleVerifier] = None,
) -> Dict[str, Any]:
    """Sign in with a Google ID token, creating the user on first use."""
    if not credential:
        raise ValidationError("No credential provided")
    if not client_id:
        raise AuthenticationError("Google sign-in is not configured")
    payload = (verifier or verify_google_credential)(credential, client_id)
    email = payload.get("email") if payload else None
    if not email:
        raise AuthenticationError("Invalid Google token")

    user = database.get_user_by_email(db_path, email)
    if user is None:
        name = payload.get("name") or email.split("@")[0]
        # Google users never log in with a password
        user = database.create_user(db_path, name, email, hash_password(secrets.token_urlsafe(32)))
        logger.info("Created user %s from Google sign-in", user.id)
    return _session(issuer, user)
