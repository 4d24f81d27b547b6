"""
Credential hashing and bearer-token sessions.

Sessions are stateless HS256 JWTs carrying the user id (``sub``), email and
display name. Routes only ever see the decoded claims, or ``None`` when the
caller is not authenticated.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from jwt import ExpiredSignatureError, InvalidTokenError
from werkzeug.security import check_password_hash, generate_password_hash

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"


def hash_password(password: str) -> str:
  return generate_password_hash(password)


def verify_password(password_hash: Optional[str], password: str) -> bool:
  """Return ``True`` if ``password`` matches; accounts without a hash never match."""
  if not password_hash:
    return False
  return check_password_hash(password_hash, password)


class TokenAuthenticator:
  """Issue and verify the signed session tokens."""

  def __init__(self, secret_key: str, expiration_minutes: int = 60) -> None:
    self.secret_key = secret_key
    self.expiration_minutes = expiration_minutes

  def issue_token(self, user: Dict[str, Any]) -> str:
    """Return a signed JWT for the provided user record."""
    now = datetime.now(timezone.utc)
    payload = {
      "sub": user["id"],
      "email": user["email"],
      "name": user.get("name"),
      "exp": now + timedelta(minutes=self.expiration_minutes),
      "iat": now,
    }
    return jwt.encode(payload, self.secret_key, algorithm=JWT_ALGORITHM)

  def decode_token(self, token: str) -> Dict[str, Any]:
    """Decode a JWT and return its payload."""
    return jwt.decode(token, self.secret_key, algorithms=[JWT_ALGORITHM])

  def authenticate(self, authorization_header: Optional[str]) -> Optional[Dict[str, Any]]:
    """Resolve an ``Authorization: Bearer`` header to session claims."""
    if not authorization_header or not authorization_header.startswith("Bearer "):
      return None

    token = authorization_header.split(" ", 1)[1].strip()
    if not token:
      return None

    try:
      claims = self.decode_token(token)
    except ExpiredSignatureError:
      logger.info("Rejected expired session token.")
      return None
    except InvalidTokenError as exc:
      logger.info("Rejected invalid session token: %s", exc)
      return None

    if not claims.get("sub") or not claims.get("email"):
      logger.info("Rejected session token with malformed payload.")
      return None
    return claims


__all__ = ["TokenAuthenticator", "hash_password", "verify_password"]
