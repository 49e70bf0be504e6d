"""Authentication helpers for FastAPI endpoints and socket handshakes.

Identity is issued elsewhere; this module only verifies it:
- Bearer JWT (HS256, settings.secret_key) everywhere.
- X-User-Id header fallback in development only.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import InvalidTokenError

from floatr.infra import jwt as jwt_helper
from floatr.settings import settings


@dataclass(slots=True)
class AuthenticatedUser:
	id: str
	display_name: Optional[str] = None
	roles: Tuple[str, ...] = ()
	session_id: Optional[str] = None


_bearer_scheme = HTTPBearer(auto_error=False)


def verify_access_jwt(token: str) -> AuthenticatedUser:
	"""Decode and validate an access JWT and return an AuthenticatedUser.

	Roles can be a list[str] or a comma-separated string.
	"""
	try:
		payload = jwt_helper.decode_access(token)
	except InvalidTokenError:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token") from None

	sub = str(payload.get("sub") or "").strip()
	if not sub:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")

	display_name = payload.get("name") or payload.get("display_name")
	roles_claim = payload.get("roles") or payload.get("role")
	roles: Tuple[str, ...]
	if isinstance(roles_claim, (list, tuple)):
		roles = tuple(str(r).strip() for r in roles_claim if str(r).strip())
	elif isinstance(roles_claim, str):
		roles = tuple(part.strip() for part in roles_claim.split(",") if part.strip())
	else:
		roles = ()
	session_id = payload.get("sid")

	return AuthenticatedUser(
		id=sub,
		display_name=str(display_name) if display_name is not None else None,
		roles=roles,
		session_id=str(session_id).strip() if session_id is not None else None,
	)


def resolve_identity(
	*,
	bearer: Optional[str] = None,
	dev_user_id: Optional[str] = None,
) -> Optional[AuthenticatedUser]:
	"""Resolve an identity from a raw bearer token or, in dev only, a plain user id."""
	if bearer:
		return verify_access_jwt(bearer)
	if dev_user_id and settings.is_dev():
		return AuthenticatedUser(id=str(dev_user_id).strip())
	return None


async def get_current_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> AuthenticatedUser:
	"""Resolve the authenticated user.

	In development we allow a simple X-User-Id header. In all other environments
	a valid Bearer JWT is required.
	"""
	bearer = None
	if credentials and credentials.scheme.lower() == "bearer":
		bearer = credentials.credentials
	user = resolve_identity(bearer=bearer, dev_user_id=x_user_id)
	if user is None:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
	return user
