import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from launderer import config
from launderer.database import get_db
from launderer.enums import Role
from launderer.errors import AuthError, ForbiddenError
from launderer.models import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """A caller verified by the identity provider."""

    clerk_id: str
    email: Optional[str] = None
    role: Role = Role.CUSTOMER

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_driver(self) -> bool:
        return self.role in (Role.DRIVER, Role.ADMIN)


def _role_from_claims(claims: dict) -> Role:
    raw = claims.get("role")
    if raw is None:
        raw = (claims.get("public_metadata") or {}).get("role")
    try:
        return Role(raw) if raw else Role.CUSTOMER
    except ValueError:
        return Role.CUSTOMER


def decode_identity(token: str) -> Identity:
    if not config.JWT_SECRET:
        logger.error("JWT_SECRET is not configured")
        raise AuthError("Authentication is not configured")
    try:
        claims = jwt.decode(token, config.JWT_SECRET, algorithms=config.JWT_ALGORITHMS)
    except JWTError as e:
        logger.info(f"Token rejected: {e}")
        raise AuthError("Invalid or expired token") from e

    subject = claims.get("sub")
    if not subject:
        raise AuthError("Invalid or expired token")
    return Identity(clerk_id=subject, email=claims.get("email"), role=_role_from_claims(claims))


def verify_token(authorization: str = Header(...)) -> Identity:
    try:
        scheme, token = authorization.split()
    except ValueError as e:
        raise AuthError("No authorization token provided") from e
    if scheme.lower() != "bearer":
        raise AuthError("No authorization token provided")
    return decode_identity(token)


def require_driver(identity: Identity = Depends(verify_token)) -> Identity:
    if not identity.is_driver:
        raise ForbiddenError("Driver access required")
    return identity


def find_user(db: Session, identity: Identity) -> Optional[User]:
    return db.query(User).filter(User.clerk_id == identity.clerk_id).first()
