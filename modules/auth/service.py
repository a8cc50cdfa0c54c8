"""
Auth Module - Service Layer
=============================
Turns a verified identity-provider token into a provisioned profile.
Provisioning is a single synchronous insert; a concurrent first request
that loses the unique race simply re-reads the row.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from common.exceptions import AuthenticationError
from common.security import decode_token
from config.settings import AUTH_ROLE_CLAIM
from modules.user.models import Profile, Role, SessionContext

logger = logging.getLogger("cafepreorder.auth")


@dataclass(frozen=True)
class Identity:
    """Claims we rely on from the identity provider."""
    subject: str
    email: str
    name: str
    role: Role


def parse_identity(token: str) -> Identity:
    """Verify the token and validate its claims. The role is checked here, once."""
    payload = decode_token(token) if token else None
    if not payload:
        raise AuthenticationError("Invalid or expired session.")

    subject = payload.get("sub")
    email = payload.get("email") or ""
    if not subject or not email:
        raise AuthenticationError("Session is missing user details.")

    metadata = payload.get("user_metadata") or {}
    name = payload.get("name") or metadata.get("name") or email.split("@")[0]

    raw_role = payload.get(AUTH_ROLE_CLAIM) or metadata.get("role") or Role.USER.value
    try:
        role = Role(raw_role)
    except ValueError:
        raise AuthenticationError(f"Unknown role: {raw_role}")

    return Identity(subject=str(subject), email=email, name=name, role=role)


class AuthService:

    def ensure_profile(self, db: Session, identity: Identity) -> Profile:
        """Get or create the profile for this identity."""
        profile = db.query(Profile).filter(Profile.id == identity.subject).first()
        if profile:
            return profile

        try:
            profile = Profile(
                id=identity.subject,
                email=identity.email,
                name=identity.name,
                role=identity.role.value,
            )
            db.add(profile)
            db.commit()
            logger.info(f"Provisioned profile {identity.subject} ({identity.role.value})")
            return profile
        except IntegrityError:
            db.rollback()
            # Race condition: another request provisioned this profile
            profile = db.query(Profile).filter(Profile.id == identity.subject).first()
            if profile:
                return profile
            raise AuthenticationError("Could not set up your profile. Please retry.")

    def resolve_session(self, db: Session, token: str) -> SessionContext:
        identity = parse_identity(token)
        profile = self.ensure_profile(db, identity)
        return SessionContext.from_profile(profile)


# Singleton
auth_service = AuthService()
