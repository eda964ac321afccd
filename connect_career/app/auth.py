from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from connect_career.app.models import OfferParty
from connect_career.app.settings import Settings

security = HTTPBearer(auto_error=False)

PIPELINE_ADMIN_ROLES = ("employer", "admin")
RECRUITER_ROLES = ("recruiter", "employer", "admin")
APPLICANT_ROLES = ("candidate", "recruiter", "admin")
OFFER_PARTY_ROLES = ("candidate", "recruiter", "employer", "admin")


@dataclass(frozen=True)
class AuthContext:
    user_id: str
    roles: set[str]

    def acts_as(self, party: OfferParty) -> bool:
        if "admin" in self.roles:
            return True
        if party == OfferParty.candidate:
            return "candidate" in self.roles
        return not self.roles.isdisjoint({"recruiter", "employer"})


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def _developer_context() -> AuthContext:
    return AuthContext(
        user_id="dev-local",
        roles={"admin", "recruiter", "employer", "candidate"},
    )


def _decode_roles(payload: dict) -> AuthContext:
    subject = payload.get("sub")
    roles = payload.get("roles", [])
    if not isinstance(subject, str) or not subject.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="token missing subject",
        )
    if not isinstance(roles, list):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="token roles must be a list",
        )
    role_set = {str(role).strip() for role in roles if str(role).strip()}
    if not role_set:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="token has no roles",
        )
    return AuthContext(user_id=subject.strip(), roles=role_set)


def get_auth_context(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> AuthContext:
    settings = get_settings(request)
    if not settings.auth_enabled:
        return _developer_context()

    if not credentials or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="missing bearer token",
        )

    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
        )
    except jwt.InvalidTokenError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="invalid auth token",
        ) from exc
    return _decode_roles(payload)


def require_roles(*required_roles: str) -> Callable[[AuthContext], AuthContext]:
    required = {role.strip() for role in required_roles if role.strip()}

    def dependency(context: AuthContext = Depends(get_auth_context)) -> AuthContext:
        if required and context.roles.isdisjoint(required):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"insufficient role. required any of: {sorted(required)}",
            )
        return context

    return dependency


def ensure_party(context: AuthContext, party: OfferParty) -> None:
    if not context.acts_as(party):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"cannot act for the {party.value} side of an offer",
        )
