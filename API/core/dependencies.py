"""
FastAPI dependencies: shared billing collaborators and authentication.

The collaborators are cached builders so tests can swap them through
app.dependency_overrides.
"""

from functools import lru_cache

from fastapi import Depends, HTTPException, Query, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from database import get_db, utc_now
from database.models import SessionToken, Student
from services.community_client import CommunityClient
from services.email_sender import EmailSender
from services.gateways import GatewayRegistry, build_gateways
from services.lms_client import LMSClient
from services.onboarding import Onboarding
from .config import settings
from .pricing import PricingCatalog
from .security import verify_access_token, is_admin_token


# HTTP Bearer token scheme
security = HTTPBearer()


# ==================== COLLABORATORS ====================

@lru_cache
def get_catalog() -> PricingCatalog:
    return PricingCatalog.default()


@lru_cache
def get_gateways() -> GatewayRegistry:
    return build_gateways(settings)


@lru_cache
def get_onboarding() -> Onboarding:
    return Onboarding(
        lms=LMSClient(),
        community=CommunityClient(),
        email=EmailSender(),
    )


# ==================== STUDENT AUTH ====================

async def get_current_student(
    token: str = Query(..., description="Session token from the profile link"),
    db: Session = Depends(get_db),
) -> Student:
    session = db.query(SessionToken).filter(
        SessionToken.token == token,
        SessionToken.expires_at > utc_now(),
    ).first()
    if not session:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session token is invalid or expired",
        )
    return session.student


# ==================== ADMIN AUTH ====================

async def get_current_admin(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> str:
    """Admin identity (the token subject) for /admin endpoints."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid admin token",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = verify_access_token(credentials.credentials)
    if payload is None:
        raise credentials_exception

    if not is_admin_token(payload):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admins only",
        )

    admin = payload.get("sub")
    if admin is None:
        raise credentials_exception
    return admin
