"""Bearer-token authentication and role checks.

Tokens are minted by the membership service (signed with the shared
SECRET_KEY, ``sub`` = member id); this service only verifies them.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from solidarite.config import settings
from solidarite.database import get_db
from solidarite.models.member import Member, MemberRole

security = HTTPBearer()

ALGORITHM = "HS256"

STAFF_ROLES = (MemberRole.PRESIDENT, MemberRole.TREASURER, MemberRole.CENSOR)


def decode_token(token: str) -> dict:
    """Decode and return the JWT payload. Raises JWTError on failure."""
    return jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])


async def get_current_member(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> Member:
    """Resolve the bearer token to an active member."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_token(credentials.credentials)
        member_id_raw = payload.get("sub")
        if member_id_raw is None:
            raise credentials_exception
        member_id = int(member_id_raw)
    except (JWTError, ValueError, TypeError):
        raise credentials_exception

    result = await db.execute(select(Member).where(Member.id == member_id))
    member = result.scalar_one_or_none()
    if member is None or not member.is_active:
        raise credentials_exception
    return member


def require_roles(*roles: MemberRole):
    """Dependency factory that checks the member holds one of ``roles``."""
    async def role_checker(current_member: Member = Depends(get_current_member)) -> Member:
        if current_member.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return current_member
    return role_checker
