# utils/tokenJWT.py
from datetime import timedelta
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from sqlalchemy.orm import Session

from config import settings
from database import get_db
from models.users import User
from utils.clock import utcnow

# Tokens are issued by the account service, this API only verifies them
bearer_scheme = HTTPBearer()

STAFF_ROLES = ("ADMIN", "SUPER_ADMIN")

def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    claims = dict(data)
    claims["exp"] = utcnow() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

def decode_subject(token: str) -> str:
    """Returns the e-mail carried in ``sub``, or raises 401."""
    try:
        claims = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise _unauthorized()
    subject = claims.get("sub")
    if not subject:
        raise _unauthorized()
    return subject

# Resolve the bearer token to a stored user
def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    email = decode_subject(credentials.credentials)
    user = db.query(User).filter(User.email == email).first()
    if user is None:
        raise _unauthorized()
    return user

# Dependency factory for back-office routes, roles compared case-insensitively
def role_required(*allowed_roles):
    allowed = {r.upper() for r in allowed_roles}

    def _checker(current_user: User = Depends(get_current_user)) -> User:
        if allowed and (current_user.role or "").upper() not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return current_user

    return _checker
