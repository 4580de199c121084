# Bearer-token verification against the external auth service's signing key.
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, Header
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from quizcraft.config import get_auth_algorithm, get_auth_secret, get_token_ttl_minutes
from quizcraft.database import get_db
from quizcraft.errors import Unauthenticated
from quizcraft.models import User


# Mint a signed token for a user id; the auth service issues the same shape.
def create_access_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(tz=timezone.utc) + (
        expires_delta or timedelta(minutes=get_token_ttl_minutes())
    )
    claims = {"sub": user_id, "exp": expire}
    return jwt.encode(claims, get_auth_secret(), algorithm=get_auth_algorithm())


# Extract the subject claim from an Authorization header value.
def decode_user_id(authorization: Optional[str]) -> str:
    if not authorization:
        raise Unauthenticated("not authenticated")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthenticated("invalid authentication scheme")
    try:
        payload = jwt.decode(
            token.strip(), get_auth_secret(), algorithms=[get_auth_algorithm()]
        )
    except JWTError:
        raise Unauthenticated("invalid token")
    user_id = payload.get("sub")
    if not user_id:
        raise Unauthenticated("invalid token")
    return str(user_id)


# Resolve the authenticated user for the current request.
def get_current_user(
    authorization: Optional[str] = Header(None), db: Session = Depends(get_db)
) -> User:
    user_id = decode_user_id(authorization)
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise Unauthenticated("user not found")
    return user
