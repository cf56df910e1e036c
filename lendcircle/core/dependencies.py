from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from lendcircle.core.security import decode_token

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token")


async def get_current_user_id(token: str = Depends(oauth2_scheme)) -> int:
    """Get the authenticated user id from the JWT bearer token"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_token(token)
    user_id = payload.get("sub")
    token_type = payload.get("type")

    if user_id is None or token_type != "access":
        raise credentials_exception

    try:
        return int(user_id)
    except (TypeError, ValueError):
        raise credentials_exception
