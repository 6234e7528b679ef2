from fastapi import Header, HTTPException, status
from sqlalchemy.orm import Session

from packages.core.auth import verify_admin_token
from packages.db import SessionLocal


def get_db() -> Session:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def require_admin(
    authorization: str = Header(default=None, alias="Authorization"),
) -> str:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token"
        )
    token = authorization.split(" ", 1)[1].strip()
    if not verify_admin_token(token):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token"
        )
    return token
