import uuid

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from filevault.config import Settings
from filevault.database import get_async_session, record_store_call
from filevault.models.user import User
from filevault.core.security import decode_token
from filevault.storage.s3 import S3Storage

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token")

def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings

def get_storage(request: Request) -> S3Storage:
    return request.app.state.storage

async def get_current_user(
        token: str = Depends(oauth2_scheme),
        settings: Settings = Depends(get_app_settings),
        session: AsyncSession = Depends(get_async_session)
) -> User:
    payload = decode_token(token, settings)
    if not payload:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    try:
        user_id = uuid.UUID(payload.get("sub") or "")
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")

    with record_store_call("user lookup"):
        user = await session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")

    return user
