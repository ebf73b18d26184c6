import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from filevault.config import Settings
from filevault.core.deps import get_app_settings
from filevault.core.rbac import require_admin, require_user
from filevault.core.security import create_access_token, hash_password, verify_password
from filevault.database import commit_or_fail, get_async_session, record_store_call
from filevault.models.user import Role, User
from filevault.schemas.user import (
    AdminChangePasswordRequest,
    AdminChangeUsernameRequest,
    ChangePasswordRequest,
    ChangeUsernameRequest,
    ChangeUsernameResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RegisterUserRequest,
    UserRead,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/auth",
    tags=["Auth"]
)


async def _username_taken(session: AsyncSession, username: str, exclude_id: uuid.UUID | None = None) -> bool:
    query = select(User.id).where(User.username == username)
    if exclude_id is not None:
        query = query.where(User.id != exclude_id)
    with record_store_call("user lookup"):
        result = await session.execute(query)
        return result.first() is not None


async def _get_user_or_404(session: AsyncSession, user_id: uuid.UUID) -> User:
    with record_store_call("user lookup"):
        user = await session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


async def _authenticate(session: AsyncSession, username: str, password: str) -> User:
    with record_store_call("user lookup"):
        result = await session.execute(select(User).where(User.username == username))
        user = result.scalar_one_or_none()

    if not user or not verify_password(password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid username or password")
    return user


@router.post("/login", response_model=LoginResponse)
async def login(
    credentials: LoginRequest,
    settings: Settings = Depends(get_app_settings),
    session: AsyncSession = Depends(get_async_session),
):
    user = await _authenticate(session, credentials.username, credentials.password)
    token = create_access_token(user, settings)
    return LoginResponse(token=token, username=user.username, role=user.role)


# form login for the OAuth2 "Authorize" flow of the docs UI
@router.post("/token")
async def login_form(
    form_data: OAuth2PasswordRequestForm = Depends(),
    settings: Settings = Depends(get_app_settings),
    session: AsyncSession = Depends(get_async_session),
):
    user = await _authenticate(session, form_data.username, form_data.password)
    return {"access_token": create_access_token(user, settings), "token_type": "bearer"}


@router.post("/register", response_model=UserRead, status_code=status.HTTP_201_CREATED)
async def register(
    user_data: RegisterUserRequest,
    session: AsyncSession = Depends(get_async_session),
    admin: User = Depends(require_admin),
):
    if await _username_taken(session, user_data.username):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username already exists")

    # "admin" and " Admin " are accepted as ADMIN
    try:
        role = Role.parse(user_data.role)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid role specified")

    new_user = User(
        username=user_data.username,
        hashed_password=hash_password(user_data.password),
        role=role,
    )
    session.add(new_user)
    await commit_or_fail(session, "user insert")
    with record_store_call("user insert"):
        await session.refresh(new_user)

    logger.info("New user registered: %s with role %s", new_user.username, role.value)
    return new_user


@router.post("/register-admin", response_model=UserRead, status_code=status.HTTP_201_CREATED)
async def register_initial_admin(
    user_data: RegisterUserRequest,
    settings: Settings = Depends(get_app_settings),
    session: AsyncSession = Depends(get_async_session),
):
    if not settings.is_development:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")

    with record_store_call("user count"):
        user_count = await session.scalar(select(func.count()).select_from(User))
    if user_count:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Initial admin can only be created when no users exist",
        )

    # role in the payload is ignored
    admin = User(
        username=user_data.username,
        hashed_password=hash_password(user_data.password),
        role=Role.ADMIN,
    )
    session.add(admin)
    await commit_or_fail(session, "user insert")
    with record_store_call("user insert"):
        await session.refresh(admin)

    logger.info("Initial admin user created: %s", admin.username)
    return admin


@router.get("/users", response_model=list[UserRead])
async def list_users(
    session: AsyncSession = Depends(get_async_session),
    admin: User = Depends(require_admin),
):
    with record_store_call("user list"):
        result = await session.execute(select(User).order_by(User.username))
        return result.scalars().all()


@router.get("/me", response_model=UserRead)
async def read_me(current_user: User = Depends(require_user)):
    return current_user


@router.delete("/users/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: uuid.UUID,
    session: AsyncSession = Depends(get_async_session),
    admin: User = Depends(require_admin),
):
    user = await _get_user_or_404(session, user_id)

    if user.role is Role.ADMIN:
        with record_store_call("user count"):
            admin_count = await session.scalar(select(func.count()).select_from(User).where(User.role == Role.ADMIN))
        if admin_count <= 1:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot delete the last admin user")

    with record_store_call("user delete"):
        await session.delete(user)
    await commit_or_fail(session, "user delete")

    logger.info("User deleted: %s (ID: %s)", user.username, user.id)
    return MessageResponse(message="User deleted successfully")


@router.put("/change-password", response_model=MessageResponse)
async def change_password(
    payload: ChangePasswordRequest,
    session: AsyncSession = Depends(get_async_session),
    current_user: User = Depends(require_user),
):
    if not verify_password(payload.current_password, current_user.hashed_password):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Current password is incorrect")

    current_user.hashed_password = hash_password(payload.new_password)
    await commit_or_fail(session, "user update")

    logger.info("Password changed for user: %s", current_user.username)
    return MessageResponse(message="Password changed successfully")


@router.put("/change-username", response_model=ChangeUsernameResponse)
async def change_username(
    payload: ChangeUsernameRequest,
    settings: Settings = Depends(get_app_settings),
    session: AsyncSession = Depends(get_async_session),
    current_user: User = Depends(require_user),
):
    if await _username_taken(session, payload.new_username, exclude_id=current_user.id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username is already taken")

    old_username = current_user.username
    current_user.username = payload.new_username
    await commit_or_fail(session, "user update")

    logger.info("Username changed for user ID %s from %s to %s", current_user.id, old_username, current_user.username)

    # the old token still carries the old name
    return ChangeUsernameResponse(
        message="Username changed successfully",
        new_token=create_access_token(current_user, settings),
    )


@router.put("/admin/change-password", response_model=MessageResponse)
async def admin_change_password(
    payload: AdminChangePasswordRequest,
    session: AsyncSession = Depends(get_async_session),
    admin: User = Depends(require_admin),
):
    user = await _get_user_or_404(session, payload.user_id)
    user.hashed_password = hash_password(payload.new_password)
    await commit_or_fail(session, "user update")

    logger.info("Admin %s changed password for user: %s", admin.id, user.username)
    return MessageResponse(message="Password changed successfully")


@router.put("/admin/change-username", response_model=MessageResponse)
async def admin_change_username(
    payload: AdminChangeUsernameRequest,
    session: AsyncSession = Depends(get_async_session),
    admin: User = Depends(require_admin),
):
    user = await _get_user_or_404(session, payload.user_id)
    if await _username_taken(session, payload.new_username, exclude_id=user.id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username is already taken")

    old_username = user.username
    user.username = payload.new_username
    await commit_or_fail(session, "user update")

    logger.info("Admin %s changed username for user %s from %s to %s", admin.id, user.id, old_username, user.username)
    return MessageResponse(message="Username changed successfully")
