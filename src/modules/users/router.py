"""User routes."""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database import get_db
from src.core.exceptions import NotFoundError, ValidationError
from src.modules.users.models import User
from src.modules.users.schemas import UserCreate, UserPublic, UserUpdate

router = APIRouter(prefix="/api/v1/users", tags=["users"])


async def _get_user(user_id: str, db: AsyncSession) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


@router.post("", response_model=UserPublic, status_code=status.HTTP_201_CREATED)
async def create_user(payload: UserCreate, db: AsyncSession = Depends(get_db)) -> User:
    user = User(**payload.model_dump())
    db.add(user)
    await db.commit()
    return user


@router.get("/{user_id}", response_model=UserPublic)
async def get_user(user_id: str, db: AsyncSession = Depends(get_db)) -> User:
    return await _get_user(user_id, db)


@router.patch("/{user_id}", response_model=UserPublic)
async def update_user(
    user_id: str,
    payload: UserUpdate,
    db: AsyncSession = Depends(get_db),
) -> User:
    user = await _get_user(user_id, db)
    update_data = payload.model_dump(exclude_unset=True)
    if "display_name" in update_data and update_data["display_name"] is not None:
        cleaned = update_data["display_name"].strip()
        if not cleaned:
            raise ValidationError("display_name cannot be empty")
        update_data["display_name"] = cleaned
    for key, value in update_data.items():
        setattr(user, key, value)
    if update_data:
        await db.commit()
    return user


@router.post("/{user_id}/activity", response_model=UserPublic)
async def record_activity(
    user_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> User:
    """Mark the user as active now; reminders that require recent activity read this."""
    user = await _get_user(user_id, db)
    user.last_active_at = request.app.state.clock.now()
    await db.commit()
    return user
