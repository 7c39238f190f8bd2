"""
User service — profile CRUD, username search and follow counts.

The stored password hash never leaves this module: every serialiser
omits it, and search results additionally blank the email address.
Uniqueness on create is left to the database (the router maps the
``IntegrityError``); on update it is checked here so the caller gets a
specific message for a taken username or email.
"""
import logging

import bcrypt
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.exceptions import ConflictError, ResourceNotFoundError
from app.models import Follow, User
from app.schemas import UserCreate, UserUpdate

logger = logging.getLogger(__name__)

# Fields copied verbatim from a sparse update when present.
_PLAIN_UPDATE_FIELDS = ("bio", "role", "full_name", "specializations")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("ascii")


def _user_to_dict(user: User, include_email: bool = True) -> dict:
    """Serialise a User ORM instance; the password hash is never included."""
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email if include_email else None,
        "full_name": user.full_name,
        "bio": user.bio,
        "role": user.role,
        "specializations": list(user.specializations or []),
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


async def _load_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise ResourceNotFoundError("User", "id", user_id)
    return user


async def _find_by(db: AsyncSession, column, value) -> User | None:
    result = await db.execute(select(User).where(column == value))
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def create_user(db: AsyncSession, data: UserCreate) -> dict:
    """
    Create a new user and return its serialised dict.

    Username and email uniqueness is enforced by the database; the
    ``IntegrityError`` surfaces on flush.
    """
    user = User(
        username=data.username,
        email=data.email,
        password_hash=hash_password(data.password),
        full_name=data.full_name,
        bio=data.bio,
        role=data.role,
        specializations=list(data.specializations),
    )
    db.add(user)
    await db.flush()
    logger.info("Created user id=%s username=%s", user.id, user.username)
    return _user_to_dict(user)


async def search_users(db: AsyncSession, query: str) -> list[dict]:
    """
    Case-insensitive substring search on username (used for @mentions).

    Every match is returned; an empty fragment matches all users.  Results
    carry no email and no password.
    """
    q = (
        select(User)
        .where(User.username.icontains(query, autoescape=True))
        .order_by(User.username)
    )
    result = await db.execute(q)
    return [_user_to_dict(u, include_email=False) for u in result.scalars().all()]


async def get_users(db: AsyncSession) -> list[dict]:
    """Return all users ordered by id."""
    result = await db.execute(select(User).order_by(User.id))
    return [_user_to_dict(u) for u in result.scalars().all()]


async def get_user(db: AsyncSession, user_id: int) -> dict:
    return _user_to_dict(await _load_user(db, user_id))


async def get_user_by_username(db: AsyncSession, username: str) -> dict:
    user = await _find_by(db, User.username, username)
    if user is None:
        raise ResourceNotFoundError("User", "username", username)
    return _user_to_dict(user)


async def update_user(db: AsyncSession, user_id: int, data: UserUpdate) -> dict:
    """
    Apply a sparse profile update and return the saved user.

    Only non-null fields are applied.  A username or email change that
    collides with a *different* user raises ``ConflictError`` before
    anything is modified, so a rejected update leaves the row untouched.
    """
    user = await _load_user(db, user_id)
    changes = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}

    new_username = changes.get("username")
    if new_username is not None and new_username != user.username:
        if await _find_by(db, User.username, new_username) is not None:
            raise ConflictError("Username is already taken")
    else:
        changes.pop("username", None)

    new_email = changes.get("email")
    if new_email is not None and new_email != user.email:
        if await _find_by(db, User.email, new_email) is not None:
            raise ConflictError("Email is already registered")
    else:
        changes.pop("email", None)

    if "username" in changes:
        user.username = changes["username"]
    if "email" in changes:
        user.email = changes["email"]
    if "password" in changes:
        user.password_hash = hash_password(changes["password"])
    for field in _PLAIN_UPDATE_FIELDS:
        if field in changes:
            setattr(user, field, changes[field])

    try:
        await db.flush()
    except IntegrityError:
        # A concurrent update claimed the username or email after our check.
        raise ConflictError("Username or email is already taken")
    logger.info("Updated user id=%s fields=%s", user.id, sorted(changes))
    return _user_to_dict(user)


async def get_user_counts(db: AsyncSession, user_id: int) -> dict:
    """Follower / following edge counts; an unknown id simply yields zeros."""
    followers = (
        await db.execute(
            select(func.count()).select_from(Follow).where(Follow.followed_id == user_id)
        )
    ).scalar_one()
    following = (
        await db.execute(
            select(func.count()).select_from(Follow).where(Follow.follower_id == user_id)
        )
    ).scalar_one()
    return {"followers": followers, "following": following}
