from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from app.database import get_db
from app.exceptions import ResourceNotFoundError
from app.schemas import UserCounts, UserCreate, UserResponse, UserUpdate
from app.services import follow_service, user_service

router = APIRouter(prefix="/api/users", tags=["users"])

@router.post("", status_code=201, response_model=UserResponse)
async def create_user(data: UserCreate, db: AsyncSession = Depends(get_db)):
    try:
        return await user_service.create_user(db, data)
    except IntegrityError:
        raise HTTPException(
            status_code=409,
            detail="A user with this username or email already exists",
        )

# Declared before "/{user_id}" so "search" is not parsed as an id.
@router.get("/search", response_model=list[UserResponse])
async def search_users(query: str = Query(...), db: AsyncSession = Depends(get_db)):
    return await user_service.search_users(db, query)

@router.get("", response_model=list[UserResponse])
async def list_users(db: AsyncSession = Depends(get_db)):
    return await user_service.get_users(db)

@router.get("/username/{username}", response_model=UserResponse)
async def get_user_by_username(username: str, db: AsyncSession = Depends(get_db)):
    return await user_service.get_user_by_username(db, username)

@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: int, db: AsyncSession = Depends(get_db)):
    return await user_service.get_user(db, user_id)

@router.put("/{user_id}", response_model=UserResponse)
async def update_user(user_id: int, data: UserUpdate, db: AsyncSession = Depends(get_db)):
    return await user_service.update_user(db, user_id, data)

@router.get("/{user_id}/counts", response_model=UserCounts)
async def get_user_counts(user_id: int, db: AsyncSession = Depends(get_db)):
    return await user_service.get_user_counts(db, user_id)

@router.post("/{user_id}/following/{target_id}", status_code=201)
async def follow_user(user_id: int, target_id: int, db: AsyncSession = Depends(get_db)):
    return await follow_service.follow_user(db, user_id, target_id)

@router.delete("/{user_id}/following/{target_id}", status_code=204)
async def unfollow_user(user_id: int, target_id: int, db: AsyncSession = Depends(get_db)):
    if not await follow_service.unfollow_user(db, user_id, target_id):
        raise ResourceNotFoundError("Follow", "followed_id", target_id)
    return Response(status_code=204)
