"""User registration, login and profile routes."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from models import User
from schemas import UserCreate, UserResponse, TokenResponse
from auth import create_access_token
from deps import get_db, get_current_user
from settings_service import get_or_create_settings

router = APIRouter(prefix="/api/users", tags=["users"])


def _token_for(user: User) -> TokenResponse:
    token = create_access_token(data={"sub": user.username, "user_id": user.id})
    return TokenResponse(access_token=token, user=UserResponse.model_validate(user))


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register_user(user_data: UserCreate, db: Session = Depends(get_db)):
    username = user_data.username.strip()
    if not username:
        raise HTTPException(status_code=400, detail="Username is required")
    existing = db.query(User).filter(User.username == username).first()
    if existing:
        raise HTTPException(status_code=400, detail="Username already exists")

    db_user = User(username=username)
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    get_or_create_settings(db, db_user.id)
    return _token_for(db_user)


@router.post("/login", response_model=TokenResponse)
async def login_user(user_data: UserCreate, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.username == user_data.username.strip()).first()
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return _token_for(user)


@router.get("/me", response_model=UserResponse)
async def get_me(user: User = Depends(get_current_user)):
    return UserResponse.model_validate(user)
