import logging
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.concurrency import run_in_threadpool
from passlib.context import CryptContext
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from config import settings
from database import get_db, Role, User
from errors import PersistenceError
from schemas import (
    LoginResponse,
    SessionUser,
    UserCreate,
    UserEnvelope,
    UserLogin,
    UserOut,
    UserUpdate,
)

logger = logging.getLogger(__name__)

auth_router = APIRouter()
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(user: User) -> str:
    expire = datetime.now(timezone.utc) + timedelta(
        hours=settings.access_token_expire_hours
    )
    to_encode = {
        "userId": user.id,
        "username": user.username,
        "role": user.role.name,
        "exp": expire,
    }
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def _get_user_or_404(db: Session, user_id: int) -> User:
    user = (
        db.query(User)
        .options(joinedload(User.role))
        .filter(User.id == user_id)
        .first()
    )
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def _require_role(db: Session, role_id: int):
    if db.get(Role, role_id) is None:
        raise HTTPException(status_code=404, detail=f"Role {role_id} not found")


@auth_router.post(
    "/users", response_model=UserEnvelope, status_code=status.HTTP_201_CREATED
)
async def create_user(user: UserCreate, db: Session = Depends(get_db)):
    if not user.username or not user.password or user.role_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing required fields: username, password, role_id",
        )

    db_user = db.query(User).filter(User.username == user.username).first()
    if db_user:
        raise HTTPException(status_code=409, detail="Username already exists")
    _require_role(db, user.role_id)

    new_user = User(
        username=user.username,
        password=await run_in_threadpool(hash_password, user.password),
        role_id=user.role_id,
        purok=user.purok or None,
    )
    db.add(new_user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Username already exists")
    db.refresh(new_user)

    logger.info("Created user %s (%s)", new_user.id, new_user.username)
    return {"success": True, "user": new_user}


@auth_router.get("/users", response_model=list[UserOut])
async def get_users(db: Session = Depends(get_db)):
    return db.query(User).options(joinedload(User.role)).order_by(User.username).all()


@auth_router.get("/users/{user_id}", response_model=UserOut)
async def get_user(user_id: int, db: Session = Depends(get_db)):
    return _get_user_or_404(db, user_id)


@auth_router.put("/users/{user_id}", response_model=UserEnvelope)
async def update_user(user_id: int, user: UserUpdate, db: Session = Depends(get_db)):
    db_user = _get_user_or_404(db, user_id)

    if user.username:
        db_user.username = user.username
    if user.role_id is not None:
        _require_role(db, user.role_id)
        db_user.role_id = user.role_id
    if "purok" in user.model_fields_set:
        db_user.purok = user.purok
    if user.password:
        db_user.password = await run_in_threadpool(hash_password, user.password)

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Username already exists")
    db.refresh(db_user)
    return {"success": True, "user": db_user}


@auth_router.delete("/users/{user_id}")
async def delete_user(user_id: int, db: Session = Depends(get_db)):
    db_user = _get_user_or_404(db, user_id)
    db.delete(db_user)
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Deleting user %s failed", user_id)
        raise PersistenceError("Failed to delete user") from exc
    logger.info("Deleted user %s", user_id)
    return {"success": True, "message": "User deleted successfully"}


@auth_router.post("/login", response_model=LoginResponse)
async def login(user: UserLogin, db: Session = Depends(get_db)):
    if not user.username or not user.password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Username and password are required",
        )

    db_user = (
        db.query(User)
        .options(joinedload(User.role))
        .filter(User.username == user.username)
        .first()
    )
    if not db_user or not await run_in_threadpool(
        verify_password, user.password, db_user.password
    ):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    token = create_access_token(db_user)
    return LoginResponse(
        token=token,
        user=SessionUser(
            id=db_user.id,
            username=db_user.username,
            role=db_user.role.name,
            purok=db_user.purok,
        ),
    )
