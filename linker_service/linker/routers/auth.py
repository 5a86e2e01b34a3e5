import logging
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError

from linker.database import get_db
from linker.models import User
from linker.schemas import UserCreate, UserLogin, UserResponse, AuthResponse, Token, Profile
from linker.utils import get_password_hash, verify_password, create_session_token
from linker.dependencies import get_current_user
from linker.credentials import Identity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])

def authenticate_user(db: Session, username: str, password: str):
    user = db.query(User).filter(User.username == username).first()
    if not user or not verify_password(password, user.hashed_password):
        return None
    return user

def auth_response(user: User) -> AuthResponse:
    return AuthResponse(
        token=create_session_token(user.id, user.username),
        user=UserResponse.model_validate(user)
    )

# Регистрация
@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(user_data: UserCreate, db: Session = Depends(get_db)):
    """Регистрирует пользователя и сразу выдает токен сессии"""
    existing = db.query(User).filter(
        (User.username == user_data.username) | (User.email == user_data.email)
    ).first()

    if existing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Пользователь с таким именем или email уже существует"
        )

    user = User(
        username=user_data.username,
        email=user_data.email,
        hashed_password=get_password_hash(user_data.password)
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Пользователь с таким именем или email уже существует"
        )
    db.refresh(user)

    logger.info("Зарегистрирован пользователь %s", user.username)
    return auth_response(user)

# Вход по JSON
@router.post("/login", response_model=AuthResponse)
async def login(credentials: UserLogin, db: Session = Depends(get_db)):
    user = authenticate_user(db, credentials.username, credentials.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Неверное имя пользователя или пароль",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return auth_response(user)

# Вход через форму OAuth2 (для Swagger UI)
@router.post("/token", response_model=Token)
async def login_for_access_token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db)
):
    user = authenticate_user(db, form_data.username, form_data.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Неверное имя пользователя или пароль",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return {"access_token": create_session_token(user.id, user.username), "token_type": "bearer"}

@router.get("/profile", response_model=Profile)
async def profile(identity: Identity = Depends(get_current_user)):
    """Профиль текущего пользователя"""
    return Profile(id=identity.user_id, username=identity.username)
