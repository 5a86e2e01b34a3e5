from datetime import timedelta
from typing import Optional
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from linker.analytics import AnalyticsRecorder
from linker.config import settings
from linker.credentials import CredentialValidator, Identity, session_only, session_or_api_key
from linker.database import get_db
from linker.rate_limit import RateLimiter
from linker.storage import ObjectStore
from linker.utils import extract_client_info, get_client_ip

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/v1/auth/token", auto_error=False)

def credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Недействительные учетные данные",
        headers={"WWW-Authenticate": "Bearer"},
    )

def get_session_validator() -> CredentialValidator:
    return session_only()

def get_credential_validator() -> CredentialValidator:
    return session_or_api_key()

async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    validator: CredentialValidator = Depends(get_session_validator),
    db: Session = Depends(get_db)
) -> Identity:
    """Пользователь по токену сессии"""
    identity = validator.validate(token, db)
    if identity is None:
        raise credentials_exception()
    return identity

async def get_current_identity(
    token: Optional[str] = Depends(oauth2_scheme),
    validator: CredentialValidator = Depends(get_credential_validator),
    db: Session = Depends(get_db)
) -> Identity:
    """Пользователь по токену сессии или API-ключу"""
    identity = validator.validate(token, db)
    if identity is None:
        raise credentials_exception()
    return identity

async def get_client_info(request: Request):
    """Получает информацию о клиенте из запроса"""
    return extract_client_info(request)

def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter

def get_object_store(request: Request) -> Optional[ObjectStore]:
    return getattr(request.app.state, "object_store", None)

def get_analytics_recorder(db: Session = Depends(get_db)) -> AnalyticsRecorder:
    return AnalyticsRecorder(db, enabled=settings.ANALYTICS)

async def limit_uploads(
    request: Request,
    identity: Identity = Depends(get_current_identity),
    limiter: RateLimiter = Depends(get_rate_limiter)
) -> None:
    """Не более UPLOAD_RATE_LIMIT загрузок за окно с одного IP"""
    client_ip = get_client_ip(request) or "unknown"
    window = timedelta(seconds=settings.UPLOAD_RATE_WINDOW)

    if not limiter.admit(client_ip, settings.UPLOAD_RATE_LIMIT, window):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Слишком много загрузок. Попробуйте позже."
        )
