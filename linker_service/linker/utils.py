import hashlib
import logging
import random
import secrets
import string
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import jwt
from passlib.context import CryptContext
from linker.config import settings

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def generate_short_code(length: int = settings.DEFAULT_SHORT_CODE_LENGTH, prefix: str = "") -> str:
    """Генерирует случайный короткий код указанной длины"""
    chars = string.ascii_letters + string.digits
    return prefix + ''.join(random.choice(chars) for _ in range(length))

def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Проверяет соответствие пароля хешу; нераспознанный хеш не совпадает"""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        logger.warning("Не удалось распознать хеш пароля")
        return False

def get_password_hash(password: str) -> str:
    """Хеширует пароль"""
    return pwd_context.hash(password)

def create_session_token(
    user_id: str,
    username: str,
    secret: Optional[str] = None,
    now: Optional[datetime] = None,
    expires_delta: Optional[timedelta] = None
) -> str:
    """Создает подписанный JWT токен сессии"""
    issued_at = now or utcnow()
    expire = issued_at + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))

    claims = {
        "sub": user_id,
        "username": username,
        "iat": int(issued_at.timestamp()),
        "nbf": int(issued_at.timestamp()),
        "exp": int(expire.timestamp()),
        "iss": settings.TOKEN_ISSUER,
    }
    return jwt.encode(claims, secret or settings.SECRET_KEY, algorithm=settings.ALGORITHM)

def generate_api_key() -> str:
    """Генерирует API-ключ: 32 случайных байта в hex"""
    return secrets.token_hex(32)

def hash_api_key(api_key: str) -> str:
    """Детерминированный хеш API-ключа для хранения и поиска"""
    return hashlib.sha256(api_key.encode("utf-8")).hexdigest()

def generate_unique_filename(original_filename: str) -> str:
    return f"{secrets.token_hex(8)}_{original_filename}"

def build_short_url(short_code: str, prefix: str = settings.LINK_PREFIX) -> str:
    """Создает полный короткий URL с базовым URL приложения"""
    return f"{settings.BASE_URL}/{prefix}/{short_code}"

def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite возвращает наивные datetime, хранятся они в UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value

def is_expired(expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """Проверяет, истек ли срок действия ресурса"""
    if not expires_at:
        return False

    return as_utc(now or utcnow()) > as_utc(expires_at)

def get_client_ip(request) -> Optional[str]:
    """Определяет IP клиента с учетом прокси-заголовков"""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    return request.client.host if request.client else None

def extract_client_info(request) -> dict:
    """Извлекает информацию о клиенте из запроса"""
    return {
        "ip_address": get_client_ip(request),
        "user_agent": request.headers.get("user-agent"),
        "referer": request.headers.get("referer"),
        "timestamp": utcnow()
    }

@contextmanager
def best_effort(operation: str, db=None):
    """Выполняет побочную операцию, не пропуская ошибки наружу.

    Ошибка логируется, открытая транзакция откатывается. При успехе
    изменения фиксируются отдельным коммитом.
    """
    try:
        yield
        if db is not None:
            db.commit()
    except Exception:
        if db is not None:
            db.rollback()
        logger.warning("Не удалось выполнить операцию: %s", operation, exc_info=True)
