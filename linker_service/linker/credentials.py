"""Проверка bearer-учетных данных: токенов сессии и API-ключей.

Валидаторы выстраиваются в цепочку и опрашиваются по порядку до первого
успеха. Любая неудача (битый токен, чужая подпись, истекший срок,
неизвестный ключ) сводится к одному результату ``None``.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from linker.config import settings
from linker.models import APIToken, User
from linker.utils import utcnow, hash_api_key, is_expired, best_effort

logger = logging.getLogger(__name__)

class CredentialKind(str, Enum):
    SESSION = "session"
    API_KEY = "api_key"

@dataclass(frozen=True)
class Identity:
    user_id: str
    username: str
    kind: CredentialKind

class SessionTokenValidator:
    """Проверяет подпись и срок действия JWT без обращения к хранилищу"""

    def __init__(self, secret: str, algorithm: str = settings.ALGORITHM, issuer: str = settings.TOKEN_ISSUER):
        self.secret = secret
        self.algorithm = algorithm
        self.issuer = issuer

    def validate(self, token: str, db: Optional[Session] = None, now: Optional[datetime] = None) -> Optional[Identity]:
        try:
            # Время проверяется ниже относительно переданного now
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                options={"verify_exp": False, "verify_nbf": False, "verify_iat": False}
            )
        except (JWTError, ValueError, TypeError, AttributeError):
            return None

        user_id = payload.get("sub")
        username = payload.get("username")
        expires = payload.get("exp")
        not_before = payload.get("nbf", payload.get("iat"))

        if not user_id or not username or not isinstance(expires, (int, float)):
            return None

        timestamp = (now or utcnow()).timestamp()
        if timestamp >= expires:
            return None
        if isinstance(not_before, (int, float)) and timestamp < not_before:
            return None

        return Identity(user_id=user_id, username=username, kind=CredentialKind.SESSION)

class APIKeyValidator:
    """Ищет API-ключ по SHA-256 хешу и обновляет время последнего использования"""

    def validate(self, token: str, db: Optional[Session] = None, now: Optional[datetime] = None) -> Optional[Identity]:
        if db is None or not token:
            return None

        now = now or utcnow()
        api_token = db.query(APIToken).filter(APIToken.token_hash == hash_api_key(token)).first()
        if api_token is None or is_expired(api_token.expires_at, now):
            return None

        user = db.query(User).filter(User.id == api_token.user_id).first()
        if user is None:
            return None

        identity = Identity(user_id=user.id, username=user.username, kind=CredentialKind.API_KEY)

        with best_effort("обновление last_used_at API-ключа", db):
            api_token.last_used_at = now

        return identity

class CredentialValidator:
    """Упорядоченная цепочка валидаторов"""

    def __init__(self, validators: Iterable):
        self.validators: List = list(validators)

    def validate(self, token: Optional[str], db: Optional[Session] = None, now: Optional[datetime] = None) -> Optional[Identity]:
        if not token:
            return None

        for validator in self.validators:
            identity = validator.validate(token, db, now)
            if identity is not None:
                return identity

        logger.debug("Учетные данные отклонены")
        return None

def session_only(secret: str = None) -> CredentialValidator:
    return CredentialValidator([SessionTokenValidator(secret or settings.SECRET_KEY)])

def session_or_api_key(secret: str = None) -> CredentialValidator:
    return CredentialValidator([SessionTokenValidator(secret or settings.SECRET_KEY), APIKeyValidator()])
