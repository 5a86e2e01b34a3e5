"""Политика доступа к разрешенным ресурсам.

Проверки выполняются по порядку, первая сработавшая определяет итог:

1. истек срок действия -> DENY(EXPIRED);
2. ссылка -> ALLOW;
3. публичный файл -> ALLOW;
4. приватный файл без пароля -> DENY(PRIVATE_NO_PASSWORD);
5. приватный файл с паролем, пароль не передан -> CHALLENGE;
6. пароль передан -> ALLOW при совпадении, иначе DENY(BAD_PASSWORD).

Политика ничего не изменяет; счетчики и аналитику обновляет вызывающий
код и только при ALLOW.
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from linker.resolver import ResolvedResource, ResourceKind
from linker.utils import is_expired, verify_password

class Outcome(str, Enum):
    ALLOW = "allow"
    DENY = "deny"
    CHALLENGE = "challenge"

class DenyReason(str, Enum):
    EXPIRED = "expired"
    PRIVATE_NO_PASSWORD = "private_no_password"
    BAD_PASSWORD = "bad_password"

@dataclass(frozen=True)
class AccessDecision:
    outcome: Outcome
    reason: Optional[DenyReason] = None

    @property
    def allowed(self) -> bool:
        return self.outcome is Outcome.ALLOW

    @classmethod
    def deny(cls, reason: DenyReason) -> "AccessDecision":
        return cls(Outcome.DENY, reason)

ALLOW = AccessDecision(Outcome.ALLOW)
CHALLENGE_PASSWORD = AccessDecision(Outcome.CHALLENGE)

def evaluate(resource: ResolvedResource, now: datetime, password: Optional[str] = None) -> AccessDecision:
    """Решает, можно ли отдать ресурс вызывающему"""
    record = resource.record

    if is_expired(record.expires_at, now):
        return AccessDecision.deny(DenyReason.EXPIRED)

    if resource.kind is ResourceKind.LINK:
        return ALLOW

    if record.is_public:
        return ALLOW

    if not record.hashed_password:
        return AccessDecision.deny(DenyReason.PRIVATE_NO_PASSWORD)

    if not password:
        return CHALLENGE_PASSWORD

    if verify_password(password, record.hashed_password):
        return ALLOW

    return AccessDecision.deny(DenyReason.BAD_PASSWORD)
