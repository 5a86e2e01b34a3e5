"""Разрешение коротких кодов в ресурсы (ссылки и файлы).

Ссылки и файлы делят одно пространство коротких кодов: таблица
``short_codes`` ссылается ровно на один ресурс. Разрешение не зависит
от типа ресурса и возвращает помеченный результат.
"""
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Union
from sqlalchemy.orm import Session

from linker.models import ShortCode, Link, File
from linker.cache import get_cached_resolution, cache_resolution, invalidate_resolutions
from linker.utils import generate_short_code

SHORT_CODE_PATTERN = re.compile(r"^[A-Za-z0-9_-]{3,32}$")

MAX_GENERATION_ATTEMPTS = 20

class ResourceKind(str, Enum):
    LINK = "link"
    FILE = "file"

MODELS = {
    ResourceKind.LINK: Link,
    ResourceKind.FILE: File,
}

@dataclass(frozen=True)
class ResolvedResource:
    kind: ResourceKind
    record: Union[Link, File]

    @property
    def resource_id(self) -> str:
        return self.record.id

class ShortCodeConflict(Exception):
    """Короткий код уже занят ссылкой или файлом"""

    def __init__(self, short_code: str):
        super().__init__(f"Короткий код '{short_code}' уже существует")
        self.short_code = short_code

def is_valid_short_code(short_code) -> bool:
    """Проверяет формат короткого кода: 3-32 символа [A-Za-z0-9_-]"""
    return isinstance(short_code, str) and SHORT_CODE_PATTERN.fullmatch(short_code) is not None

def _from_row(row: ShortCode) -> Optional[ResolvedResource]:
    if row.link_id is not None and row.link is not None:
        return ResolvedResource(ResourceKind.LINK, row.link)
    if row.file_id is not None and row.file is not None:
        return ResolvedResource(ResourceKind.FILE, row.file)
    return None

def resolve(db: Session, short_code: str) -> Optional[ResolvedResource]:
    """Находит ресурс по короткому коду.

    Возвращает None, если код не найден или имеет недопустимый формат.
    Это обычный исход, а не ошибка.
    """
    if not is_valid_short_code(short_code):
        return None

    cached = get_cached_resolution(short_code)
    if cached:
        kind, resource_id = cached
        try:
            model = MODELS[ResourceKind(kind)]
        except ValueError:
            model = None
        record = db.get(model, resource_id) if model else None
        if record is not None:
            return ResolvedResource(ResourceKind(kind), record)
        invalidate_resolutions(short_code)

    row = db.query(ShortCode).filter(ShortCode.short_code == short_code).first()
    if row is None:
        return None

    resolved = _from_row(row)
    if resolved is not None:
        cache_resolution(short_code, resolved.kind.value, resolved.resource_id)
    return resolved

def is_short_code_taken(db: Session, short_code: str) -> bool:
    return db.query(ShortCode.id).filter(ShortCode.short_code == short_code).first() is not None

def ensure_short_codes_available(db: Session, short_codes: Iterable[str]) -> None:
    """Проверяет, что коды свободны во всех пространствах имен.

    Вызывается до записи любых строк. Повтор кода внутри одного запроса
    тоже считается конфликтом.
    """
    seen = set()
    for short_code in short_codes:
        if short_code in seen or is_short_code_taken(db, short_code):
            raise ShortCodeConflict(short_code)
        seen.add(short_code)

def generate_available_short_code(db: Session, prefix: str = "") -> str:
    """Генерирует свободный короткий код"""
    for _ in range(MAX_GENERATION_ATTEMPTS):
        short_code = generate_short_code(prefix=prefix)
        if not is_short_code_taken(db, short_code):
            return short_code
    raise RuntimeError("Не удалось сгенерировать свободный короткий код")

def attach_short_codes(record: Union[Link, File], short_codes: Iterable[str]) -> None:
    """Добавляет ресурсу короткие коды; первый становится основным"""
    for index, short_code in enumerate(short_codes):
        record.short_codes.append(ShortCode(short_code=short_code, is_primary=index == 0))
