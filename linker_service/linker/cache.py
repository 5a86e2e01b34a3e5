import logging
import orjson
import redis
from typing import Optional, Tuple
from linker.config import settings

logger = logging.getLogger(__name__)

redis_client = redis.Redis(
    host=settings.REDIS_HOST,
    port=settings.REDIS_PORT,
    db=settings.REDIS_DB,
    decode_responses=True,
    socket_timeout=1.0,
    socket_connect_timeout=1.0
)

RESOLUTION_CACHE_PREFIX = "code:"  # short_code -> {"kind": ..., "id": ...}

def get_resolution_cache_key(short_code: str) -> str:
    """Формирует ключ кеша для короткого кода"""
    return f"{RESOLUTION_CACHE_PREFIX}{short_code}"

def get_cached_resolution(short_code: str) -> Optional[Tuple[str, str]]:
    """Возвращает (тип ресурса, id) из кеша или None.

    Любая ошибка Redis или поврежденная запись считается промахом.
    """
    try:
        raw = redis_client.get(get_resolution_cache_key(short_code))
    except redis.RedisError:
        logger.warning("Кеш недоступен при чтении кода %s", short_code, exc_info=True)
        return None

    if not raw:
        return None

    try:
        data = orjson.loads(raw)
        return data["kind"], data["id"]
    except (ValueError, KeyError, TypeError):
        logger.warning("Поврежденная запись кеша для кода %s", short_code)
        invalidate_resolutions(short_code)
        return None

def cache_resolution(short_code: str, kind: str, resource_id: str, expire: Optional[int] = None) -> None:
    """Кеширует результат разрешения короткого кода"""
    payload = orjson.dumps({"kind": kind, "id": resource_id})
    try:
        redis_client.set(get_resolution_cache_key(short_code), payload, ex=expire or settings.CACHE_EXPIRY)
    except redis.RedisError:
        logger.warning("Кеш недоступен при записи кода %s", short_code, exc_info=True)

def invalidate_resolutions(*short_codes: str) -> None:
    """Инвалидирует кеш при удалении ресурса"""
    keys = [get_resolution_cache_key(code) for code in short_codes]

    if not keys:
        return

    try:
        redis_client.delete(*keys)
    except redis.RedisError:
        logger.warning("Кеш недоступен при инвалидации %d кодов", len(keys), exc_info=True)
