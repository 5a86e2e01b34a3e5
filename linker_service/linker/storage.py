"""S3-совместимое хранилище файлов (MinIO клиент).

Каждый вызов хранилища ограничен таймаутом: блокирующий вызов клиента
выполняется в отдельном потоке под ``asyncio.wait_for``.
"""
import asyncio
import logging
import mimetypes
import os
import uuid
from dataclasses import dataclass
from typing import BinaryIO, Iterator, List, Optional
from minio import Minio

from linker.utils import utcnow

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"
CHUNK_SIZE = 64 * 1024

class StorageError(Exception):
    """Ошибка обращения к хранилищу"""

class UploadRejected(StorageError):
    """Файл не прошел проверку размера или типа"""

@dataclass
class UploadResult:
    key: str
    size: int
    mime_type: str

def get_file_extension(filename: str) -> str:
    return os.path.splitext(filename or "")[1].lower()

def guess_mime_type(filename: str) -> str:
    mime_type, _ = mimetypes.guess_type(filename or "")
    return mime_type or DEFAULT_MIME_TYPE

def is_mime_type_allowed(mime_type: str, allowed: List[str]) -> bool:
    """Проверяет MIME-тип по списку; поддерживаются шаблоны вида image/*"""
    if not allowed:
        return True

    for pattern in allowed:
        if pattern == mime_type:
            return True
        if pattern.endswith("/*") and mime_type.startswith(pattern[:-1]):
            return True
    return False

def generate_object_key(filename: str) -> str:
    return f"{utcnow():%Y/%m/%d}/{uuid.uuid4()}{get_file_extension(filename)}"

def iter_object(response, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    """Отдает тело объекта частями и освобождает соединение по завершении"""
    try:
        yield from response.stream(chunk_size)
    finally:
        response.close()
        response.release_conn()

class ObjectStore:
    def __init__(
        self,
        client,
        bucket: str,
        max_file_size_mb: int = 100,
        allowed_mime_types: Optional[List[str]] = None,
        upload_timeout: float = 30.0,
        download_timeout: float = 30.0,
        delete_timeout: float = 10.0,
        chunk_size: int = CHUNK_SIZE
    ):
        self.client = client
        self.bucket = bucket
        self.max_file_size = max_file_size_mb * 1024 * 1024
        self.allowed_mime_types = allowed_mime_types or []
        self.upload_timeout = upload_timeout
        self.download_timeout = download_timeout
        self.delete_timeout = delete_timeout
        self.chunk_size = chunk_size

    async def _call(self, operation: str, timeout: float, func, *args, **kwargs):
        try:
            return await asyncio.wait_for(asyncio.to_thread(func, *args, **kwargs), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise StorageError(f"Таймаут операции {operation} ({timeout} с)") from e
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Ошибка операции {operation}: {e}") from e

    def _put(self, key: str, stream: BinaryIO, length: int, content_type: str, metadata: Optional[dict]) -> str:
        self.client.put_object(
            self.bucket,
            key,
            stream,
            length=length,
            content_type=content_type,
            metadata=metadata
        )
        return key

    async def put(
        self,
        key: str,
        stream: BinaryIO,
        length: int,
        content_type: str,
        metadata: Optional[dict] = None
    ) -> str:
        return await self._call("put", self.upload_timeout, self._put, key, stream, length, content_type, metadata)

    async def get(self, key: str) -> Iterator[bytes]:
        """Открывает объект; таймаут ограничивает только открытие, тело читается частями"""
        response = await self._call("get", self.download_timeout, self.client.get_object, self.bucket, key)
        return iter_object(response, self.chunk_size)

    async def delete(self, key: str) -> None:
        await self._call("delete", self.delete_timeout, self.client.remove_object, self.bucket, key)

    async def upload(self, filename: str, stream: BinaryIO, size: int, mime_type: str) -> UploadResult:
        """Проверяет файл и загружает его под сгенерированным ключом"""
        if self.max_file_size and size > self.max_file_size:
            raise UploadRejected(
                f"Размер файла {size} байт превышает лимит {self.max_file_size // (1024 * 1024)} МБ"
            )

        if not is_mime_type_allowed(mime_type, self.allowed_mime_types):
            raise UploadRejected(f"MIME-тип {mime_type} не разрешен")

        key = generate_object_key(filename)
        metadata = {
            "original-filename": filename,
            "upload-time": utcnow().isoformat(),
        }
        await self.put(key, stream, size, mime_type, metadata)
        return UploadResult(key=key, size=size, mime_type=mime_type)

def create_object_store(settings) -> Optional[ObjectStore]:
    """Создает хранилище по настройкам.

    Возвращает None, если хранилище выключено или недоступно: загрузка и
    скачивание файлов тогда отвечают 503.
    """
    if not settings.S3_ENABLED:
        logger.info("Хранилище файлов отключено")
        return None

    try:
        client = Minio(
            settings.S3_ENDPOINT,
            access_key=settings.S3_ACCESS_KEY_ID,
            secret_key=settings.S3_SECRET_ACCESS_KEY,
            secure=settings.S3_USE_SSL,
            region=settings.S3_REGION
        )
        if not client.bucket_exists(settings.S3_BUCKET_NAME):
            client.make_bucket(settings.S3_BUCKET_NAME)
    except Exception:
        logger.error("Не удалось инициализировать хранилище файлов", exc_info=True)
        return None

    return ObjectStore(
        client,
        settings.S3_BUCKET_NAME,
        max_file_size_mb=settings.S3_MAX_FILE_SIZE_MB,
        allowed_mime_types=settings.S3_ALLOWED_MIME_TYPES,
        upload_timeout=settings.S3_UPLOAD_TIMEOUT,
        download_timeout=settings.S3_DOWNLOAD_TIMEOUT,
        delete_timeout=settings.S3_DELETE_TIMEOUT
    )
