import logging
import os
from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status, File as FileField, Form, UploadFile
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from linker.config import settings
from linker.database import get_db
from linker.models import File, FileDownload, Domain
from linker.schemas import (
    SharedFileResponse, FileListResponse, FileUpdate, FileAnalytics, AccessEventInfo,
    ShortCodeInfo, Message
)
from linker.utils import build_short_url, generate_unique_filename, get_password_hash
from linker.dependencies import get_current_identity, get_object_store, limit_uploads
from linker.credentials import Identity
from linker.cache import invalidate_resolutions
from linker.storage import ObjectStore, StorageError, UploadRejected, guess_mime_type
from linker.resolver import (
    ShortCodeConflict, ensure_short_codes_available, generate_available_short_code, attach_short_codes,
    is_valid_short_code
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/files", tags=["files"])

FILE_CODE_PREFIX = "f-"

def file_response(file: File) -> SharedFileResponse:
    short_code = file.primary_short_code
    return SharedFileResponse(
        id=file.id,
        short_code=short_code,
        short_url=build_short_url(short_code, settings.FILE_PREFIX) if short_code else None,
        short_codes=[ShortCodeInfo.model_validate(code) for code in file.short_codes],
        domain_id=file.domain_id,
        filename=file.filename,
        original_name=file.original_name,
        mime_type=file.mime_type,
        file_size=file.file_size,
        title=file.title,
        description=file.description,
        downloads=file.downloads,
        analytics=file.analytics,
        is_public=file.is_public,
        password_protected=bool(file.hashed_password),
        expires_at=file.expires_at,
        created_at=file.created_at,
        updated_at=file.updated_at
    )

def get_owned_file(db: Session, file_id: str, user_id: str) -> File:
    file = db.query(File).filter(File.id == file_id, File.user_id == user_id).first()
    if not file:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Файл не найден"
        )
    return file

def bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

def validate_upload_form(
    short_codes: List[str],
    title: Optional[str],
    description: Optional[str],
    password: Optional[str]
) -> None:
    """Проверка полей multipart-формы; ошибки отдаются как 400"""
    for code in short_codes:
        if not is_valid_short_code(code):
            raise bad_request(f"Недопустимый короткий код: {code}")

    if title and len(title) > 255:
        raise bad_request("Заголовок длиннее 255 символов")

    if description and len(description) > 1000:
        raise bad_request("Описание длиннее 1000 символов")

    if password and len(password) < 6:
        raise bad_request("Пароль должен содержать не менее 6 символов")

def upload_size(file: UploadFile) -> int:
    if file.size is not None:
        return file.size

    file.file.seek(0, os.SEEK_END)
    size = file.file.tell()
    file.file.seek(0)
    return size

async def discard_object(store: ObjectStore, key: str) -> None:
    """Удаляет объект из хранилища; ошибка только логируется"""
    try:
        await store.delete(key)
    except StorageError:
        logger.warning("Не удалось удалить объект %s", key, exc_info=True)

# Загрузка файла
@router.post(
    "",
    response_model=SharedFileResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(limit_uploads)]
)
async def upload_file(
    file: UploadFile = FileField(...),
    short_codes: List[str] = Form([]),
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    analytics: bool = Form(False),
    is_public: bool = Form(True),
    password: Optional[str] = Form(None),
    domain_id: Optional[str] = Form(None),
    expires_at: Optional[datetime] = Form(None),
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
    store: Optional[ObjectStore] = Depends(get_object_store)
):
    """Загружает файл в хранилище и создает для него короткие коды"""
    short_codes = [code for code in short_codes if code]
    validate_upload_form(short_codes, title, description, password)

    try:
        if short_codes:
            ensure_short_codes_available(db, short_codes)
        else:
            short_codes = [generate_available_short_code(db, prefix=FILE_CODE_PREFIX)]
    except ShortCodeConflict as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    if domain_id and not db.get(Domain, domain_id):
        raise bad_request("Домен не найден")

    if store is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Хранилище файлов недоступно"
        )

    original_name = file.filename or "file"
    mime_type = file.content_type or guess_mime_type(original_name)

    try:
        uploaded = await store.upload(original_name, file.file, upload_size(file), mime_type)
    except UploadRejected as e:
        raise bad_request(str(e))
    except StorageError:
        logger.error("Ошибка загрузки файла %s в хранилище", original_name, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Не удалось загрузить файл"
        )

    record = File(
        user_id=identity.user_id,
        domain_id=domain_id,
        filename=generate_unique_filename(original_name),
        original_name=original_name,
        mime_type=uploaded.mime_type,
        file_size=uploaded.size,
        s3_key=uploaded.key,
        s3_bucket=store.bucket,
        title=title,
        description=description,
        analytics=analytics,
        is_public=is_public,
        hashed_password=get_password_hash(password) if password else None,
        expires_at=expires_at
    )
    attach_short_codes(record, short_codes)

    db.add(record)
    try:
        db.commit()
    except IntegrityError:
        # Код заняли между проверкой и вставкой
        db.rollback()
        await discard_object(store, uploaded.key)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Короткий код уже существует"
        )
    except SQLAlchemyError:
        db.rollback()
        logger.error("Не удалось сохранить файл %s, объект удаляется", uploaded.key, exc_info=True)
        await discard_object(store, uploaded.key)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Не удалось сохранить файл"
        )
    db.refresh(record)

    logger.info("Загружен файл %s (%d байт)", record.id, record.file_size)
    return file_response(record)

@router.get("", response_model=FileListResponse)
async def list_files(
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    files = db.query(File).filter(File.user_id == identity.user_id).order_by(File.created_at.desc()).all()
    return FileListResponse(files=[file_response(file) for file in files])

@router.get("/{file_id}", response_model=SharedFileResponse)
async def get_file(
    file_id: str,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    return file_response(get_owned_file(db, file_id, identity.user_id))

@router.put("/{file_id}", response_model=SharedFileResponse)
async def update_file(
    file_id: str,
    file_data: FileUpdate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    """Частично обновляет метаданные файла; новый пароль хешируется"""
    values = file_data.model_dump(exclude_unset=True)
    for field in ("analytics", "is_public"):
        if values.get(field, False) is None:
            del values[field]

    if "password" in values:
        password = values.pop("password")
        values["hashed_password"] = get_password_hash(password) if password else None

    if values:
        updated = db.query(File).filter(
            File.id == file_id,
            File.user_id == identity.user_id
        ).update(values, synchronize_session=False)
        db.commit()

        if not updated:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Файл не найден"
            )

    record = get_owned_file(db, file_id, identity.user_id)
    db.refresh(record)
    return file_response(record)

@router.delete("/{file_id}", response_model=Message)
async def delete_file(
    file_id: str,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
    store: Optional[ObjectStore] = Depends(get_object_store)
):
    """Удаляет запись о файле, затем объект в хранилище"""
    record = get_owned_file(db, file_id, identity.user_id)
    codes = [code.short_code for code in record.short_codes]
    s3_key = record.s3_key

    db.delete(record)
    db.commit()

    invalidate_resolutions(*codes)

    if store is not None:
        await discard_object(store, s3_key)

    return Message(message="Файл удален")

@router.get("/{file_id}/analytics", response_model=FileAnalytics)
async def get_file_analytics(
    file_id: str,
    limit: int = 100,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    """Последние скачивания файла"""
    record = get_owned_file(db, file_id, identity.user_id)

    query = db.query(FileDownload).filter(FileDownload.file_id == record.id)
    downloads = query.order_by(FileDownload.created_at.desc()).limit(limit).all()

    return FileAnalytics(
        file_id=record.id,
        downloads=[AccessEventInfo.model_validate(event) for event in downloads],
        total=query.count()
    )
