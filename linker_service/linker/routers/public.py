import logging
from typing import Optional
from urllib.parse import quote
from fastapi import APIRouter, Depends, HTTPException, status, Response
from fastapi.responses import JSONResponse, RedirectResponse, StreamingResponse
from sqlalchemy.orm import Session

from linker.config import settings
from linker.database import get_db
from linker.schemas import FileInfo
from linker.utils import utcnow
from linker.dependencies import get_client_info, get_analytics_recorder, get_object_store
from linker.analytics import AnalyticsRecorder
from linker.storage import ObjectStore, StorageError
from linker.resolver import resolve, ResolvedResource, ResourceKind
from linker import access

logger = logging.getLogger(__name__)

router = APIRouter(tags=["public"])

DENY_RESPONSES = {
    access.DenyReason.EXPIRED: (status.HTTP_410_GONE, "Срок действия истек"),
    access.DenyReason.PRIVATE_NO_PASSWORD: (status.HTTP_403_FORBIDDEN, "Файл приватный"),
    access.DenyReason.BAD_PASSWORD: (status.HTTP_401_UNAUTHORIZED, "Неверный пароль"),
}

def not_found(kind: Optional[ResourceKind] = None) -> HTTPException:
    detail = "Файл не найден" if kind is ResourceKind.FILE else "Ссылка не найдена"
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)

def content_disposition(filename: str) -> str:
    quoted = quote(filename)
    if quoted != filename:
        return f"attachment; filename*=utf-8''{quoted}"
    return f'attachment; filename="{filename}"'

def denial_response(decision: access.AccessDecision) -> Optional[Response]:
    """JSON-ответ на отказ или запрос пароля; None, если доступ разрешен"""
    if decision.allowed:
        return None

    if decision.outcome is access.Outcome.CHALLENGE:
        # Клиент показывает форму пароля по флагу password_required
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"detail": "Требуется пароль", "password_required": True}
        )

    status_code, detail = DENY_RESPONSES[decision.reason]
    return JSONResponse(status_code=status_code, content={"detail": detail})

def follow_link(resource: ResolvedResource, recorder: AnalyticsRecorder, client_info: dict) -> Response:
    denied = denial_response(access.evaluate(resource, utcnow()))
    if denied is not None:
        return denied

    recorder.track(resource, client_info)
    return RedirectResponse(url=resource.record.original_url, status_code=status.HTTP_302_FOUND)

async def serve_file(
    resource: ResolvedResource,
    password: Optional[str],
    info: bool,
    recorder: AnalyticsRecorder,
    store: Optional[ObjectStore],
    client_info: dict
) -> Response:
    denied = denial_response(access.evaluate(resource, utcnow(), password))
    if denied is not None:
        return denied

    record = resource.record
    if info:
        return JSONResponse(content=FileInfo.model_validate(record).model_dump(mode="json"))

    if store is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Хранилище файлов недоступно"
        )

    try:
        body = await store.get(record.s3_key)
    except StorageError:
        logger.error("Не удалось получить объект %s", record.s3_key, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Не удалось получить файл"
        )

    # Скачивание учитывается только после успешного открытия объекта
    recorder.track(resource, client_info)

    return StreamingResponse(
        body,
        media_type=record.mime_type,
        headers={
            "Content-Disposition": content_disposition(record.original_name),
            "Content-Length": str(record.file_size)
        }
    )

async def open_short_code(
    code: str,
    password: Optional[str] = None,
    info: bool = False,
    db: Session = Depends(get_db),
    recorder: AnalyticsRecorder = Depends(get_analytics_recorder),
    store: Optional[ObjectStore] = Depends(get_object_store),
    client_info: dict = Depends(get_client_info)
):
    """Общий префикс: ссылка перенаправляет, файл отдается"""
    resource = resolve(db, code)
    if resource is None:
        raise not_found()

    if resource.kind is ResourceKind.LINK:
        return follow_link(resource, recorder, client_info)
    return await serve_file(resource, password, info, recorder, store, client_info)

async def redirect_link(
    code: str,
    db: Session = Depends(get_db),
    recorder: AnalyticsRecorder = Depends(get_analytics_recorder),
    client_info: dict = Depends(get_client_info)
):
    """Перенаправляет по короткой ссылке"""
    resource = resolve(db, code)
    if resource is None or resource.kind is not ResourceKind.LINK:
        raise not_found(ResourceKind.LINK)

    return follow_link(resource, recorder, client_info)

async def download_file(
    code: str,
    password: Optional[str] = None,
    info: bool = False,
    db: Session = Depends(get_db),
    recorder: AnalyticsRecorder = Depends(get_analytics_recorder),
    store: Optional[ObjectStore] = Depends(get_object_store),
    client_info: dict = Depends(get_client_info)
):
    """Отдает файл по короткому коду, при необходимости с паролем"""
    resource = resolve(db, code)
    if resource is None or resource.kind is not ResourceKind.FILE:
        raise not_found(ResourceKind.FILE)

    return await serve_file(resource, password, info, recorder, store, client_info)

@router.get("/health", tags=["root"])
async def health():
    return {"status": "ok"}

if settings.LINK_PREFIX == settings.FILE_PREFIX:
    router.add_api_route(f"/{settings.LINK_PREFIX}/{{code}}", open_short_code, methods=["GET"], include_in_schema=False)
else:
    router.add_api_route(f"/{settings.LINK_PREFIX}/{{code}}", redirect_link, methods=["GET"], include_in_schema=False)
    router.add_api_route(f"/{settings.FILE_PREFIX}/{{code}}", download_file, methods=["GET"], include_in_schema=False)
