from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError

from linker.config import settings
from linker.database import get_db
from linker.models import Link, Domain
from linker.schemas import LinkCreate, LinkResponse, LinkUpdate, LinkListResponse, ShortCodeInfo, Message
from linker.utils import build_short_url
from linker.dependencies import get_current_user
from linker.credentials import Identity
from linker.cache import invalidate_resolutions
from linker.resolver import (
    ShortCodeConflict, ensure_short_codes_available, generate_available_short_code, attach_short_codes
)

router = APIRouter(prefix="/api/v1/links", tags=["links"])

def link_response(link: Link) -> LinkResponse:
    short_code = link.primary_short_code
    return LinkResponse(
        id=link.id,
        short_code=short_code,
        short_url=build_short_url(short_code, settings.LINK_PREFIX) if short_code else None,
        short_codes=[ShortCodeInfo.model_validate(code) for code in link.short_codes],
        original_url=link.original_url,
        domain_id=link.domain_id,
        title=link.title,
        description=link.description,
        clicks=link.clicks,
        analytics=link.analytics,
        expires_at=link.expires_at,
        created_at=link.created_at,
        updated_at=link.updated_at
    )

def get_owned_link(db: Session, link_id: str, user_id: str) -> Link:
    """Ссылка текущего пользователя; чужая ссылка неотличима от отсутствующей"""
    link = db.query(Link).filter(Link.id == link_id, Link.user_id == user_id).first()
    if not link:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Ссылка не найдена"
        )
    return link

def short_code_conflict(e: ShortCodeConflict) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

# Создание короткой ссылки
@router.post("", response_model=LinkResponse, status_code=status.HTTP_201_CREATED)
async def create_link(
    link_data: LinkCreate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_user)
):
    """Создает ссылку с пользовательскими или сгенерированным коротким кодом"""
    short_codes = list(link_data.short_codes)
    try:
        if short_codes:
            ensure_short_codes_available(db, short_codes)
        else:
            short_codes = [generate_available_short_code(db)]
    except ShortCodeConflict as e:
        raise short_code_conflict(e)

    if link_data.domain_id and not db.get(Domain, link_data.domain_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Домен не найден"
        )

    link = Link(
        user_id=identity.user_id,
        domain_id=link_data.domain_id,
        original_url=link_data.original_url,
        title=link_data.title,
        description=link_data.description,
        analytics=link_data.analytics,
        expires_at=link_data.expires_at
    )
    attach_short_codes(link, short_codes)

    db.add(link)
    try:
        db.commit()
    except IntegrityError:
        # Код заняли между проверкой и вставкой
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Короткий код уже существует"
        )
    db.refresh(link)

    return link_response(link)

@router.get("", response_model=LinkListResponse)
async def list_links(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_user)
):
    """Ссылки пользователя, новые первыми"""
    links = db.query(Link).filter(
        Link.user_id == identity.user_id
    ).order_by(Link.created_at.desc()).offset(offset).limit(limit).all()

    return LinkListResponse(links=[link_response(link) for link in links])

@router.get("/{link_id}", response_model=LinkResponse)
async def get_link(
    link_id: str,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_user)
):
    return link_response(get_owned_link(db, link_id, identity.user_id))

# Обновление ссылки
@router.put("/{link_id}", response_model=LinkResponse)
async def update_link(
    link_id: str,
    link_data: LinkUpdate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_user)
):
    """Частично обновляет ссылку; переданы только изменяемые поля"""
    values = link_data.model_dump(exclude_unset=True)
    for field in ("original_url", "analytics"):
        if values.get(field, False) is None:
            del values[field]

    if values:
        updated = db.query(Link).filter(
            Link.id == link_id,
            Link.user_id == identity.user_id
        ).update(values, synchronize_session=False)
        db.commit()

        if not updated:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Ссылка не найдена"
            )

    link = get_owned_link(db, link_id, identity.user_id)
    db.refresh(link)
    return link_response(link)

# Удаление ссылки
@router.delete("/{link_id}", response_model=Message)
async def delete_link(
    link_id: str,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_user)
):
    """Удаляет ссылку вместе с ее короткими кодами и кликами"""
    link = get_owned_link(db, link_id, identity.user_id)
    codes = [code.short_code for code in link.short_codes]

    db.delete(link)
    db.commit()

    invalidate_resolutions(*codes)

    return Message(message="Ссылка удалена")
