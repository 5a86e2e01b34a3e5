from datetime import timedelta
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from sqlalchemy import func

from linker.database import get_db
from linker.models import Link, Click, File, FileDownload
from linker.schemas import (
    LinkAnalytics, AccessEventInfo, UserAnalytics, LinkAnalyticsSummary, ClicksByDate,
    ReferrerStats, CountryStats, UserAgentStats, UserFileAnalytics, UserFileStats,
    FileAnalyticsSummary, ReferrerCount
)
from linker.utils import utcnow
from linker.dependencies import get_current_user
from linker.credentials import Identity

router = APIRouter(prefix="/api/v1/analytics", tags=["analytics"])

TOP_LIMIT = 10

def period_starts():
    """Начало текущего дня, недели (понедельник) и месяца в UTC"""
    now = utcnow()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    week = today - timedelta(days=today.weekday())
    month = today.replace(day=1)
    return today, week, month

@router.get("/links/{link_id}", response_model=LinkAnalytics)
async def get_link_analytics(
    link_id: str,
    limit: int = 100,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_user)
):
    """Последние клики по ссылке"""
    link = db.query(Link).filter(Link.id == link_id, Link.user_id == identity.user_id).first()
    if not link:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Ссылка не найдена"
        )

    query = db.query(Click).filter(Click.link_id == link.id)
    clicks = query.order_by(Click.created_at.desc()).limit(limit).all()

    return LinkAnalytics(
        link_id=link.id,
        clicks=[AccessEventInfo.model_validate(click) for click in clicks],
        total=query.count()
    )

@router.get("/user", response_model=UserAnalytics)
async def get_user_analytics(
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_user)
):
    """Сводная аналитика по всем ссылкам пользователя"""
    user_id = identity.user_id
    today, week, month = period_starts()

    user_clicks = db.query(Click).join(Link, Click.link_id == Link.id).filter(Link.user_id == user_id)

    total_links = db.query(func.count(Link.id)).filter(Link.user_id == user_id).scalar()
    total_clicks = db.query(func.coalesce(func.sum(Link.clicks), 0)).filter(Link.user_id == user_id).scalar()

    top_links = db.query(Link).filter(Link.user_id == user_id).order_by(Link.clicks.desc()).limit(TOP_LIMIT).all()
    recent_clicks = user_clicks.order_by(Click.created_at.desc()).limit(TOP_LIMIT).all()

    since = today - timedelta(days=30)
    day = func.date(Click.created_at)
    clicks_by_date = (
        db.query(day.label("day"), func.count(Click.id))
        .join(Link, Click.link_id == Link.id)
        .filter(Link.user_id == user_id, Click.created_at >= since)
        .group_by(day)
        .order_by(day)
        .all()
    )

    def top_values(column):
        return (
            db.query(column, func.count(Click.id).label("total"))
            .join(Link, Click.link_id == Link.id)
            .filter(Link.user_id == user_id, column.isnot(None), column != "")
            .group_by(column)
            .order_by(func.count(Click.id).desc())
            .limit(TOP_LIMIT)
            .all()
        )

    return UserAnalytics(
        user_id=user_id,
        total_links=total_links,
        total_clicks=total_clicks,
        clicks_today=user_clicks.filter(Click.created_at >= today).count(),
        clicks_this_week=user_clicks.filter(Click.created_at >= week).count(),
        clicks_this_month=user_clicks.filter(Click.created_at >= month).count(),
        top_links=[
            LinkAnalyticsSummary(
                link_id=link.id,
                original_url=link.original_url,
                title=link.title,
                short_code=link.primary_short_code,
                total_clicks=link.clicks
            ) for link in top_links
        ],
        recent_clicks=[AccessEventInfo.model_validate(click) for click in recent_clicks],
        clicks_by_date=[ClicksByDate(date=str(date), clicks=count) for date, count in clicks_by_date],
        top_referrers=[ReferrerStats(referer=value, clicks=count) for value, count in top_values(Click.referer)],
        top_countries=[CountryStats(country=value, clicks=count) for value, count in top_values(Click.country)],
        top_user_agents=[
            UserAgentStats(user_agent=value, clicks=count) for value, count in top_values(Click.user_agent)
        ]
    )

@router.get("/files", response_model=UserFileAnalytics)
async def get_user_file_analytics(
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_user)
):
    """Статистика скачиваний по файлам пользователя"""
    week_ago = utcnow() - timedelta(days=7)
    files = db.query(File).filter(File.user_id == identity.user_id).order_by(File.created_at.desc()).all()

    stats = []
    for file in files:
        recent = db.query(func.count(FileDownload.id)).filter(
            FileDownload.file_id == file.id,
            FileDownload.created_at >= week_ago
        ).scalar()
        stats.append(UserFileStats(
            file_id=file.id,
            filename=file.filename,
            original_name=file.original_name,
            mime_type=file.mime_type,
            file_size=file.file_size,
            total_downloads=file.downloads,
            recent_downloads=recent,
            created_at=file.created_at
        ))

    return UserFileAnalytics(user_id=identity.user_id, files=stats, total=len(stats))

@router.get("/files/{file_id}/summary", response_model=FileAnalyticsSummary)
async def get_file_analytics_summary(
    file_id: str,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_user)
):
    file = db.query(File).filter(File.id == file_id, File.user_id == identity.user_id).first()
    if not file:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Файл не найден"
        )

    today, week, month = period_starts()
    events = db.query(FileDownload).filter(FileDownload.file_id == file.id)

    unique_visitors = db.query(func.count(func.distinct(FileDownload.ip_address))).filter(
        FileDownload.file_id == file.id
    ).scalar()

    top_referrers = (
        db.query(FileDownload.referer, func.count(FileDownload.id))
        .filter(
            FileDownload.file_id == file.id,
            FileDownload.referer.isnot(None),
            FileDownload.referer != ""
        )
        .group_by(FileDownload.referer)
        .order_by(func.count(FileDownload.id).desc())
        .limit(TOP_LIMIT)
        .all()
    )

    return FileAnalyticsSummary(
        file_id=file.id,
        total_downloads=file.downloads,
        downloads_today=events.filter(FileDownload.created_at >= today).count(),
        downloads_this_week=events.filter(FileDownload.created_at >= week).count(),
        downloads_this_month=events.filter(FileDownload.created_at >= month).count(),
        unique_visitors=unique_visitors,
        top_referrers=[ReferrerCount(referer=referer, count=count) for referer, count in top_referrers]
    )
