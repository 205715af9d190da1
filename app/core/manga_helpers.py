from datetime import datetime, timezone
from typing import Optional, List, Dict

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.config import settings
from app.models.work import Work, ChapterGroup, Chapter
from app.models.image import Image


def image_url(image_id: int) -> str:
    return f"/api/images/{image_id}.{settings.image_extension}"


def to_epoch_ms(value: Optional[datetime]) -> Optional[int]:
    if value is None:
        return None
    if value.tzinfo is None:
        # SQLite hands back naive datetimes; they were written as UTC
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def chapter_summary(chapter: Optional[Chapter]) -> Optional[dict]:
    if chapter is None:
        return None
    return {
        "id": str(chapter.id),
        "title": chapter.title or None,
        "locked": bool(chapter.locked),
    }


def get_latest_chapters(db: Session, work_ids: List[int]) -> Dict[int, Chapter]:
    """
    Newest chapter (by creation time) per work, in one query.
    """
    if not work_ids:
        return {}

    ranked = (
        db.query(
            Chapter.id.label("chapter_id"),
            ChapterGroup.work_id.label("work_id"),
            func.row_number().over(
                partition_by=ChapterGroup.work_id,
                order_by=(Chapter.created_at.desc(), Chapter.id.desc())
            ).label("rn")
        )
        .join(ChapterGroup, Chapter.group_id == ChapterGroup.id)
        .filter(ChapterGroup.work_id.in_(work_ids))
        .subquery()
    )

    rows = (
        db.query(ranked.c.work_id, Chapter)
        .join(Chapter, Chapter.id == ranked.c.chapter_id)
        .filter(ranked.c.rn == 1)
        .all()
    )
    return {work_id: chapter for work_id, chapter in rows}


def work_summary(work: Work, latest: Optional[Chapter]) -> dict:
    """Lightweight dict for list views"""
    return {
        "id": str(work.id),
        "title": work.title or None,
        "cover": image_url(work.cover.id) if work.cover else None,
        "status": work.status,
        "latest_chapter": chapter_summary(latest),
    }


def work_detail(work: Work, latest: Optional[Chapter]) -> dict:
    """
    Reader view of a work. Chapters are grouped under the group title
    (group id when untitled); groups and chapters keep sequence order.
    """
    chapters: Dict[str, list] = {}
    for group in work.chapter_groups:
        key = group.title or str(group.id)
        chapters.setdefault(key, []).extend(chapter_summary(c) for c in group.chapters)

    data = work_summary(work, latest)
    data.update({
        "description": work.description or None,
        "updated_at": to_epoch_ms(work.updated_at),
        "authors": list(work.authors or []),
        "genres": list(work.genres or []),
        "chapters": chapters,
        "remarks": work.remarks or "",
    })
    return data


# --- Admin views (full tree with ids and sequences) ---

def image_to_dict(image: Image) -> dict:
    return {
        "id": image.id,
        "sequence": image.sequence,
        "url": image_url(image.id),
    }


def chapter_to_dict(chapter: Chapter, include_images: bool = True) -> dict:
    data = {
        "id": chapter.id,
        "group_id": chapter.group_id,
        "title": chapter.title,
        "sequence": chapter.sequence,
        "locked": bool(chapter.locked),
    }
    if include_images:
        data["images"] = [image_to_dict(i) for i in chapter.images]
    return data


def group_to_dict(group: ChapterGroup, include_chapters: bool = True) -> dict:
    data = {
        "id": group.id,
        "work_id": group.work_id,
        "title": group.title,
        "sequence": group.sequence,
    }
    if include_chapters:
        data["chapters"] = [chapter_to_dict(c) for c in group.chapters]
    return data


def work_to_admin_dict(work: Work) -> dict:
    return {
        "id": work.id,
        "title": work.title,
        "status": work.status,
        "description": work.description,
        "authors": list(work.authors or []),
        "genres": list(work.genres or []),
        "remarks": work.remarks or "",
        "cover": image_to_dict(work.cover) if work.cover else None,
        "created_at": work.created_at,
        "updated_at": work.updated_at,
        "chapter_groups": [group_to_dict(g) for g in work.chapter_groups],
    }
