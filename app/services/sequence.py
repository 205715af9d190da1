from datetime import datetime, timezone
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.work import ChapterGroup, Chapter
from app.models.image import Image


def lock_chapter(db: Session, chapter_id: int) -> bool:
    """
    Take the write lock for a chapter before numbering its pages.

    Touching the row makes SQLite grab its writer lock (and Postgres a row lock),
    so two uploads into the same chapter can't both read the same max(sequence).
    Returns False if the chapter doesn't exist.
    """
    updated = (
        db.query(Chapter)
        .filter(Chapter.id == chapter_id)
        .update({"updated_at": datetime.now(timezone.utc)}, synchronize_session=False)
    )
    return updated > 0


def next_image_sequence(db: Session, chapter_id: int) -> int:
    """1 + the highest page sequence in the chapter, or 1 for an empty chapter."""
    current = db.query(func.max(Image.sequence)).filter(Image.chapter_id == chapter_id).scalar()
    return (current or 0) + 1


def next_group_sequence(db: Session, work_id: int) -> int:
    current = db.query(func.max(ChapterGroup.sequence)).filter(ChapterGroup.work_id == work_id).scalar()
    return (current or 0) + 1


def next_chapter_sequence(db: Session, group_id: int) -> int:
    current = db.query(func.max(Chapter.sequence)).filter(Chapter.group_id == group_id).scalar()
    return (current or 0) + 1
