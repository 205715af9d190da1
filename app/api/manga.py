from fastapi import APIRouter, Depends, HTTPException, Query, Body
from sqlalchemy import cast, String
from sqlalchemy.orm import selectinload
from typing import List, Annotated

from app.api.deps import SessionDep, CurrentUser, RepositoryDep, PaginationParams, PaginatedResponse
from app.core.errors import NotFoundError
from app.core.manga_helpers import get_latest_chapters, work_summary, work_detail, image_url
from app.models.work import Work, Chapter, WorkStatus, Genre, ALL_GENRES

router = APIRouter()

# Largest value a SQLite / BIGINT column can hold
MAX_DB_INT = 2 ** 63 - 1


@router.get("/", response_model=PaginatedResponse, name="list")
async def list_manga(
        db: SessionDep,
        current_user: CurrentUser,
        params: Annotated[PaginationParams, Depends()],
        status: Annotated[int, Query(ge=0, le=2, description="0 = any")] = WorkStatus.ANY.value,
        genre: Annotated[str, Query(description="Genre value or 'all'")] = ALL_GENRES,
):
    """Paginated manga summaries, optionally filtered by status and genre."""
    query = db.query(Work)

    if status != WorkStatus.ANY.value:
        query = query.filter(Work.status == status)

    if genre != ALL_GENRES:
        if genre not in {g.value for g in Genre}:
            raise HTTPException(status_code=400, detail=f"Unknown genre '{genre}'")
        # genres is a JSON list; match the quoted value so "war" doesn't hit "warrior"
        query = query.filter(cast(Work.genres, String).contains(f'"{genre}"'))

    total = query.count()
    works = (
        query.options(selectinload(Work.cover))
        .order_by(Work.id)
        .offset(params.skip)
        .limit(params.size)
        .all()
    )

    latest = get_latest_chapters(db, [w.id for w in works])

    return {
        "total": total,
        "page": params.page,
        "size": params.size,
        "items": [work_summary(w, latest.get(w.id)) for w in works],
    }


@router.post("/", name="batch")
async def get_manga_batch(
        db: SessionDep,
        current_user: CurrentUser,
        ids: Annotated[List[str], Body(description="Manga ids as strings")],
):
    """Summaries for a list of ids (e.g. a reader's favourites). Unknown or non-numeric ids are skipped."""
    numeric_ids = []
    for raw_id in ids:
        try:
            value = int(raw_id, 10)
        except ValueError:
            continue
        # Out-of-range ids can't exist and would overflow the driver
        if 0 < value <= MAX_DB_INT:
            numeric_ids.append(value)
    if not numeric_ids:
        return []

    works = (
        db.query(Work)
        .options(selectinload(Work.cover))
        .filter(Work.id.in_(numeric_ids))
        .order_by(Work.id)
        .all()
    )
    latest = get_latest_chapters(db, [w.id for w in works])

    return [work_summary(w, latest.get(w.id)) for w in works]


@router.get("/{manga_id}", name="detail")
async def get_manga_detail(manga_id: int, db: SessionDep, repo: RepositoryDep, current_user: CurrentUser):
    work = repo.get_work_tree(manga_id)
    latest = get_latest_chapters(db, [work.id])
    return work_detail(work, latest.get(work.id))


@router.get("/{manga_id}/chapter/{chapter_id}", name="chapter_pages")
async def get_chapter_pages(manga_id: int, chapter_id: int, db: SessionDep, current_user: CurrentUser) -> List[str]:
    """Page URLs of a chapter in reading order."""
    chapter = (
        db.query(Chapter)
        .options(selectinload(Chapter.images))
        .filter(Chapter.id == chapter_id)
        .first()
    )

    # Same 404 for "missing" and "belongs to another manga"
    if not chapter or chapter.group.work_id != manga_id:
        raise NotFoundError("Chapter not found")

    return [image_url(img.id) for img in chapter.images]
