from fastapi import APIRouter, BackgroundTasks, Response, status

from app.api.deps import SessionDep, AdminUser, RepositoryDep, ImageStoreDep
from app.core.manga_helpers import work_to_admin_dict, group_to_dict, chapter_to_dict, image_to_dict
from app.schemas.manga import WorkCreate, WorkEdit, ChapterGroupCreate, ChapterCreate, ImageUpload
from app.services.editor import NestedEditService
from app.services.image_store import decode_base64_image
from app.services.reclaimer import OrphanReclaimer, reclaim_worker

router = APIRouter()

CHAPTER_PATH = "/manga/{manga_id}/chapter-group/{group_id}/chapter/{chapter_id}"


def _schedule_cleanup(background_tasks: BackgroundTasks):
    # Runs after the response is sent; the sweep itself happens on the reclaimer thread
    background_tasks.add_task(reclaim_worker.trigger)


# --- MANGA ---

@router.post("/manga", status_code=status.HTTP_201_CREATED, name="create")
def create_manga(work_in: WorkCreate, repo: RepositoryDep, admin_user: AdminUser):
    """Create a manga. An optional base64 cover is stored alongside."""
    cover_bytes = decode_base64_image(work_in.cover) if work_in.cover else None
    work = repo.create_work(work_in, cover_bytes=cover_bytes)
    return work_to_admin_dict(repo.get_work_tree(work.id))


@router.get("/manga/{manga_id}", name="detail")
def get_manga(manga_id: int, repo: RepositoryDep, admin_user: AdminUser):
    """Full tree with ids and sequences, for the editor."""
    return work_to_admin_dict(repo.get_work_tree(manga_id))


@router.patch("/manga/{manga_id}", name="update")
def update_manga(manga_id: int, edit: WorkEdit, repo: RepositoryDep, admin_user: AdminUser):
    """
    Apply a nested edit: manga fields, plus title/sequence of existing
    groups, title/sequence/locked of their chapters and page sequences.
    All or nothing.
    """
    cover_bytes = decode_base64_image(edit.cover) if edit.cover else None
    NestedEditService(repo).apply_edit(manga_id, edit, cover_bytes=cover_bytes)
    return work_to_admin_dict(repo.get_work_tree(manga_id))


@router.delete("/manga/{manga_id}", name="delete")
def delete_manga(manga_id: int, repo: RepositoryDep, admin_user: AdminUser,
                 background_tasks: BackgroundTasks):
    repo.delete_work(manga_id)
    _schedule_cleanup(background_tasks)
    return {"message": "Manga deleted"}


# --- CHAPTER GROUPS ---

@router.post("/manga/{manga_id}/chapter-group", status_code=status.HTTP_201_CREATED, name="create_group")
def create_chapter_group(manga_id: int, group_in: ChapterGroupCreate, repo: RepositoryDep,
                         admin_user: AdminUser):
    group = repo.create_group(manga_id, group_in.title, group_in.sequence)
    return group_to_dict(group)


@router.delete("/manga/{manga_id}/chapter-group/{group_id}", name="delete_group")
def delete_chapter_group(manga_id: int, group_id: int, repo: RepositoryDep, admin_user: AdminUser,
                         background_tasks: BackgroundTasks):
    repo.delete_group(manga_id, group_id)
    _schedule_cleanup(background_tasks)
    return {"message": "ChapterGroup deleted"}


# --- CHAPTERS ---

@router.post("/manga/{manga_id}/chapter-group/{group_id}/chapter", status_code=status.HTTP_201_CREATED,
             name="create_chapter")
def create_chapter(manga_id: int, group_id: int, chapter_in: ChapterCreate, repo: RepositoryDep,
                   admin_user: AdminUser):
    chapter = repo.create_chapter(manga_id, group_id, chapter_in.title, chapter_in.sequence)
    return chapter_to_dict(chapter)


@router.delete(CHAPTER_PATH, name="delete_chapter")
def delete_chapter(manga_id: int, group_id: int, chapter_id: int, repo: RepositoryDep,
                   admin_user: AdminUser, background_tasks: BackgroundTasks):
    repo.delete_chapter(manga_id, group_id, chapter_id)
    _schedule_cleanup(background_tasks)
    return {"message": "Chapter deleted"}


# --- IMAGES ---

@router.post(CHAPTER_PATH + "/images", status_code=status.HTTP_201_CREATED, name="upload_images")
def upload_images(manga_id: int, group_id: int, chapter_id: int, upload: ImageUpload,
                  repo: RepositoryDep, admin_user: AdminUser):
    """Append pages to the end of a chapter. Returns the new images in upload order."""
    # Decode everything up front so a bad payload fails before any write
    payloads = [decode_base64_image(item) for item in upload.images]
    images = repo.upload_images(manga_id, group_id, chapter_id, payloads)
    return [image_to_dict(img) for img in images]


@router.delete(CHAPTER_PATH + "/image/{image_id}", status_code=status.HTTP_204_NO_CONTENT,
               name="detach_image")
def detach_image(manga_id: int, group_id: int, chapter_id: int, image_id: int,
                 repo: RepositoryDep, admin_user: AdminUser, background_tasks: BackgroundTasks):
    """Detach a page from its chapter. The file is reclaimed by the next sweep."""
    repo.detach_image(manga_id, group_id, chapter_id, image_id)
    _schedule_cleanup(background_tasks)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put(CHAPTER_PATH + "/image/{image_id}", name="attach_image")
def attach_image(manga_id: int, group_id: int, chapter_id: int, image_id: int,
                 repo: RepositoryDep, admin_user: AdminUser):
    """Re-attach a detached page (not yet reclaimed) at the end of this chapter."""
    image = repo.attach_image(manga_id, group_id, chapter_id, image_id)
    return image_to_dict(image)


# --- MAINTENANCE ---

@router.post("/cleanup", name="cleanup")
def run_cleanup(db: SessionDep, image_store: ImageStoreDep, admin_user: AdminUser):
    """Run an orphan sweep now and report what it did."""
    return OrphanReclaimer(db, image_store).sweep()
