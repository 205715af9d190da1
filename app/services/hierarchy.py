import logging
from contextlib import contextmanager
from typing import List, Optional, Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.core.errors import NotFoundError, StorageFailure, ImageIOError
from app.models.work import Work, ChapterGroup, Chapter
from app.models.image import Image
from app.schemas.manga import WorkFields, WorkCreate, ChapterGroupEdit, ChapterEdit
from app.services import sequence
from app.services.image_store import ImageStore, StagedImage


class HierarchyRepository:
    """
    Reads and writes the Work -> ChapterGroup -> Chapter -> Image tree.

    Every write aimed at a nested row first proves the row hangs off the
    work (and group, chapter) named in the request; a broken chain is a
    NotFoundError, never a silent write into someone else's tree.

    Image rows are never deleted here, only detached. Physical removal is
    the reclaimer's job.
    """

    def __init__(self, db: Session, image_store: ImageStore):
        self.db = db
        self.image_store = image_store
        self.logger = logging.getLogger(__name__)

    # --- TRANSACTIONS ---

    @contextmanager
    def transaction(self) -> Iterator[List[StagedImage]]:
        """
        Commit the block as one unit, or roll all of it back.

        The block appends StagedImages to the yielded list. They are renamed
        into place only after the commit succeeds and thrown away otherwise.
        """
        staged: List[StagedImage] = []
        try:
            yield staged
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            self._discard(staged)
            self.logger.error(f"Transaction rolled back: {e}")
            raise StorageFailure("Database error, nothing was changed") from e
        except Exception:
            self.db.rollback()
            self._discard(staged)
            raise

        for item in staged:
            try:
                item.promote()
            except ImageIOError as e:
                # The row is committed and stays; it has no file until re-uploaded
                self.logger.error(f"{e.detail}. Image row {item.image_id} has no backing file")
                item.discard()

    @staticmethod
    def _discard(staged: List[StagedImage]):
        for item in staged:
            item.discard()

    # --- OWNERSHIP ---

    def verify_ownership(self, work_id: int, group_id: Optional[int] = None,
                         chapter_id: Optional[int] = None, image_id: Optional[int] = None) -> bool:
        """
        True when each id, read left to right, is a child of the one before it.
        The chain may stop early but can't skip a level.
        """
        if (image_id is not None and chapter_id is None) or (chapter_id is not None and group_id is None):
            raise ValueError("Ownership chain must be given left to right without gaps")

        if image_id is not None:
            query = (
                self.db.query(Image.id)
                .join(Chapter, Image.chapter_id == Chapter.id)
                .join(ChapterGroup, Chapter.group_id == ChapterGroup.id)
                .filter(
                    Image.id == image_id,
                    Chapter.id == chapter_id,
                    ChapterGroup.id == group_id,
                    ChapterGroup.work_id == work_id,
                )
            )
        elif chapter_id is not None:
            query = (
                self.db.query(Chapter.id)
                .join(ChapterGroup, Chapter.group_id == ChapterGroup.id)
                .filter(
                    Chapter.id == chapter_id,
                    ChapterGroup.id == group_id,
                    ChapterGroup.work_id == work_id,
                )
            )
        elif group_id is not None:
            query = self.db.query(ChapterGroup.id).filter(
                ChapterGroup.id == group_id,
                ChapterGroup.work_id == work_id,
            )
        else:
            query = self.db.query(Work.id).filter(Work.id == work_id)

        return query.first() is not None

    def get_work(self, work_id: int) -> Work:
        work = self.db.get(Work, work_id)
        if not work:
            raise NotFoundError("Manga not found")
        return work

    def get_group(self, work_id: int, group_id: int) -> ChapterGroup:
        if not self.verify_ownership(work_id, group_id):
            raise NotFoundError("ChapterGroup not found")
        return self.db.get(ChapterGroup, group_id)

    def get_chapter(self, work_id: int, group_id: int, chapter_id: int) -> Chapter:
        if not self.verify_ownership(work_id, group_id, chapter_id):
            raise NotFoundError("Chapter not found")
        return self.db.get(Chapter, chapter_id)

    def get_image(self, work_id: int, group_id: int, chapter_id: int, image_id: int) -> Image:
        if not self.verify_ownership(work_id, group_id, chapter_id, image_id):
            raise NotFoundError("Image not found")
        return self.db.get(Image, image_id)

    def get_work_tree(self, work_id: int) -> Work:
        """Work with cover, groups, chapters and pages loaded, each level in sequence order."""
        work = (
            self.db.query(Work)
            .options(
                selectinload(Work.cover),
                selectinload(Work.chapter_groups)
                .selectinload(ChapterGroup.chapters)
                .selectinload(Chapter.images),
            )
            .filter(Work.id == work_id)
            .first()
        )
        if not work:
            raise NotFoundError("Manga not found")
        return work

    # --- FIELD UPDATES (no commit, run inside a transaction) ---

    def update_work_fields(self, work: Work, fields: WorkFields):
        if fields.title is not None:
            work.title = fields.title
        if fields.status is not None:
            work.status = fields.status.value
        if fields.description is not None:
            work.description = fields.description
        if fields.authors is not None:
            work.authors = list(fields.authors)
        if fields.genres is not None:
            work.genres = [g.value for g in fields.genres]
        if fields.remarks is not None:
            work.remarks = fields.remarks

    def update_group_fields(self, group: ChapterGroup, edit: ChapterGroupEdit):
        if edit.title is not None:
            group.title = edit.title
        if edit.sequence is not None:
            group.sequence = edit.sequence

    def update_chapter_fields(self, chapter: Chapter, edit: ChapterEdit):
        if edit.title is not None:
            chapter.title = edit.title
        if edit.sequence is not None:
            chapter.sequence = edit.sequence
        if edit.locked is not None:
            chapter.locked = edit.locked

    def update_image_sequence(self, image: Image, new_sequence: Optional[int]):
        if new_sequence is not None:
            image.sequence = new_sequence

    def stage_cover(self, work: Work, raw: bytes) -> StagedImage:
        """
        Point the work's cover at new bytes. Reuses the existing cover row,
        creating one if the work has none. The row is flushed so it has an id.
        """
        cover = work.cover
        if cover is None:
            cover = Image(sequence=0)
            work.cover = cover
            self.db.add(cover)

        self.db.flush()
        return self.image_store.stage(cover.id, raw)

    # --- WORKS ---

    def create_work(self, data: WorkCreate, cover_bytes: Optional[bytes] = None) -> Work:
        with self.transaction() as staged:
            work = Work(
                title=data.title,
                status=data.status.value,
                description=data.description,
                authors=list(data.authors or []),
                genres=[g.value for g in data.genres or []],
                remarks=data.remarks or "",
            )
            self.db.add(work)

            if cover_bytes is not None:
                staged.append(self.stage_cover(work, cover_bytes))

        self.logger.info(f"Created manga {work.id} ({work.title})")
        return work

    def delete_work(self, work_id: int):
        """Hard delete. Groups and chapters go with it; cover and pages become orphans."""
        with self.transaction():
            work = self.get_work(work_id)
            self.db.delete(work)

        self.logger.info(f"Deleted manga {work_id}")

    # --- CHAPTER GROUPS ---

    def create_group(self, work_id: int, title: Optional[str], seq: Optional[int] = None) -> ChapterGroup:
        with self.transaction():
            self.get_work(work_id)
            if seq is None:
                seq = sequence.next_group_sequence(self.db, work_id)

            group = ChapterGroup(work_id=work_id, title=title, sequence=seq)
            self.db.add(group)

        return group

    def delete_group(self, work_id: int, group_id: int):
        with self.transaction():
            group = self.get_group(work_id, group_id)
            self.db.delete(group)

        self.logger.info(f"Deleted chapter group {group_id} of manga {work_id}")

    # --- CHAPTERS ---

    def create_chapter(self, work_id: int, group_id: int, title: Optional[str],
                       seq: Optional[int] = None) -> Chapter:
        with self.transaction():
            self.get_group(work_id, group_id)
            if seq is None:
                seq = sequence.next_chapter_sequence(self.db, group_id)

            chapter = Chapter(group_id=group_id, title=title, sequence=seq)
            self.db.add(chapter)

        return chapter

    def delete_chapter(self, work_id: int, group_id: int, chapter_id: int):
        """Hard delete. Its pages are detached, not deleted."""
        with self.transaction():
            chapter = self.get_chapter(work_id, group_id, chapter_id)
            self.db.delete(chapter)

        self.logger.info(f"Deleted chapter {chapter_id} of manga {work_id}")

    # --- IMAGES ---

    def upload_images(self, work_id: int, group_id: int, chapter_id: int,
                      payloads: List[bytes]) -> List[Image]:
        """
        Append pages to a chapter in upload order. Numbering and inserts share
        one transaction with the chapter locked, so racing uploads can't
        hand out the same sequence.
        """
        created = []
        with self.transaction() as staged:
            chapter = self.get_chapter(work_id, group_id, chapter_id)
            sequence.lock_chapter(self.db, chapter.id)
            next_seq = sequence.next_image_sequence(self.db, chapter.id)

            for raw in payloads:
                image = Image(chapter_id=chapter.id, sequence=next_seq)
                next_seq += 1
                self.db.add(image)
                self.db.flush()

                staged.append(self.image_store.stage(image.id, raw))
                created.append(image)

        self.logger.info(f"Added {len(created)} image(s) to chapter {chapter_id}")
        return created

    def detach_image(self, work_id: int, group_id: int, chapter_id: int, image_id: int):
        """Unlink a page from its chapter. Row and file stay until the next sweep."""
        with self.transaction():
            image = self.get_image(work_id, group_id, chapter_id, image_id)
            image.chapter_id = None

        self.logger.info(f"Detached image {image_id} from chapter {chapter_id}")

    def attach_image(self, work_id: int, group_id: int, chapter_id: int, image_id: int) -> Image:
        """
        Append a detached page to a chapter, undoing a detach that no sweep
        has reclaimed yet. Only orphans qualify; a page never has two chapters.
        """
        with self.transaction():
            chapter = self.get_chapter(work_id, group_id, chapter_id)

            sequence.lock_chapter(self.db, chapter.id)

            image = self.db.query(Image).populate_existing().filter(Image.id == image_id).first()
            if image is None or not image.is_orphan:
                raise NotFoundError("Detached image not found")

            image.sequence = sequence.next_image_sequence(self.db, chapter.id)
            image.chapter_id = chapter.id

        self.logger.info(f"Attached image {image_id} to chapter {chapter_id}")
        return image
