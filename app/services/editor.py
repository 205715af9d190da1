import logging
from typing import Optional

from app.models.work import Work
from app.schemas.manga import WorkEdit
from app.services.hierarchy import HierarchyRepository


class NestedEditService:
    """
    Applies one administrative edit (work fields plus nested group, chapter
    and page edits) as a single transaction.

    Edits only touch rows that exist: entries without an id are ignored.
    An id that doesn't belong to its parent rejects the whole edit with
    NotFoundError and nothing is written.
    """

    def __init__(self, repository: HierarchyRepository):
        self.repository = repository
        self.logger = logging.getLogger(__name__)

    def apply_edit(self, work_id: int, edit: WorkEdit, cover_bytes: Optional[bytes] = None) -> Work:
        repo = self.repository
        counts = {"groups": 0, "chapters": 0, "images": 0}

        with repo.transaction() as staged:
            work = repo.get_work(work_id)
            repo.update_work_fields(work, edit)

            # Order within the transaction: group, then its chapters, then their pages
            for group_edit in edit.chapter_groups or []:
                if group_edit.id is None:
                    continue

                group = repo.get_group(work_id, group_edit.id)
                repo.update_group_fields(group, group_edit)
                counts["groups"] += 1

                for chapter_edit in group_edit.chapters or []:
                    if chapter_edit.id is None:
                        continue

                    chapter = repo.get_chapter(work_id, group.id, chapter_edit.id)
                    repo.update_chapter_fields(chapter, chapter_edit)
                    counts["chapters"] += 1

                    for image_edit in chapter_edit.images or []:
                        if image_edit.id is None:
                            continue

                        image = repo.get_image(work_id, group.id, chapter.id, image_edit.id)
                        repo.update_image_sequence(image, image_edit.sequence)
                        counts["images"] += 1

            if cover_bytes is not None:
                staged.append(repo.stage_cover(work, cover_bytes))

        self.logger.info(
            f"Edited manga {work_id}: {counts['groups']} group(s), "
            f"{counts['chapters']} chapter(s), {counts['images']} image(s)"
            f"{', new cover' if cover_bytes is not None else ''}"
        )
        return work
