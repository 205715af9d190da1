import threading
import time
import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from app.config import settings
from app.core.errors import ImageIOError
from app.database import SessionLocal
from app.models.image import Image
from app.services.image_store import ImageStore


def _orphan_filter(query):
    return query.filter(Image.chapter_id.is_(None), Image.manga_id.is_(None))


class OrphanReclaimer:
    """
    Sweeps Image rows that belong to no chapter and no work: file first,
    then row. Safe to run concurrently or repeatedly since both deletes are
    idempotent.
    """

    def __init__(self, db: Session, image_store: ImageStore):
        self.db = db
        self.image_store = image_store
        self.logger = logging.getLogger(__name__)

    def find_orphans(self) -> List[int]:
        rows = _orphan_filter(self.db.query(Image.id)).order_by(Image.id).all()
        return [row.id for row in rows]

    def _still_orphaned(self, image_id: int) -> bool:
        image = self.db.query(Image).populate_existing().filter(Image.id == image_id).first()
        return image is not None and image.is_orphan

    def sweep(self) -> dict:
        stats = {
            "found": 0,
            "files_deleted": 0,
            "files_missing": 0,
            "file_errors": 0,
            "rows_deleted": 0,
            "skipped": 0,
        }

        self.logger.info("Starting cleanup of orphan images...")

        orphan_ids = self.find_orphans()
        stats["found"] = len(orphan_ids)
        # End the read so every re-check below sees fresh data
        self.db.commit()

        self.logger.info(f"Found {len(orphan_ids)} orphan images.")

        for image_id in orphan_ids:

            # Re-attached since selection (or reclaimed by a parallel sweep)
            if not self._still_orphaned(image_id):
                stats["skipped"] += 1
                self.db.commit()
                continue

            try:
                if self.image_store.delete(image_id):
                    stats["files_deleted"] += 1
                    self.logger.info(f"Deleted file for image {image_id}")
                else:
                    stats["files_missing"] += 1
                    self.logger.warning(f"File for image {image_id} not found on disk.")
            except ImageIOError as e:
                # Row goes anyway; the file is left behind
                stats["file_errors"] += 1
                self.logger.error(f"Failed to delete file for image {image_id}: {e.detail}")

            # Conditional: a re-attach that slipped in keeps its row
            deleted = _orphan_filter(self.db.query(Image).filter(Image.id == image_id)) \
                .delete(synchronize_session=False)
            self.db.commit()

            if deleted:
                stats["rows_deleted"] += 1
                self.logger.info(f"Deleted database record for image {image_id}")
            else:
                stats["skipped"] += 1

        self.logger.info(f"Cleanup completed: {stats}")
        return stats


class ReclaimWorker:
    """
    Runs sweeps on a dedicated daemon thread so delete requests never wait
    for file I/O. trigger() only sets a flag; triggers that arrive while a
    sweep is running fold into one follow-up sweep.
    """
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(ReclaimWorker, cls).__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self.logger = logging.getLogger(__name__)

        self._wake = threading.Event()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        self.last_result: Optional[dict] = None
        self.last_error: Optional[str] = None
        self.last_run_at: Optional[datetime] = None

        self._initialized = True

    def start(self):
        if self._thread and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="orphan-reclaimer", daemon=True)
        self._thread.start()
        self.logger.info("Orphan reclaimer started.")

        # Pick up anything left over from before the restart
        self.trigger()

    def stop(self):
        if not self._thread:
            return

        self._stop_event.set()
        self._wake.set()
        self._thread.join(timeout=10)
        self._thread = None
        self.logger.info("Orphan reclaimer stopped.")

    def trigger(self):
        """Ask for a sweep. Returns immediately."""
        self._wake.set()

    def _loop(self):
        while not self._stop_event.is_set():
            self._wake.wait()
            if self._stop_event.is_set():
                break

            self._wake.clear()
            self.run_once()

    def run_once(self) -> Optional[dict]:
        """One sweep with its own session, retried with backoff while the DB is locked."""
        delay = settings.cleanup_backoff_seconds
        attempts = max(1, settings.cleanup_max_attempts)

        for attempt in range(1, attempts + 1):
            db = SessionLocal()
            try:
                result = OrphanReclaimer(db, ImageStore()).sweep()
                self.last_result = result
                self.last_error = None
                self.last_run_at = datetime.now(timezone.utc)
                return result
            except OperationalError as e:
                db.rollback()
                if attempt < attempts:
                    self.logger.warning(f"Orphan cleanup hit a DB error (attempt {attempt}/{attempts}). Retrying in {delay:.1f}s...")
                    time.sleep(delay)
                    delay *= 2
                    continue
                self.last_error = str(e)
                self.logger.error(f"Orphan cleanup gave up after {attempts} attempts: {e}")
            except Exception as e:
                db.rollback()
                self.last_error = str(e)
                self.logger.error(f"Orphan cleanup failed: {e}", exc_info=True)
                return None
            finally:
                db.close()

        return None


# Singleton accessor
reclaim_worker = ReclaimWorker()
