import logging
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.config import settings
from app.services.reclaimer import reclaim_worker

logger = logging.getLogger(__name__)


class SchedulerService:
    _instance = None
    _scheduler = None

    # TASK REGISTRY
    # To add a new periodic task, add an entry here and a static method below.
    _TASK_REGISTRY = {
        "cleanup": {
            "func": "run_cleanup_job",
            "interval_setting": "cleanup_interval_minutes",
            "description": "Orphan Image Cleanup"
        },
    }

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(SchedulerService, cls).__new__(cls)
            cls._scheduler = BackgroundScheduler()
        return cls._instance

    def start(self):
        """Start the scheduler if not already running."""
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("Scheduler started.")
            self.reschedule_jobs()

    def stop(self):
        """Shutdown the scheduler."""
        if self._scheduler.running:
            self._scheduler.shutdown()
            logger.info("Scheduler stopped.")

    def reschedule_jobs(self):
        self._scheduler.remove_all_jobs()
        logger.info("Rescheduling system tasks...")

        for job_id, config in self._TASK_REGISTRY.items():
            minutes = int(getattr(settings, config["interval_setting"]))

            if minutes <= 0:
                logger.info(f"{config['description']} disabled")
                continue

            self._scheduler.add_job(
                getattr(self, config["func"]),
                trigger=IntervalTrigger(minutes=minutes),
                id=job_id,
                replace_existing=True,
                coalesce=True,
                max_instances=1
            )
            logger.info(f"Scheduled {config['description']}: every {minutes} minute(s)")

    # --- JOB WRAPPERS ---

    @staticmethod
    def run_cleanup_job():
        """Does not sweep here; hands off to the reclaimer thread."""
        logger.info("Running Scheduled Cleanup...")
        reclaim_worker.trigger()


# Singleton accessor
scheduler_service = SchedulerService()
