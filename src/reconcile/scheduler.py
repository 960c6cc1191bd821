"""Cron scheduling for sync passes and memory maintenance."""

import json
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

import structlog
from apscheduler.events import EVENT_JOB_ERROR
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

logger = structlog.get_logger().bind(source="scheduler")


def _parse_cron(expr: str) -> CronTrigger:
    """5-field cron expression (min hour day month dow) to a CronTrigger."""
    minute, hour, day, month, day_of_week = expr.split()
    return CronTrigger(
        minute=minute, hour=hour, day=day, month=month, day_of_week=day_of_week
    )


class SyncScheduler:
    """Runs sync passes and memory decay, consolidation and cleanup on cron triggers."""

    def __init__(
        self,
        orchestrator,
        memory,
        schedule,
        cleanup_importance: float = 0.2,
        cleanup_days: int = 90,
        status_path: Path | None = None,
        on_error: Optional[Callable] = None,
    ):
        self.orchestrator = orchestrator
        self.memory = memory
        self.schedule = schedule
        self.cleanup_importance = cleanup_importance
        self.cleanup_days = cleanup_days
        self.status_path = status_path
        self.on_error = on_error
        self.scheduler = BackgroundScheduler()

    # --- jobs ---

    def run_sync(self) -> dict:
        report = self.orchestrator.run()
        self._write_status("ok", "sync", report.outcome_line)
        return report.to_dict()

    def run_decay(self) -> dict:
        return self.memory.apply_decay()

    def run_consolidation(self) -> int:
        return len(self.memory.consolidate())

    def run_cleanup(self) -> int:
        return self.memory.cleanup(
            importance_threshold=self.cleanup_importance, days_old=self.cleanup_days
        )

    def jobs(self) -> dict[str, tuple[Callable, str]]:
        return {
            "sync_pass": (self.run_sync, self.schedule.sync),
            "memory_decay": (self.run_decay, self.schedule.decay),
            "memory_consolidate": (self.run_consolidation, self.schedule.consolidate),
            "memory_cleanup": (self.run_cleanup, self.schedule.cleanup),
        }

    # --- lifecycle ---

    def _default_error_handler(self, event):
        logger.error(
            "job_error",
            job_id=event.job_id,
            exception=str(event.exception),
            traceback=event.traceback,
        )
        self._write_status("error", event.job_id, str(event.exception))
        if self.on_error:
            self.on_error(event)

    def _write_status(self, status: str, job_id: str, detail: str) -> None:
        if self.status_path is None:
            return
        self.status_path.parent.mkdir(parents=True, exist_ok=True)
        self.status_path.write_text(
            json.dumps(
                {
                    "status": status,
                    "job_id": job_id,
                    "detail": detail,
                    "timestamp": datetime.now().isoformat(),
                },
                indent=2,
            )
        )

    def start(self):
        for job_id, (func, cron) in self.jobs().items():
            self.scheduler.add_job(
                func, trigger=_parse_cron(cron), id=job_id, replace_existing=True
            )
            logger.info("job_scheduled", job_id=job_id, cron=cron)
        self.scheduler.add_listener(self._default_error_handler, EVENT_JOB_ERROR)
        self.scheduler.start()

    def stop(self):
        self.scheduler.shutdown()
