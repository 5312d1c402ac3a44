"""
Team Resource Planner
Scheduled Jobs.

Jobs:
    - weekly_backup: copies the SQLite database (Fridays 23:00, BACKUP_CRON)
"""

from __future__ import annotations

import logging
from typing import Any

from app.services import backup_service
from app.services.scheduler_service import register_job

logger = logging.getLogger(__name__)


@register_job("weekly_backup", "BACKUP_CRON")
def weekly_backup(app) -> dict[str, Any]:
    """Weekly database backup"""
    tag = {"job_name": "weekly_backup"}
    logger.info("Starting scheduled weekly backup", extra=tag)
    path = backup_service.create_backup()
    if path is None:
        raise RuntimeError("Backup failed: source database not found")
    logger.info("Scheduled backup completed: %s", path, extra=tag)
    return {"created": path, "backups": len(backup_service.list_backups())}
