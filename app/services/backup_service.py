"""SQLite database backups.

Backups are plain file copies named
``database_backup_<UTC timestamp>.sqlite`` in BACKUP_DIR; only the newest
MAX_BACKUPS files are kept. The weekly run is registered in
app.services.scheduled_jobs; ``flask backup`` runs one immediately.
"""
import logging
import os
import shutil
from datetime import datetime, timezone

from flask import current_app

from app.models import db

logger = logging.getLogger(__name__)

BACKUP_PREFIX = "database_backup_"
BACKUP_SUFFIX = ".sqlite"


def _timestamp(now: datetime) -> str:
    # 2026-01-02T23-00-00-000Z
    return now.strftime("%Y-%m-%dT%H-%M-%S-") + f"{now.microsecond // 1000:03d}Z"


def database_path() -> str | None:
    """Filesystem path of the SQLite database, None for other engines or :memory:."""
    url = db.engine.url
    if url.get_backend_name() != "sqlite" or not url.database or url.database == ":memory:":
        return None
    return url.database


def _backup_files(backup_dir: str) -> list[dict]:
    if not os.path.isdir(backup_dir):
        return []
    files = []
    for name in os.listdir(backup_dir):
        if not (name.startswith(BACKUP_PREFIX) and name.endswith(BACKUP_SUFFIX)):
            continue
        path = os.path.join(backup_dir, name)
        stat = os.stat(path)
        files.append({"name": name, "path": path, "size": stat.st_size, "mtime": stat.st_mtime})
    files.sort(key=lambda f: (f["mtime"], f["name"]), reverse=True)
    return files


def cleanup_old_backups(backup_dir: str | None = None, max_backups: int | None = None) -> list[str]:
    """Delete all but the newest ``max_backups`` backups; returns deleted names."""
    backup_dir = backup_dir or current_app.config["BACKUP_DIR"]
    max_backups = max_backups if max_backups is not None else current_app.config["MAX_BACKUPS"]

    deleted = []
    for old in _backup_files(backup_dir)[max_backups:]:
        os.remove(old["path"])
        deleted.append(old["name"])
        logger.info("Removed old backup %s", old["name"])
    return deleted


def create_backup(source: str | None = None, backup_dir: str | None = None) -> str | None:
    """Copy the database file into the backup directory and prune old copies.

    Returns:
        Path of the new backup, or None when there is no database file.
    """
    source = source or database_path()
    backup_dir = backup_dir or current_app.config["BACKUP_DIR"]
    if not source or not os.path.exists(source):
        logger.error("Backup skipped: source database not found (%s)", source)
        return None

    os.makedirs(backup_dir, exist_ok=True)
    name = f"{BACKUP_PREFIX}{_timestamp(datetime.now(timezone.utc))}{BACKUP_SUFFIX}"
    target = os.path.join(backup_dir, name)
    shutil.copy2(source, target)
    # copy2 keeps the source mtime; pruning relies on creation order
    os.utime(target, None)

    size_mb = os.path.getsize(target) / (1024 * 1024)
    logger.info("Created backup %s (%.2f MB)", name, size_mb)
    cleanup_old_backups(backup_dir)
    return target


def list_backups(backup_dir: str | None = None) -> list[dict]:
    """Existing backups, newest first."""
    backup_dir = backup_dir or current_app.config["BACKUP_DIR"]
    return [
        {
            "name": f["name"],
            "path": f["path"],
            "size": f["size"],
            "sizeMB": f"{f['size'] / (1024 * 1024):.2f}",
            "created": datetime.fromtimestamp(f["mtime"], tz=timezone.utc).isoformat(),
        }
        for f in _backup_files(backup_dir)
    ]
