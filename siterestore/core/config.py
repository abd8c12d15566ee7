"""Runtime configuration helpers for the restore service."""

import os
from pathlib import Path
from zoneinfo import ZoneInfo

from siterestore.core.action_logging import LOG_ROTATE_BACKUP_COUNT, LOG_ROTATE_MAX_BYTES, ActionLog
from siterestore.core.web_config import WebConfig
from siterestore.state import RestoreContext

CONFIG_ENV_NAME = "SITE_RESTORE_CONFIG"
DEFAULT_CONFIG_NAME = "restore.env"
DEFAULT_LOG_NAME = "site_restore.log"
DEFAULT_MAX_UPLOAD_SIZE = 64 * 1024 * 1024


def resolve_config_path(app_dir):
    """Return the config file chosen by env var or the app-dir default."""
    configured = (os.environ.get(CONFIG_ENV_NAME) or "").strip()
    if configured:
        return Path(configured)
    return Path(app_dir) / DEFAULT_CONFIG_NAME


def build_restore_context(cfg, app_dir):
    """Build the RestoreContext from a loaded WebConfig."""
    app_dir = Path(app_dir)
    root_dir = cfg.get_path("ROOT_DIR", app_dir)
    log_dir = cfg.get_path("LOG_DIR", root_dir)
    log_file = log_dir / cfg.get_str("LOG_FILE", DEFAULT_LOG_NAME)
    try:
        display_tz = ZoneInfo(cfg.get_str("DISPLAY_TZ", "UTC"))
    except Exception:
        display_tz = ZoneInfo("UTC")
    action_log = ActionLog(
        display_tz,
        log_file,
        max_bytes=cfg.get_int("LOG_MAX_BYTES", LOG_ROTATE_MAX_BYTES, minimum=0),
        backup_count=cfg.get_int("LOG_BACKUP_COUNT", LOG_ROTATE_BACKUP_COUNT, minimum=0),
    )
    return RestoreContext(
        ROOT_DIR=root_dir,
        ARCHIVE_DIR=cfg.get_path("ARCHIVE_DIR", root_dir / "archives"),
        LOG_DIR=log_dir,
        LOG_FILE=log_file,
        DISPLAY_TZ=display_tz,
        MYSQL_RECORDS_LIMIT=cfg.get_int("MYSQL_RECORDS_LIMIT", 250, minimum=1),
        EXTRACT_MAX_SECONDS=cfg.get_float("EXTRACT_MAX_SECONDS", 10.0, minimum=0.1),
        EXTRACT_MAX_BYTES=cfg.get_int("EXTRACT_MAX_BYTES", 64 * 1024 * 1024, minimum=1),
        MAX_UPLOAD_SIZE=cfg.get_int("MAX_UPLOAD_SIZE", DEFAULT_MAX_UPLOAD_SIZE, minimum=1024),
        DATABASE_URL=cfg.get_str("DATABASE_URL", ""),
        log_restore_action=action_log.action,
        log_restore_exception=action_log.exception,
    )


def load_restore_context(app_dir):
    """Read the config file for ``app_dir`` and return the RestoreContext."""
    cfg = WebConfig(resolve_config_path(app_dir), app_dir)
    return cfg, build_restore_context(cfg, app_dir)


def apply_default_flask_config(app, ctx):
    """Apply baseline Flask runtime config values."""
    # Chunks arrive as multipart bodies slightly larger than the payload itself.
    app.config["MAX_CONTENT_LENGTH"] = ctx.MAX_UPLOAD_SIZE + 1024 * 1024
    app.json.sort_keys = False
