"""Restore service that rebuilds a website from an uploaded backup.

This app provides:
- Chunked upload of backup archives
- Resumable, time-boxed extraction of single and multipart tar backups
- Sliced SQL dump import with URL rewriting
- The final site switch-over and cleanup
"""

from pathlib import Path

from siterestore.application_factory import create_app
from siterestore.core.config import load_restore_context

APP_DIR = Path.cwd()


def build_app(app_dir=None):
    """Load the config for ``app_dir`` and return ``(cfg, ctx, app)``."""
    cfg, ctx = load_restore_context(app_dir or APP_DIR)
    return cfg, ctx, create_app(ctx)


def main():
    cfg, ctx, app = build_app()
    host = cfg.get_str("WEB_HOST", "127.0.0.1")
    port = cfg.get_int("WEB_PORT", 8080, minimum=1)
    ctx.log_restore_action("boot-start", command=f"host={host} port={port} archives={ctx.ARCHIVE_DIR}")
    try:
        Path(ctx.ARCHIVE_DIR).mkdir(parents=True, exist_ok=True)
        app.run(host=host, port=port)
    except Exception as exc:
        ctx.log_restore_exception("restore_main", exc)
        raise


if __name__ == "__main__":
    main()
