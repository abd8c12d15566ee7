"""Restore action route registration for the browser-driven restore loop."""
from pathlib import Path
import tempfile

from flask import request

from siterestore.core.errors import NotFound, PreconditionFailed, RestoreError, WriteError
from siterestore.core.filesystem_utils import format_mtime, safe_filename_in_dir
from siterestore.core.response_helpers import apply_cors_headers, error_response, send_response
from siterestore.services import archive_extractor
from siterestore.services import restore_actions
from siterestore.services.chunk_writer import write_chunk
from siterestore.services.database import connect
from siterestore.services.dump_importer import import_slice
from siterestore.services.serialized_rewriter import build_rewrite_specs
from siterestore.state.cursors import ExtractionCursor, ImportCursor, parse_int_field

LIST_MTIME_FORMAT = "%d %b,%Y %H:%M"


def _form_str(name):
    return (request.form.get(name) or "").strip()


def _spool_upload(upload):
    """Save an uploaded chunk to a detached temp file and return its path."""
    with tempfile.NamedTemporaryFile(prefix="site-restore-chunk-", delete=False) as tmp:
        try:
            upload.save(tmp)
        except Exception:
            tmp.close()
            Path(tmp.name).unlink(missing_ok=True)
            raise
    return tmp.name


def register_restore_routes(app, ctx):
    """Register the single action endpoint and its CORS handling."""

    def write_file_action():
        """Append one uploaded chunk to an archive in the archive directory."""
        filename = _form_str("file")
        if not filename:
            raise WriteError("File not set")
        archive_dir = Path(ctx.ARCHIVE_DIR)
        archive_dir.mkdir(parents=True, exist_ok=True)
        safe_name = safe_filename_in_dir(archive_dir, filename)
        if safe_name is None:
            raise WriteError(f"Invalid target file {filename}")
        start = parse_int_field(request.form, "start")
        upload = request.files.get("blob")
        if upload is not None:
            # Spooled outside the archive directory; the writer removes it.
            payload = _spool_upload(upload)
        elif "blob" in request.form:
            payload = request.form["blob"].encode("utf-8")
        else:
            raise WriteError("Upload failed, did not receive any binary data")
        written = write_chunk(archive_dir / safe_name, start, start == 0, payload, log=ctx.log_restore_action)
        return send_response(200, written)

    def restore_mysql_backup_action():
        """Import one slice of a SQL dump into the target database."""
        remote_path = _form_str("remote_path")
        dump_name = _form_str("mysqldump_file")
        dump_path = Path(remote_path) / dump_name
        if not dump_name or not dump_path.is_file():
            raise NotFound(f"Mysql backup file {dump_path} does not exists", path=str(dump_path))
        cursor = ImportCursor.from_form(request.form)
        specs = build_rewrite_specs(
            _form_str("wp_home_url"),
            _form_str("remote_restore_url"),
            _form_str("wp_site_url"),
            _form_str("restore_site_url"),
        )
        with connect(
            _form_str("remote_mysql_host"),
            _form_str("remote_mysql_user"),
            request.form.get("remote_mysql_pass") or "",
            _form_str("remote_mysql_db"),
            charset=_form_str("charset_of_file") or None,
            url=ctx.DATABASE_URL or None,
            log=ctx.log_restore_action,
        ) as conn:
            result = import_slice(
                dump_path,
                cursor.byte_offset,
                specs,
                ctx.MYSQL_RECORDS_LIMIT,
                conn,
                override_statement=(request.form.get("query") or "").strip() or None,
                encoding=conn.encoding,
                log=ctx.log_restore_action,
            )
        payload = {
            "backup_file": dump_name,
            "backup_size": dump_path.stat().st_size,
            "finished": 1 if result.finished else 0,
            **cursor.advance(result.next_offset, result.executed_count).to_payload(),
        }
        if result.error is not None:
            payload.update({
                "query_error": True,
                "query": result.error.statement,
                "message": result.error.message,
            })
            return send_response(result.error.status, payload)
        return send_response(200, payload)

    def restore_backup_to_path_action():
        """Extract one slice of the selected backup into the target path."""
        backup_file = _form_str("backup_file")
        remote_path = _form_str("remote_path")
        if not remote_path:
            raise NotFound("Restore path not set")
        result = archive_extractor.extract(
            ctx,
            backup_file,
            remote_path,
            include_filter=_form_str("filter_files"),
            exclude_filter="",
            cursor=ExtractionCursor.from_form(request.form),
        )
        payload = {
            "backup_file": backup_file,
            "total_size": result.total_size,
            "extracted_files": [f"{entry['path']} ({entry['size']} bytes)" for entry in result.entries],
            **result.cursor.to_payload(),
        }
        return send_response(200, payload)

    def list_backup_files_action():
        """List archive members for display, one slice per call."""
        backup_file = _form_str("file")
        try:
            result = archive_extractor.list_contents(ctx, backup_file, ExtractionCursor.from_form(request.form))
        except PreconditionFailed:
            return send_response(200, {
                "error": True,
                "message": "Backup archive is encrypted, please decrypt it first before you can list it's content.",
            })
        files = [
            {
                "path": entry["path"],
                "size": entry["size"],
                "mtime": format_mtime(entry["mtime"], ctx.DISPLAY_TZ, LIST_MTIME_FORMAT),
            }
            for entry in result.entries
        ]
        payload = {"files": files, "total_size": result.total_size, **result.cursor.to_payload()}
        return send_response(200, payload)

    def list_backup_archives_action():
        """List uploaded backup archives."""
        return send_response(200, {"files": restore_actions.list_backup_archives(ctx)})

    def list_mysqldump_backups_action():
        """List SQL dumps extracted into the target path."""
        files = restore_actions.list_mysqldump_backups(ctx, _form_str("remote_path"), _form_str("backup_file"))
        return send_response(200, {"files": files})

    def get_current_directory_action():
        """Report the restore directory and URL."""
        payload = restore_actions.get_current_directory(
            ctx, _form_str("restore_script_url"), script_name=request.script_root.rsplit("/", 1)[-1]
        )
        return send_response(200, payload)

    def restore_finish_action():
        """Switch the restored site over and clean up."""
        message = restore_actions.restore_finish(ctx, request.form, database_url=ctx.DATABASE_URL)
        return send_response(200, message)

    actions = {
        "write_file": write_file_action,
        "restore_mysql_backup": restore_mysql_backup_action,
        "restore_backup_to_path": restore_backup_to_path_action,
        "list_backup_files": list_backup_files_action,
        "list_backup_archives": list_backup_archives_action,
        "list_mysqldump_backups": list_mysqldump_backups_action,
        "get_current_directory": get_current_directory_action,
        "restore_finish": restore_finish_action,
    }

    @app.after_request
    def add_cors_headers(response):
        """Attach CORS headers to every restore response."""
        return apply_cors_headers(response)

    # Route: /
    @app.route("/", methods=["GET", "POST", "OPTIONS"])
    def restore_action():
        """Dispatch the posted ``action`` field; no action runs the host check."""
        if request.method == "OPTIONS":
            return ("", 204)
        api_id = _form_str("API_ID")
        if api_id:
            ctx.log_restore_action("request", command=f"Processing ajax request ID {api_id[:15]}")
        action = _form_str("action")
        try:
            if not action:
                return send_response(200, restore_actions.check_system(ctx))
            handler = actions.get(action)
            if handler is None:
                return send_response(417, f"{action}_action does not exists")
            ctx.log_restore_action("dispatch", command=f"Starting action {action}_action")
            return handler()
        except RestoreError as exc:
            ctx.log_restore_action(action or "check-system", rejection_message=exc.message)
            return error_response(exc)
        except Exception as exc:
            ctx.log_restore_exception(f"action/{action or 'check_system'}", exc)
            return send_response(417, str(exc) or type(exc).__name__)
