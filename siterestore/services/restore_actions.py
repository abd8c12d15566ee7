"""Restore glue actions: host checks, listings, and the final site switch-over."""

from pathlib import Path
import re
import secrets

from sqlalchemy.exc import SQLAlchemyError

from siterestore.core.errors import NotFound, PreconditionFailed, RestoreError
from siterestore.core.filesystem_utils import LocalFilesystem, format_mtime
from siterestore.services.database import connect, driver_message
from siterestore.state.cursors import parse_int_field

RESTORE_DIR_NAME = "xcloner-restore"
TEMP_FOLDER_PATTERN = re.compile(r"xcloner-(\w*)")
WP_CONFIG_NAME = "wp-config.php"
WP_CONFIG_KEYS = ("DB_NAME", "DB_USER", "DB_PASSWORD", "DB_HOST")


def check_system(ctx):
    """Verify the restore root is writable and report the upload limit."""
    probe = Path(ctx.ROOT_DIR) / f".restore-probe-{secrets.token_hex(8)}"
    try:
        probe.write_text("++", encoding="utf-8")
    except OSError as exc:
        raise PreconditionFailed(f"Could not write to new host: {exc}")
    try:
        probe.unlink()
    except OSError as exc:
        raise PreconditionFailed(f"Could not delete temporary file from new host: {exc}")
    ctx.log_restore_action(
        "check-system",
        command=f"Current filesystem max upload size is {ctx.MAX_UPLOAD_SIZE} bytes",
    )
    return {"max_upload_size": ctx.MAX_UPLOAD_SIZE, "status": True}


def _strip_suffix(value, suffix):
    if value.endswith(suffix):
        return value[: -len(suffix)]
    return value


def get_current_directory(ctx, restore_script_url, script_name=""):
    """Report the site directory and base URL the restore runs from."""
    directory = _strip_suffix(str(ctx.ROOT_DIR), RESTORE_DIR_NAME)
    url = restore_script_url or ""
    if script_name:
        url = url.replace(script_name, "")
    url = _strip_suffix(url, RESTORE_DIR_NAME + "/").rstrip("/")
    ctx.log_restore_action(
        "current-directory",
        command=f"Determining current url as {url} and path as {directory}",
    )
    return {
        "remote_mysql_host": "localhost",
        "remote_mysql_user": "",
        "remote_mysql_pass": "",
        "remote_mysql_db": "",
        "dir": directory,
        "restore_script_url": url,
    }


def list_backup_archives(ctx):
    """List uploaded archives newest first."""
    fs = LocalFilesystem(ctx.ARCHIVE_DIR)
    if not Path(ctx.ARCHIVE_DIR).is_dir():
        return []
    items = []
    for entry in fs.list():
        # Hidden files are not archives.
        if entry["is_dir"] or Path(entry["path"]).name.startswith("."):
            continue
        items.append({
            "path": Path(entry["path"]).name,
            "file_size": entry["size"],
            "lastModified": int(entry["mtime"]),
        })
    items.sort(key=lambda item: item["lastModified"], reverse=True)
    return items


def get_hash_from_backup(backup_file):
    """Return the short hash embedded near the end of a backup name."""
    if not backup_file:
        return None
    match = re.search(r"-(\w*).", backup_file[-10:])
    if match:
        return match.group(1)
    return None


def list_mysqldump_backups(ctx, remote_path, backup_file):
    """Find ``.sql`` dumps in ``xcloner-<hash>`` folders of the target site."""
    target = LocalFilesystem(remote_path)
    if not Path(remote_path).is_dir():
        raise NotFound(f"Restore path {remote_path} does not exists", path=str(remote_path))
    backup_hash = get_hash_from_backup(backup_file)
    dumps = []
    for folder in target.list():
        match = TEMP_FOLDER_PATTERN.search(folder["path"])
        if not folder["is_dir"] or not match:
            continue
        for item in target.list(folder["path"]):
            if item["is_dir"] or not item["path"].endswith(".sql"):
                continue
            ctx.log_restore_action("list-dumps", command=f"Found {item['path']} mysql backup file")
            dumps.append({
                "path": item["path"],
                "size": item["size"],
                "timestamp": format_mtime(item["mtime"], ctx.DISPLAY_TZ),
                "selected": "selected" if backup_hash and backup_hash == match.group(1) else "",
            })
    dumps.sort(key=lambda item: item["timestamp"], reverse=True)
    return dumps


def update_wp_config(ctx, remote_path, mysql_host, mysql_user, mysql_pass, mysql_db):
    """Point ``wp-config.php`` at the new database credentials."""
    wp_config = Path(remote_path) / WP_CONFIG_NAME
    try:
        content = wp_config.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise NotFound(f"Could not find the {WP_CONFIG_NAME} in {remote_path}", path=str(wp_config))
    values = dict(zip(WP_CONFIG_KEYS, (mysql_db, mysql_user, mysql_pass, mysql_host)))
    for key, value in values.items():
        pattern = re.compile(r"(?<=" + key + r"', ')(.*?)(?='\);)")
        content = pattern.sub(lambda m, value=value: value or "", content)
    original_mode = wp_config.stat().st_mode
    ctx.log_restore_action("restore-finish", command=f"Updating {WP_CONFIG_NAME} file with the new mysql details")
    try:
        wp_config.chmod(0o666)
        wp_config.write_text(content, encoding="utf-8")
    except OSError as exc:
        raise RestoreError(f"Could not write updated config data to {wp_config}: {exc}", path=str(wp_config))
    finally:
        try:
            wp_config.chmod(original_mode)
        except OSError:
            pass


def read_table_prefix(remote_path):
    """Return ``$table_prefix`` from the site's ``wp-config.php``."""
    wp_config = Path(remote_path) / WP_CONFIG_NAME
    try:
        content = wp_config.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise NotFound(f"Could not update the SITEURL and HOME, {WP_CONFIG_NAME} file not found", path=str(wp_config))
    match = re.search(r".*table_prefix.*=.*'(.*)'", content, re.IGNORECASE)
    if not match:
        raise RestoreError(f"Could not load wordpress table prefix from {WP_CONFIG_NAME} file.")
    prefix = match.group(1)
    if not re.fullmatch(r"\w*", prefix):
        raise RestoreError(f"Unsupported table prefix {prefix!r} in {WP_CONFIG_NAME}.")
    return prefix


def update_wp_url(ctx, remote_path, url, conn):
    """Store the restored site URL in the ``home`` and ``siteurl`` options."""
    prefix = read_table_prefix(remote_path)
    ctx.log_restore_action("restore-finish", command=f"Updating site url to {url}")
    for option in ("home", "siteurl"):
        try:
            conn.execute(
                f"UPDATE {prefix}options SET option_value = :url WHERE option_name = :option",
                {"url": url, "option": option},
            )
        except SQLAlchemyError as exc:
            raise RestoreError(f"Could not update the {option.upper()} option, error: {driver_message(exc)}")


def delete_backup_temporary_folders(ctx, remote_path):
    """Remove ``xcloner-*`` working folders left in the site root."""
    target = LocalFilesystem(remote_path)
    for entry in target.list():
        if not entry["is_dir"] or entry["path"] == RESTORE_DIR_NAME:
            continue
        if not TEMP_FOLDER_PATTERN.search(entry["path"]):
            continue
        ctx.log_restore_action("restore-finish", command=f"Deleting temporary folder {entry['path']}")
        target.delete_directory(entry["path"])


def delete_restore_artifacts(ctx, remote_path):
    """Best-effort removal of the restore log and restore folder."""
    try:
        Path(ctx.LOG_FILE).unlink(missing_ok=True)
        LocalFilesystem(remote_path).delete_directory(RESTORE_DIR_NAME)
    except (OSError, RestoreError) as exc:
        ctx.log_restore_action("restore-finish", rejection_message=str(exc))


def restore_finish(ctx, form, database_url=""):
    """Run the selected finishing steps and return the closing message."""
    remote_path = form.get("remote_path", "")
    if parse_int_field(form, "update_remote_site_url"):
        with connect(
            form.get("remote_mysql_host", ""),
            form.get("remote_mysql_user", ""),
            form.get("remote_mysql_pass", ""),
            form.get("remote_mysql_db", ""),
            url=database_url or None,
            log=ctx.log_restore_action,
        ) as conn:
            update_wp_config(
                ctx,
                remote_path,
                form.get("remote_mysql_host", ""),
                form.get("remote_mysql_user", ""),
                form.get("remote_mysql_pass", ""),
                form.get("remote_mysql_db", ""),
            )
            update_wp_url(ctx, remote_path, form.get("remote_restore_url", ""), conn)

    if parse_int_field(form, "delete_backup_temporary_folder"):
        delete_backup_temporary_folders(ctx, remote_path)

    if parse_int_field(form, "delete_backup_archive"):
        archive_dir = Path(ctx.ARCHIVE_DIR)
        LocalFilesystem(archive_dir.parent).delete_directory(archive_dir.name)

    delete_script = bool(parse_int_field(form, "delete_restore_script"))
    if delete_script:
        delete_restore_artifacts(ctx, remote_path)

    message = "Restore Process Finished.<br>"
    if delete_script:
        message += "<i>Please double check that the restore script has been deleted from the server.</i>"
    else:
        message += "<b>Please be sure to delete the restore script from the server.</b>"
    return message
