"""URL search/replace that keeps length-prefixed serialized strings consistent.

Stored option values often hold serialized structures such as
``a:1:{i:0;s:18:"http://example.com";}``. Replacing a URL inside one changes
the content length, so the ``s:<N>:`` prefixes are recomputed afterwards.
"""

from dataclasses import dataclass
from functools import partial
import re

from siterestore.core.action_logging import noop_log_action

# s:<N>:"<content>"; in plain or SQL-escaped (s:<N>:\"<content>\";) form.
_SERIALIZED_STRING = re.compile(r's:(\d+):(\\?)"(?:\\?"|(.*?[^\\])\\?");')

_MYSQL_UNESCAPES = {
    "\\": "\\",
    "0": "\0",
    "n": "\n",
    "r": "\r",
    "Z": "\x1a",
    "'": "'",
    '"': '"',
}
_MYSQL_ESCAPE = re.compile(r"\\(.)", re.DOTALL)


@dataclass(frozen=True)
class RewriteSpec:
    """One (search, replace) URL pair applied to every dump statement."""
    search: str
    replace: str


def build_rewrite_specs(home_url, restore_home_url, site_url, restore_site_url):
    """Return the active home/site rewrite pairs, longer source URL first.

    When the home URL is shorter than the site URL the pairs are swapped so a
    short URL never partially matches inside the longer one. A pair is only
    active when both of its values are non-empty.
    """
    home_url = home_url or ""
    restore_home_url = restore_home_url or ""
    site_url = site_url or ""
    restore_site_url = restore_site_url or ""
    if site_url and home_url and len(home_url) < len(site_url):
        home_url, site_url = site_url, home_url
        restore_home_url, restore_site_url = restore_site_url, restore_home_url
    specs = []
    for search, replace in ((home_url, restore_home_url), (site_url, restore_site_url)):
        if search and replace:
            specs.append(RewriteSpec(search, replace))
    return specs


def has_serialized(text):
    """Cheap check for text that probably embeds a serialized structure."""
    return all(token in text for token in ("{", "}", ";", ":"))


def unescape_mysql(value):
    """Undo mysqldump string escaping (``\\n``, ``\\'``, ``\\"`` ...)."""
    return _MYSQL_ESCAPE.sub(lambda m: _MYSQL_UNESCAPES.get(m.group(1), m.group(1)), value)


def _fix_length(encoding, match):
    escaped = match.group(2)
    content = match.group(3) or ""
    raw = unescape_mysql(content) if escaped else content
    quote = '\\"' if escaped else '"'
    size = len(raw.encode(encoding, "surrogateescape"))
    return f"s:{size}:{quote}{content}{quote};"


def do_serialized_fix(text, encoding="utf-8"):
    """Recompute every ``s:<N>:`` prefix from the byte length of its content.

    The length is counted in ``encoding``, the charset the statement is sent in.
    """
    return _SERIALIZED_STRING.sub(partial(_fix_length, encoding), text)


def rewrite(text, search, replace, encoding="utf-8", log=noop_log_action):
    """Replace ``search`` by ``replace`` and repair serialized string lengths.

    The length repair is best effort: if it fails or yields nothing the plain
    replaced text is returned. Only text holding all of ``{ } ; :`` is
    repaired, so a lone ``s:5:"hello";`` fragment keeps its old prefix.
    """
    log("url-replace", command=f"Doing url replace on query with length {len(text)}")
    replaced = text.replace(search, replace)
    result = replaced
    if has_serialized(replaced):
        log("url-replace", command="Query contains serialized data, doing serialized size fix")
        try:
            result = do_serialized_fix(replaced, encoding)
        except (re.error, RecursionError, ValueError, LookupError) as exc:
            log("url-replace", rejection_message=f"Serialization fix failed: {exc}")
            result = ""
        if not result:
            log("url-replace", command="Serialization probably failed here, keeping plain replace")
            result = replaced
    log("url-replace", command=f"New query length is {len(result)}")
    return result


def apply_rewrites(statement, specs, encoding="utf-8", log=noop_log_action):
    """Apply each spec whose search URL occurs in ``statement``."""
    for spec in specs:
        if spec.search in statement:
            statement = rewrite(statement, spec.search, spec.replace, encoding=encoding, log=log)
    return statement
