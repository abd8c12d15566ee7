"""KEY=VALUE restore config loader with environment overrides and typed accessors."""

import os
from pathlib import Path

ENV_PREFIX = "SITE_RESTORE_"


def parse_config_lines(lines):
    """Parse dotenv-like lines into a dict; quotes around values are dropped."""
    values = {}
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = (part.strip() for part in line.split("=", 1))
        if not key:
            continue
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
            value = value[1:-1]
        values[key] = value
    return values


class WebConfig:
    """Restore settings from a config file, overridable per key from the environment.

    ``SITE_RESTORE_<KEY>`` environment variables win over the file, so a
    deployment can change one setting without editing ``restore.env``.
    """

    def __init__(self, config_path, base_dir, env_prefix=ENV_PREFIX, environ=None):
        self.config_path = Path(config_path)
        self.base_dir = Path(base_dir)
        self.env_prefix = env_prefix
        self.values = self._load(os.environ if environ is None else environ)

    def _load(self, environ):
        try:
            values = parse_config_lines(self.config_path.read_text(encoding="utf-8").splitlines())
        except OSError:
            values = {}
        if self.env_prefix:
            for name, value in environ.items():
                if name.startswith(self.env_prefix) and len(name) > len(self.env_prefix):
                    values[name[len(self.env_prefix):]] = value
        return values

    def _raw(self, name):
        value = self.values.get(name)
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    def get_str(self, name, default):
        value = self._raw(name)
        return default if value is None else value

    def _get_number(self, name, default, cast, minimum):
        raw = self._raw(name)
        if raw is None:
            return default
        try:
            parsed = cast(raw)
        except ValueError:
            return default
        if minimum is not None and parsed < minimum:
            return minimum
        return parsed

    def get_int(self, name, default, minimum=None):
        """Integer setting; values below ``minimum`` are clamped up."""
        return self._get_number(name, default, int, minimum)

    def get_float(self, name, default, minimum=None):
        return self._get_number(name, default, float, minimum)

    def get_path(self, name, default):
        """Path setting; relative values resolve from ``base_dir``."""
        raw = self._raw(name)
        if raw is None:
            return Path(default)
        candidate = Path(raw)
        if candidate.is_absolute():
            return candidate
        return self.base_dir / candidate
