"""
Environment driven defaults for the dimap client.

Every value can be overridden from the command line; see dimap.cli.
"""

import os
from typing import Mapping

from dimap.core.connection import IMAP4_PORT, IMAP4_SSL_PORT

DEFAULT_TIMEOUT = 5.0
DEFAULT_LOG_LEVEL = "INFO"

_TRUE = ("1", "true", "yes", "on")


def _flag(environ: Mapping[str, str], name: str) -> bool:
    return environ.get(name, "0").strip().lower() in _TRUE


def _number(environ: Mapping[str, str], name: str, cast, default):
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(f"Invalid value for {name}: {raw!r}") from None


def load_config(environ: Mapping[str, str] = None) -> dict:
    """Lee la configuración de las variables DIMAP_*."""
    if environ is None:
        environ = os.environ

    use_ssl = _flag(environ, "DIMAP_SSL")
    return {
        "host": environ.get("DIMAP_HOST", "localhost"),
        "port": _number(environ, "DIMAP_PORT", int, IMAP4_SSL_PORT if use_ssl else IMAP4_PORT),
        "timeout": _number(environ, "DIMAP_TIMEOUT", float, DEFAULT_TIMEOUT),
        "ssl": use_ssl,
        "starttls": _flag(environ, "DIMAP_STARTTLS"),
        "user": environ.get("DIMAP_USER"),
        "password": environ.get("DIMAP_PASSWORD"),
        "log_level": environ.get("DIMAP_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper(),
    }
