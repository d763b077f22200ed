"""
Session options and the host context they are resolved against.

Callers (usually a browser front end posting JSON) hand over camelCase
dicts; ``SessionOptions.from_dict`` accepts those as well as snake_case keys.
"""

from __future__ import annotations
import os
import sys
import logging
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional

import yaml

logger = logging.getLogger(__name__)


class SessionType(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


# camelCase keys used by front ends -> dataclass field names
_OPTION_ALIASES = {
    "privateKey": "private_key",
    "readyTimeout": "ready_timeout",
    "keepaliveInterval": "keepalive_interval",
}

_PROXY_ALIASES = {
    "proxyIp": "proxy_ip",
    "proxyPort": "proxy_port",
    "proxyType": "proxy_type",
    "proxyUsername": "proxy_username",
    "proxyPassword": "proxy_password",
    "proxyTimeout": "timeout",
}


def _normalize_keys(data: Mapping[str, Any], aliases: dict, cls) -> dict:
    """Map aliases onto field names and drop unknown keys."""
    valid_fields = {f.name for f in fields(cls)}
    out = {}
    for key, value in data.items():
        key = aliases.get(key, key)
        if key in valid_fields:
            out[key] = value
        else:
            logger.debug(f"Ignoring unknown {cls.__name__} key: {key}")
    return out


@dataclass(frozen=True)
class HostContext:
    """
    Snapshot of the host process environment.

    Sessions read home directory, agent socket and display from here
    instead of os.environ so tests can fabricate any host.
    """
    environ: Mapping[str, str] = field(default_factory=dict)
    platform: str = sys.platform

    @classmethod
    def current(cls) -> HostContext:
        """Capture the running process."""
        return cls(environ=MappingProxyType(dict(os.environ)), platform=sys.platform)

    @property
    def is_windows(self) -> bool:
        return self.platform.startswith("win")

    @property
    def home_dir(self) -> Optional[str]:
        key = "USERPROFILE" if self.platform == "win32" else "HOME"
        return self.environ.get(key)

    @property
    def agent_socket(self) -> Optional[str]:
        return self.environ.get("SSH_AUTH_SOCK") or None

    @property
    def display(self) -> Optional[str]:
        return self.environ.get("DISPLAY") or None


@dataclass(frozen=True)
class ProxyOptions:
    """SOCKS/HTTP proxy the SSH connection is tunneled through."""
    proxy_ip: Optional[str] = None
    proxy_port: Optional[int] = None
    proxy_type: str = "5"
    proxy_username: Optional[str] = None
    proxy_password: Optional[str] = None
    timeout: Optional[float] = None

    @property
    def enabled(self) -> bool:
        return bool(self.proxy_ip and self.proxy_port)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ProxyOptions:
        values = _normalize_keys(data, _PROXY_ALIASES, cls)
        if values.get("proxy_type") is not None:
            values["proxy_type"] = str(values["proxy_type"]).lower()
        return cls(**values)


@dataclass(frozen=True)
class SessionOptions:
    """
    Everything needed to open a session.

    Only ``type`` is always required; remote sessions also need ``host``
    and ``username``. Unset geometry, term and timeouts fall back to
    AppSettings.
    """
    type: Optional[str] = None
    cols: Optional[int] = None
    rows: Optional[int] = None
    term: Optional[str] = None

    # Remote only
    host: Optional[str] = None
    port: int = 22
    username: Optional[str] = None
    password: Optional[str] = None
    private_key: Optional[str] = None
    passphrase: Optional[str] = None
    x11: Any = False
    proxy: Optional[ProxyOptions] = None
    ready_timeout: Optional[float] = None
    keepalive_interval: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SessionOptions:
        """Build options from a camelCase or snake_case mapping."""
        values = _normalize_keys(data, _OPTION_ALIASES, cls)
        proxy = values.get("proxy")
        if isinstance(proxy, Mapping):
            values["proxy"] = ProxyOptions.from_dict(proxy)
        return cls(**values)

    @classmethod
    def load(cls, path: Path) -> SessionOptions:
        """Load a single session profile from YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f)
        if not isinstance(data, Mapping):
            raise ValueError(f"Invalid session profile {path}: expected a mapping")
        return cls.from_dict(data)

    @property
    def session_type(self) -> Optional[SessionType]:
        """The declared type, or None if it names nothing we implement."""
        try:
            return SessionType(self.type)
        except ValueError:
            return None


def load_profiles(path: Path) -> dict[str, SessionOptions]:
    """
    Load named session profiles from a YAML file.

    Expected format:
        - name: web01
          type: remote
          host: 10.0.0.5
          username: admin
        - name: shell
          type: local
    """
    with open(path) as f:
        data = yaml.safe_load(f) or []

    if not isinstance(data, list):
        raise ValueError("Invalid profiles file: expected list of profiles")

    profiles = {}
    for entry in data:
        if not isinstance(entry, Mapping):
            logger.warning(f"Skipping non-mapping profile entry in {path}: {entry!r}")
            continue
        name = entry.get("name")
        if not name:
            logger.warning(f"Skipping unnamed profile in {path}")
            continue
        profiles[name] = SessionOptions.from_dict(entry)
    return profiles


def build_connect_options(
    options: SessionOptions,
    context: HostContext,
    ready_timeout: float = None,
    keepalive_interval: int = None,
) -> dict:
    """
    Normalize session options into the credential set used to connect.

    Empty password/passphrase are removed rather than sent, x11 is always
    a bool, and keyboard-interactive is always attempted.
    """
    opts = {
        "try_keyboard_interactive": True,
        "ready_timeout": options.ready_timeout if options.ready_timeout is not None else ready_timeout,
        "keepalive_interval": (
            options.keepalive_interval
            if options.keepalive_interval is not None
            else keepalive_interval
        ),
        "host": options.host,
        "port": options.port,
        "username": options.username,
        "x11": options.x11,
        "password": options.password,
        "private_key": options.private_key,
        "passphrase": options.passphrase,
    }
    agent = context.agent_socket
    if agent:
        opts["agent"] = agent

    for key in ("password", "passphrase", "private_key"):
        if not opts[key]:
            del opts[key]

    opts["x11"] = bool(opts["x11"])
    return opts
