"""Connection settings: defaults, YAML file, environment and explicit overrides."""

from __future__ import annotations

import ipaddress
import logging
import os
import re
from pathlib import Path

import yaml

from printhost import parse_float_env
from printhost.printers import KlipperClient, OctoPrintClient, ProtocolClient

logger = logging.getLogger(__name__)

FLAVORS: dict[str, type[ProtocolClient]] = {
    "klipper": KlipperClient,
    "octoprint": OctoPrintClient,
}

DEFAULTS: dict[str, object] = {
    "host": "",
    "port": KlipperClient.DEFAULT_PORT,
    "api_key": "",
    "flavor": "klipper",
    "timeout": KlipperClient.DEFAULT_TIMEOUT,
}

_KEYS = ("host", "port", "api_key", "flavor", "timeout")


def get_default_config_path() -> Path:
    """Return the default path to the config file (~/.printhost/config.yaml)."""
    return Path.home() / ".printhost" / "config.yaml"


def _split_host(host: str) -> tuple[str, int | None]:
    """Normalise *host* and split off a trailing ``:port`` if there is one.

    Strips an ``http://`` scheme and trailing slashes.  Bare IPv6 literals
    are left whole; a port after an IPv6 address needs brackets.
    """
    host = host.strip()
    host = re.sub(r"^http://", "", host, flags=re.IGNORECASE).rstrip("/")

    bracketed = re.match(r"^\[([^\]]+)\](?::(\d+))?$", host)
    if bracketed:
        port = bracketed.group(2)
        return bracketed.group(1), int(port) if port else None

    try:
        ipaddress.IPv6Address(host)
        return host, None
    except ValueError:
        pass

    name, sep, port = host.rpartition(":")
    if sep and port.isdigit():
        return name, int(port)
    return host, None


def _load_config_file(config_path: Path) -> dict[str, object]:
    """Read and parse a YAML config file, returning an empty dict on any failure."""
    if not config_path.is_file():
        return {}
    try:
        with config_path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
        if isinstance(data, dict):
            return data
        return {}
    except (yaml.YAMLError, OSError) as exc:
        logger.warning("Ignoring unreadable config file %s: %s", config_path, exc)
        return {}


def load_config(
    host: str | None = None,
    port: int | None = None,
    api_key: str | None = None,
    flavor: str | None = None,
    timeout: float | None = None,
    config_path: str | None = None,
) -> dict[str, object]:
    """Resolve configuration using a three-tier precedence hierarchy.

    Priority (highest first):
        1. Explicit parameters passed directly (e.g. from CLI flags).
        2. Environment variables ``PRINTHOST_HOST``, ``PRINTHOST_PORT``,
           ``PRINTHOST_API_KEY``, ``PRINTHOST_FLAVOR`` and ``PRINTHOST_TIMEOUT``.
        3. Values read from the YAML config file at *config_path* (or the
           default location).

    A port embedded in the host (``klipper.local:7126``) wins over the
    ``port`` setting from any tier.  When the flavor is OctoPrint and no
    tier set a port, the OctoPrint default port is used.

    Returns a dict with keys ``host``, ``port``, ``api_key``, ``flavor``
    and ``timeout``.
    """
    config: dict[str, object] = dict(DEFAULTS)
    port_set = False

    path = Path(config_path) if config_path else get_default_config_path()
    file_values = _load_config_file(path)
    for key in _KEYS:
        if key in file_values and file_values[key] is not None:
            config[key] = file_values[key]
            port_set = port_set or key == "port"

    env = {
        "host": os.environ.get("PRINTHOST_HOST"),
        "port": os.environ.get("PRINTHOST_PORT"),
        "api_key": os.environ.get("PRINTHOST_API_KEY"),
        "flavor": os.environ.get("PRINTHOST_FLAVOR"),
    }
    for key, value in env.items():
        if value:
            config[key] = value
            port_set = port_set or key == "port"
    if os.environ.get("PRINTHOST_TIMEOUT", "").strip():
        config["timeout"] = parse_float_env("PRINTHOST_TIMEOUT", KlipperClient.DEFAULT_TIMEOUT)

    explicit = {"host": host, "port": port, "api_key": api_key, "flavor": flavor, "timeout": timeout}
    for key, value in explicit.items():
        if value is not None:
            config[key] = value
            port_set = port_set or key == "port"

    config["flavor"] = str(config["flavor"]).strip().lower()
    if not port_set and config["flavor"] == "octoprint":
        config["port"] = OctoPrintClient.DEFAULT_PORT

    bare_host, host_port = _split_host(str(config["host"] or ""))
    config["host"] = bare_host
    if host_port is not None:
        config["port"] = host_port

    try:
        config["port"] = int(config["port"])  # type: ignore[arg-type]
    except (TypeError, ValueError):
        logger.warning("Invalid port %r, using default %s", config["port"], DEFAULTS["port"])
        config["port"] = DEFAULTS["port"]
    try:
        config["timeout"] = float(config["timeout"])  # type: ignore[arg-type]
    except (TypeError, ValueError):
        logger.warning("Invalid timeout %r, using default %s", config["timeout"], DEFAULTS["timeout"])
        config["timeout"] = DEFAULTS["timeout"]
    config["api_key"] = str(config["api_key"] or "")

    return config


def init_config(
    host: str,
    api_key: str = "",
    flavor: str = "klipper",
    port: int | None = None,
    config_path: str | None = None,
) -> Path:
    """Create the config directory and write an initial config file.

    Returns the :class:`~pathlib.Path` to the newly created config file.
    """
    path = Path(config_path) if config_path else get_default_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    bare_host, host_port = _split_host(host)
    flavor = flavor.lower()
    if port is None:
        port = host_port if host_port is not None else FLAVORS.get(flavor, KlipperClient).DEFAULT_PORT

    data = {
        "host": bare_host,
        "port": port,
        "api_key": api_key,
        "flavor": flavor,
        "timeout": DEFAULTS["timeout"],
    }

    with path.open("w", encoding="utf-8") as fh:
        yaml.safe_dump(data, fh, default_flow_style=False, sort_keys=False)

    return path


def validate_config(config: dict[str, object]) -> tuple[bool, str | None]:
    """Validate a resolved configuration dict.

    Returns ``(True, None)`` when the config is valid, or
    ``(False, error_message)`` describing the first problem found.
    """
    host = config.get("host", "")
    if not isinstance(host, str) or not host:
        return False, "host is required"

    if re.match(r"^https://", host, re.IGNORECASE):
        return False, "https is not supported; use a plain http host"

    if re.search(r"[\s/]", host):
        return False, "host does not appear to be a valid hostname or address"

    port = config.get("port")
    if not isinstance(port, int) or isinstance(port, bool) or not 0 < port < 65536:
        return False, "port must be between 1 and 65535"

    flavor = config.get("flavor")
    if flavor not in FLAVORS:
        return False, f"flavor must be one of: {', '.join(sorted(FLAVORS))}"

    timeout = config.get("timeout")
    if not isinstance(timeout, (int, float)) or timeout <= 0:
        return False, "timeout must be a positive number of seconds"

    if flavor == "octoprint":
        api_key = config.get("api_key", "")
        if not isinstance(api_key, str) or not api_key.strip():
            return False, "api_key is required for OctoPrint"

    return True, None


def client_from_config(config: dict[str, object]) -> ProtocolClient:
    """Build the client matching ``config["flavor"]``.

    Raises:
        ValueError: If the flavor is unknown or the host/port are invalid.
    """
    flavor = str(config.get("flavor", "klipper"))
    client_cls = FLAVORS.get(flavor)
    if client_cls is None:
        raise ValueError(f"Unknown flavor: {flavor!r}")

    host = str(config["host"])
    try:
        address: str | ipaddress.IPv4Address | ipaddress.IPv6Address = ipaddress.ip_address(host)
    except ValueError:
        address = host

    return client_cls(
        address,
        int(config["port"]),  # type: ignore[arg-type]
        str(config.get("api_key") or "") or None,
        timeout=float(config["timeout"]),  # type: ignore[arg-type]
    )
