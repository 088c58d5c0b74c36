# MIT License
# Copyright (c) 2025 Gordon Trevorrow
# Permission is hereby granted, free of charge, to any person obtaining a copy
# of this software and associated documentation files (the "Software"), to deal
# in the Software without restriction, including without limitation the rights
# to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
# copies of the Software, and to permit persons to whom the Software is
# furnished to do so, subject to the following conditions:
# The above copyright notice and this permission notice shall be included in all
# copies or substantial portions of the Software.
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.
# Author: Gordon Trevorrow

"""File-based inputs and outputs for the command line tool.

Service keys are JSON documents in either the nested form
(``{"uaa": {"url", "clientid", "clientsecret"}}``) or the flat form
(``{"url", "clientid", "clientsecret"}``). Session files are ``.env`` style
``KEY=value`` lines. Defaults for command line flags may come from a TOML
file; command line values always win.
"""

import json
import logging
import os
from typing import Any, Callable, Dict, Mapping, Optional

import toml

from .errors import ServiceKeyError, SessionDataError, ValidationError
from .models import AuthorizationConfig

LOG = logging.getLogger(__name__)

ENV_UAA_URL = "UAA_URL"
ENV_UAA_CLIENT_ID = "UAA_CLIENT_ID"
ENV_UAA_CLIENT_SECRET = "UAA_CLIENT_SECRET"
ENV_AUTHORIZATION_TOKEN = "AUTHORIZATION_TOKEN"
ENV_REFRESH_TOKEN = "REFRESH_TOKEN"

DEFAULTS: Dict[str, Any] = {
    "redirect_port": 3001,
    "browser": "system",
    "log_level": "INFO",
}


# ---------- Service keys ----------

def load_service_key(path: str) -> AuthorizationConfig:
    full_path = os.path.abspath(os.path.expanduser(path))
    if not os.path.exists(full_path):
        raise ServiceKeyError(f"Service key file not found: {full_path}")
    try:
        with open(full_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except ValueError as e:
        raise ServiceKeyError(f"Failed to parse service key file: {e}") from e
    if not isinstance(data, dict):
        raise ServiceKeyError("Service key must be a JSON object")
    return service_key_credentials(data)


def service_key_credentials(data: Mapping[str, Any]) -> AuthorizationConfig:
    uaa = data.get("uaa")
    if isinstance(uaa, dict):
        source, prefix = uaa, "uaa."
    elif "clientid" in data or "clientsecret" in data:
        source, prefix = data, ""
    else:
        raise ServiceKeyError(
            "Service key format not recognized. Expected uaa.url, uaa.clientid, uaa.clientsecret "
            "or url, clientid, clientsecret",
            ["url", "clientid", "clientsecret"])
    missing = [prefix + k for k in ("url", "clientid", "clientsecret") if not source.get(k)]
    if missing:
        raise ServiceKeyError(f"Service key missing required fields: {', '.join(missing)}", missing)
    return AuthorizationConfig(uaa_url=source["url"], client_id=source["clientid"],
                               client_secret=source["clientsecret"])


# ---------- .env session files ----------

def parse_env_file(path: str) -> Dict[str, str]:
    full_path = os.path.abspath(os.path.expanduser(path))
    if not os.path.exists(full_path):
        raise SessionDataError(f"Env file not found: {full_path}")
    values: Dict[str, str] = {}
    with open(full_path, "r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue
            if "=" not in stripped:
                raise SessionDataError(f"{full_path}:{lineno}: expected KEY=value")
            key, value = stripped.split("=", 1)
            key = key.strip()
            if not key:
                raise SessionDataError(f"{full_path}:{lineno}: empty key")
            value = value.strip()
            if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
                value = value[1:-1]
            values[key] = value
    return values


def env_credentials(values: Mapping[str, str], require_secret: bool = True) -> AuthorizationConfig:
    config = AuthorizationConfig(
        uaa_url=values.get(ENV_UAA_URL, ""),
        client_id=values.get(ENV_UAA_CLIENT_ID, ""),
        client_secret=values.get(ENV_UAA_CLIENT_SECRET) or None,
        refresh_token=values.get(ENV_REFRESH_TOKEN) or None,
    )
    names = {"uaa_url": ENV_UAA_URL, "client_id": ENV_UAA_CLIENT_ID, "client_secret": ENV_UAA_CLIENT_SECRET}
    missing = [names[k] for k in config.missing_fields(require_secret)]
    if missing:
        raise SessionDataError(f"Env file missing required fields: {', '.join(missing)}", missing)
    return config


def write_env_file(path: str, values: Mapping[str, Optional[str]]) -> None:
    """Merge ``values`` into the env file at ``path``; the file is created mode 0600."""
    full_path = os.path.abspath(os.path.expanduser(path))
    merged = parse_env_file(full_path) if os.path.exists(full_path) else {}
    merged.update({k: v for k, v in values.items() if v})
    directory = os.path.dirname(full_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    fd = os.open(full_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        for key, value in merged.items():
            f.write(f"{key}={value}\n")
    os.chmod(full_path, 0o600)
    LOG.info("Wrote %d keys to %s", len(merged), full_path)


# ---------- TOML defaults ----------

def load_toml_defaults(path: str, command: Optional[str] = None) -> Dict[str, Any]:
    """Top-level keys of a TOML file, overlaid with the table named ``command``."""
    try:
        data = toml.load(os.path.expanduser(path))
    except FileNotFoundError as e:
        raise ValidationError(f"Config file not found: {path}") from e
    except toml.TomlDecodeError as e:
        raise ValidationError(f"Failed to parse config file {path}: {e}") from e
    defaults = {k.replace("-", "_"): v for k, v in data.items() if not isinstance(v, dict)}
    section = data.get(command) if command else None
    if isinstance(section, dict):
        defaults.update({k.replace("-", "_"): v for k, v in section.items()})
    return defaults


def pick(name: str, cli_val: Any, file_values: Mapping[str, Any],
         cast: Optional[Callable[[Any], Any]] = None) -> Any:
    if cli_val is not None:
        return cli_val
    if name in file_values and file_values[name] != "":
        return cast(file_values[name]) if cast else file_values[name]
    return DEFAULTS.get(name)
