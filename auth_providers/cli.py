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

"""``auth-providers`` command: obtain UAA tokens and write them to a .env file.

Examples:
  auth-providers device-flow --service-key key.json --output-env .env
  auth-providers authorization-code --input-env .env --output-env .env --browser headless
  auth-providers client-credentials --config auth.toml --output-env .env
"""

import argparse
import logging
import sys
from typing import Dict, List, Optional, Tuple

from .browser import BROWSER_MODES
from .config import (ENV_AUTHORIZATION_TOKEN, ENV_REFRESH_TOKEN, ENV_UAA_CLIENT_ID, ENV_UAA_CLIENT_SECRET,
                     ENV_UAA_URL, env_credentials, load_service_key, load_toml_defaults, parse_env_file,
                     pick, write_env_file)
from .errors import ServiceKeyError, SessionDataError, TokenProviderError, ValidationError
from .jwt_utils import mask_token
from .lifecycle import TokenProvider
from .models import AuthorizationConfig
from .providers import AuthorizationCodeProvider, ClientCredentialsProvider, DeviceFlowProvider

LOG = logging.getLogger("auth_providers")


def setup_logging(level_str: str) -> None:
    level = getattr(logging, str(level_str).upper(), logging.INFO)
    h = logging.StreamHandler(sys.stderr)
    h.setFormatter(logging.Formatter("%(asctime)s %(levelname)s: %(message)s"))
    LOG.addHandler(h)
    LOG.setLevel(level)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="auth-providers",
                                description="Obtain OAuth2 tokens from a UAA and save them to a .env file",
                                allow_abbrev=False)
    sub = p.add_subparsers(dest="command", metavar="COMMAND")
    sub.required = True
    for name, help_text in (
        ("device-flow", "Device authorization grant (no local browser needed)"),
        ("client-credentials", "Client credentials grant (service-to-service)"),
        ("authorization-code", "Authorization code grant through the local browser"),
    ):
        sp = sub.add_parser(name, help=help_text, allow_abbrev=False)
        sp.add_argument("--service-key", default=None, help="Service key JSON with uaa.url/clientid/clientsecret")
        sp.add_argument("--input-env", default=None, help="Existing .env with UAA_URL, UAA_CLIENT_ID, UAA_CLIENT_SECRET")
        sp.add_argument("--config", default=None, help="TOML file with defaults for these options")
        sp.add_argument("--output-env", default=None, help="Where to write the resulting tokens (required)")
        sp.add_argument("--scope", default=None, help="Requested scopes (space separated)")
        sp.add_argument("--log-level", default=None, help="Logging level (DEBUG, INFO, WARNING, ERROR; default INFO)")
        if name == "authorization-code":
            sp.add_argument("--browser", default=None, choices=BROWSER_MODES,
                            help="Browser to open (default system; headless prints the URL)")
            sp.add_argument("--redirect-port", type=int, default=None, help="Local callback port (default 3001)")
    return p


def resolve_options(args: argparse.Namespace) -> argparse.Namespace:
    file_values = load_toml_defaults(args.config, args.command) if args.config else {}
    args.service_key = pick("service_key", args.service_key, file_values)
    args.input_env = pick("input_env", args.input_env, file_values)
    args.output_env = pick("output_env", args.output_env, file_values)
    args.scope = pick("scope", args.scope, file_values)
    args.log_level = pick("log_level", args.log_level, file_values)
    args.browser = pick("browser", getattr(args, "browser", None), file_values)
    args.redirect_port = pick("redirect_port", getattr(args, "redirect_port", None), file_values, int)
    missing = [k for k in ("output_env",) if not getattr(args, k)]
    if not args.service_key and not args.input_env:
        missing.append("service_key or input_env")
    if missing:
        raise ValidationError(f"Missing required options: {', '.join(missing)}. Provide via CLI or --config.",
                              missing)
    if args.browser not in BROWSER_MODES:
        raise ValidationError(f"Unsupported browser mode: {args.browser}")
    return args


def load_credentials(args: argparse.Namespace) -> Tuple[AuthorizationConfig, Dict[str, str]]:
    session = parse_env_file(args.input_env) if args.input_env else {}
    if args.service_key:
        config = load_service_key(args.service_key)
        config.refresh_token = session.get(ENV_REFRESH_TOKEN) or None
    else:
        config = env_credentials(session, require_secret=args.command != "device-flow")
    return config, session


def create_provider(args: argparse.Namespace, config: AuthorizationConfig,
                    session: Dict[str, str]) -> TokenProvider:
    access_token = session.get(ENV_AUTHORIZATION_TOKEN) or None
    if args.command == "client-credentials":
        return ClientCredentialsProvider(config.uaa_url, config.client_id, config.client_secret, scope=args.scope)
    if args.command == "authorization-code":
        return AuthorizationCodeProvider(config.uaa_url, config.client_id, config.client_secret,
                                         browser=args.browser, redirect_port=args.redirect_port,
                                         scope=args.scope, access_token=access_token,
                                         refresh_token=config.refresh_token)
    return DeviceFlowProvider(config.uaa_url, config.client_id, config.client_secret, scope=args.scope,
                              access_token=access_token, refresh_token=config.refresh_token)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        args = resolve_options(args)
        setup_logging(args.log_level)
        config, session = load_credentials(args)
        provider = create_provider(args, config, session)
    except (ValidationError, ServiceKeyError, SessionDataError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    LOG.info("Resolved config: command=%s uaa_url=%s client_id=%s scope='%s' output=%s",
             args.command, config.uaa_url, config.client_id, args.scope or "", args.output_env)
    try:
        result = provider.get_tokens()
    except TokenProviderError as e:
        LOG.error("Authentication failed: %s", e)
        return 1

    LOG.info("Obtained %s token %s (expires in %ss)", result.auth_type.value,
             mask_token(result.authorization_token), result.expires_in)
    try:
        write_env_file(args.output_env, {
            ENV_AUTHORIZATION_TOKEN: result.authorization_token,
            ENV_REFRESH_TOKEN: result.refresh_token,
            ENV_UAA_URL: config.uaa_url,
            ENV_UAA_CLIENT_ID: config.client_id,
            ENV_UAA_CLIENT_SECRET: config.client_secret,
        })
    except (OSError, SessionDataError) as e:
        LOG.error("Failed to write %s: %s", args.output_env, e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
