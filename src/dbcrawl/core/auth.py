"""Authentication helpers for Databricks.

Creates the WorkspaceClient used by the Unity Catalog metadata source and
normalizes the configured host URL, which the SDK does not accept with a
workspace query string or a trailing slash.
"""

import re

from databricks.sdk import WorkspaceClient
from databricks.sdk.core import Config

from dbcrawl.core.errors import SourceConnectivityError


class AuthError(SourceConnectivityError):
    """Raised when Databricks authentication fails."""


def _format_auth_error(message: str, profile: str | None) -> str:
    """Return a user-friendly auth error message."""
    if re.search(r"databricks auth login ([^\s]+)", message):
        cmd = "databricks auth login"
        if profile:
            cmd = f"{cmd} --profile {profile}"
        return (
            "Databricks authentication failed. Your refresh token is invalid.\n"
            f"Re-authenticate with:\n  $ {cmd}"
        )
    return f"Databricks authentication failed: {message}"


def sanitize_host(host: str | None) -> str | None:
    """
    Normalize a Databricks host URL.

    - Removes query strings (e.g. '?o=123456789')
    - Removes trailing slashes
    """
    if not host:
        return host
    host = host.split("?", 1)[0]
    return host.rstrip("/")


def get_client(profile: str | None = None) -> WorkspaceClient:
    """
    Create a WorkspaceClient from the unified auth configuration.

    The profile is resolved from ~/.databrickscfg or the environment.

    Raises:
        AuthError: The configuration cannot be resolved.
    """
    try:
        cfg = Config(profile=profile) if profile else Config()
    except ValueError as exc:
        raise AuthError(_format_auth_error(str(exc), profile), category="auth") from exc
    cfg.host = sanitize_host(cfg.host)
    return WorkspaceClient(config=cfg)
