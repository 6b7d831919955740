from __future__ import annotations

import json
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


DEFAULT_API_URL = "https://api.github.com"
# e.g. 2020-01-22T12:13:35.123-08:00
EXPIRES_AT_FORMAT = "%Y-%m-%dT%H:%M:%S.%f%z"
USER_AGENT = "ghrunner-provisioner"


class RegistrationError(RuntimeError):
    """Failure to obtain a runner registration token from GitHub."""


class RegistrationValidationError(RegistrationError):
    pass


class RegistrationNetworkError(RegistrationError):
    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class RegistrationParseError(RegistrationError):
    pass


@dataclass(frozen=True)
class RegistrationToken:
    value: str = field(repr=False)
    expires_at: datetime


def registration_token_url(repo_path: str, *, api_url: str = DEFAULT_API_URL) -> str:
    path = urllib.parse.quote(repo_path.strip("/"), safe="/")
    return f"{api_url.rstrip('/')}/repos/{path}/actions/runners/registration-token"


def parse_expires_at(raw: Any) -> datetime:
    if not isinstance(raw, str) or not raw:
        raise RegistrationParseError(f"Missing token expiry date: {raw!r}")
    try:
        return datetime.strptime(raw, EXPIRES_AT_FORMAT)
    except ValueError as e:
        raise RegistrationParseError(f"Cannot parse token expiry date {raw!r}: {e}") from e


def parse_registration_response(raw: bytes | str) -> RegistrationToken:
    try:
        obj = json.loads(raw)
    except ValueError as e:
        raise RegistrationParseError(f"Invalid JSON in registration token response: {e}") from e
    if not isinstance(obj, dict):
        raise RegistrationParseError("Registration token response is not a JSON object.")
    token = obj.get("token")
    if not isinstance(token, str) or not token:
        raise RegistrationParseError("Registration token response has no token.")
    return RegistrationToken(value=token, expires_at=parse_expires_at(obj.get("expires_at")))


def fetch_registration_token(
    repo_path: str,
    access_token: str,
    *,
    api_url: str = DEFAULT_API_URL,
    timeout_s: float | None = None,
) -> RegistrationToken:
    """Mint a runner registration token for `owner/repo`.

    The access token needs administration rights on the repository, see
    https://docs.github.com/en/rest/actions/self-hosted-runners
    """
    if not repo_path:
        raise RegistrationValidationError("Please provide a value for repo_path.")
    if not access_token:
        raise RegistrationValidationError("Please provide a value for access_token.")

    url = registration_token_url(repo_path, api_url=api_url)
    req = urllib.request.Request(
        url,
        data=b"",
        method="POST",
        headers={
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/vnd.github+json",
            "User-Agent": USER_AGENT,
        },
    )
    try:
        if timeout_s is None:
            resp_cm = urllib.request.urlopen(req)
        else:
            resp_cm = urllib.request.urlopen(req, timeout=float(timeout_s))
        with resp_cm as resp:
            raw = resp.read()
    except urllib.error.HTTPError as e:
        body = ""
        try:
            body = e.read().decode("utf-8", errors="replace")
        except OSError:
            body = ""
        raise RegistrationNetworkError(f"HTTP {e.code} for {url}. {body[:200]}".strip(), status=e.code) from e
    except urllib.error.URLError as e:
        raise RegistrationNetworkError(f"Request {url} failed with: {e.reason}") from e
    except OSError as e:
        raise RegistrationNetworkError(f"Request {url} failed with: {e}") from e

    return parse_registration_response(raw)
