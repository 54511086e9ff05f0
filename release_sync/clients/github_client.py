#!/usr/bin/env python3
"""GitHub REST client used by every publishing workflow.

The client is configured once: token, TLS verification, proxy handling, GET
retries and the API/upload base URLs all come from an immutable
``ClientSettings``. Each request runs through the quota guard, honours the
caller's cancel token and turns HTTP failures into ``GithubApiError`` with a
typed code.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional
from urllib.parse import parse_qs, quote, urljoin, urlparse

import requests
from pydantic import BaseModel, ConfigDict
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from release_sync.configs.config import Config
from release_sync.utils.cancellation import CancelToken
from release_sync.utils.errors import ConfigError, GithubApiError
from release_sync.utils.metrics import Timer
from release_sync.utils.publish_models import QuotaState, Repo
from release_sync.utils.quota_guard import QuotaGuard

# Set up logging
logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com/"
DEFAULT_UPLOAD_URL = "https://uploads.github.com/"
DEFAULT_DOWNLOAD_URL = "https://github.com"

REQUEST_ID_HEADER = "X-GitHub-Request-Id"


def _identity(value: str) -> str:
    return value


def resolve_url(raw: str, key: str, *, trailing_slash: bool = True) -> str:
    """Validate a configured base URL.

    Raises:
        ConfigError: If the URL has no http(s) scheme or no host.
    """
    parsed = urlparse(raw.strip())
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigError(f"invalid {key}: {raw!r}", key=key)
    url = parsed.geturl()
    if trailing_slash and not url.endswith("/"):
        url += "/"
    return url


class ClientSettings(BaseModel):
    """Immutable transport settings shared by concurrent callers."""

    token: Optional[str] = None
    timeout_s: float = 30.0
    get_retries: int = 3
    api_url: str = DEFAULT_API_URL
    upload_url: str = DEFAULT_UPLOAD_URL
    download_url: str = DEFAULT_DOWNLOAD_URL
    skip_tls_verify: bool = False
    quota_enabled: bool = True
    quota_threshold: int = 100
    quota_fallback_sleep_s: float = 15.0
    quota_max_waits: int = 0
    quota_backoff_factor: float = 1.0

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_config(cls, render: Optional[Callable[[str], str]] = None, **overrides: Any) -> "ClientSettings":
        """Build settings from ``Config``.

        Args:
            render: Template renderer applied to the configured URLs before
                they are parsed. Defaults to the identity.
            **overrides: Field values that win over the environment.

        Raises:
            ConfigError: If an overridden URL cannot be rendered or parsed, or
                the API URL is overridden without an upload URL.
        """
        render = render or _identity
        gh = Config.get_github_config()
        quota = Config.get_quota_config()
        values: Dict[str, Any] = {
            "token": gh["token"],
            "timeout_s": gh["timeout_s"],
            "get_retries": gh["get_retries"],
            "skip_tls_verify": gh["skip_tls_verify"],
            "quota_enabled": quota["enabled"],
            "quota_threshold": quota["threshold"],
            "quota_fallback_sleep_s": quota["fallback_sleep_s"],
            "quota_max_waits": quota["max_waits"],
            "quota_backoff_factor": quota["backoff_factor"],
        }
        values.update(overrides)

        api_raw = values.pop("api_url", gh["api_url"])
        upload_raw = values.pop("upload_url", gh["upload_url"])
        download_raw = values.pop("download_url", gh["download_url"])

        if api_raw:
            if not upload_raw:
                raise ConfigError("upload_url is required when api_url is overridden", key="upload_url")
            try:
                api_url = resolve_url(render(api_raw), "api_url")
                upload_url = resolve_url(render(upload_raw), "upload_url")
            except ConfigError:
                raise
            except Exception as e:
                raise ConfigError(f"templating GitHub URLs: {e}") from e
            values["api_url"] = api_url
            values["upload_url"] = upload_url

        if download_raw:
            try:
                values["download_url"] = resolve_url(render(download_raw), "download_url", trailing_slash=False).rstrip("/")
            except ConfigError:
                raise
            except Exception as e:
                raise ConfigError(f"templating GitHub download URL: {e}") from e

        return cls(**values)


@dataclass
class ApiResponse:
    data: Any
    status_code: int
    headers: Mapping[str, str]
    next_page: int = 0
    request_id: str = ""


def build_session(settings: ClientSettings) -> requests.Session:
    """Create the shared HTTP session.

    Proxies come from HTTP(S)_PROXY / NO_PROXY; TLS verification follows
    ``skip_tls_verify``. Only idempotent methods are retried by urllib3.
    """
    session = requests.Session()
    session.headers.update({
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": "2022-11-28",
        "User-Agent": "release-sync/0.1",
    })
    if settings.token:
        session.headers["Authorization"] = f"Bearer {settings.token}"
    session.verify = not settings.skip_tls_verify
    session.trust_env = True

    # Configure retries for transient failures
    retry_strategy = Retry(
        total=settings.get_retries,
        status_forcelist=[429, 500, 502, 503, 504],
        backoff_factor=1,
        allowed_methods=["HEAD", "GET", "OPTIONS"],
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry_strategy)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def _next_page(response) -> int:
    link = (getattr(response, "links", None) or {}).get("next") or {}
    url = link.get("url")
    if not url:
        return 0
    pages = parse_qs(urlparse(url).query).get("page")
    try:
        return int(pages[0]) if pages else 0
    except ValueError:
        return 0


def _error_message(response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return ""
    if not isinstance(payload, dict):
        return ""
    message = payload.get("message", "")
    errors = payload.get("errors") or []
    details = [e.get("message") or e.get("code", "") for e in errors if isinstance(e, dict)]
    if details:
        message = f"{message} ({'; '.join(d for d in details if d)})"
    return message


def classify_response(response, method: str, url: str) -> GithubApiError:
    sc = response.status_code
    request_id = response.headers.get(REQUEST_ID_HEADER, "")
    detail = _error_message(response)
    message = f"{method} {url}: HTTP {sc}" + (f": {detail}" if detail else "")
    if sc == 401:
        code = "UNAUTHORIZED"
    elif sc == 403 and response.headers.get("X-RateLimit-Remaining") == "0":
        code = "RATE_LIMIT"
    elif sc == 403:
        code = "UNAUTHORIZED"
    elif sc == 404:
        code = "NOT_FOUND"
    elif sc == 422:
        code = "VALIDATION"
    elif sc == 429:
        code = "RATE_LIMIT"
    elif sc >= 500:
        code = "NETWORK"
    else:
        code = "UNKNOWN"
    return GithubApiError(message, code=code, status_code=sc, request_id=request_id)


def repo_path(repo: Repo, *parts: str) -> str:
    """Build ``repos/{owner}/{name}/...`` with each part URL-quoted.

    Slashes inside a part are kept so file paths and ref names work.
    """
    segments = [quote(repo.owner, safe=""), quote(repo.name, safe="")]
    segments.extend(quote(p, safe="/") for p in parts if p)
    return "repos/" + "/".join(segments)


class GithubClient:
    """Thin GitHub REST client with quota guarding and typed errors."""

    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        *,
        session: Optional[requests.Session] = None,
        quota_guard: Optional[QuotaGuard] = None,
    ) -> None:
        """Initialize the client.

        Args:
            settings: Transport settings; defaults to ``ClientSettings.from_config()``.
            session: Prebuilt session (tests); defaults to ``build_session(settings)``.
            quota_guard: Guard run before each request. Built from the settings
                when omitted and ``quota_enabled`` is set.
        """
        self.settings = settings or ClientSettings.from_config()
        self.session = session if session is not None else build_session(self.settings)
        if quota_guard is None and self.settings.quota_enabled:
            quota_guard = QuotaGuard(
                self.fetch_quota,
                threshold=self.settings.quota_threshold,
                fallback_sleep_s=self.settings.quota_fallback_sleep_s,
                max_waits=self.settings.quota_max_waits,
                backoff_factor=self.settings.quota_backoff_factor,
            )
        self.quota_guard = quota_guard
        logger.debug(f"GitHub client initialized: api={self.settings.api_url} upload={self.settings.upload_url}")

    def fetch_quota(self, cancel: Optional[CancelToken] = None) -> QuotaState:
        """Read the core quota; never guarded itself."""
        resp = self._send("GET", "rate_limit", cancel=cancel or CancelToken())
        return QuotaState.from_api(resp.data or {})

    def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        data: Any = None,
        headers: Optional[Dict[str, str]] = None,
        upload: bool = False,
        cancel: Optional[CancelToken] = None,
    ) -> ApiResponse:
        """Send one request after the quota guard allows it.

        Raises:
            GithubApiError: For any HTTP >= 400, timeout or transport failure.
            OperationCancelled: If the cancel token fires first.
        """
        cancel = cancel or CancelToken()
        if self.quota_guard is not None:
            self.quota_guard.wait(cancel)
        return self._send(method, path, params=params, json=json, data=data, headers=headers, upload=upload, cancel=cancel)

    def get(self, path: str, **kw: Any) -> ApiResponse:
        return self.request("GET", path, **kw)

    def post(self, path: str, **kw: Any) -> ApiResponse:
        return self.request("POST", path, **kw)

    def patch(self, path: str, **kw: Any) -> ApiResponse:
        return self.request("PATCH", path, **kw)

    def put(self, path: str, **kw: Any) -> ApiResponse:
        return self.request("PUT", path, **kw)

    def delete(self, path: str, **kw: Any) -> ApiResponse:
        return self.request("DELETE", path, **kw)

    def _send(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        data: Any = None,
        headers: Optional[Dict[str, str]] = None,
        upload: bool = False,
        cancel: CancelToken,
    ) -> ApiResponse:
        cancel.raise_if_cancelled(f"{method} {path}")
        base = self.settings.upload_url if upload else self.settings.api_url
        url = urljoin(base, path.lstrip("/"))
        try:
            with Timer("github.request", method=method):
                r = self.session.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    data=data,
                    headers=headers,
                    timeout=cancel.timeout(self.settings.timeout_s),
                )
        except requests.Timeout as e:
            raise GithubApiError(f"{method} {url}: timeout", code="TIMEOUT") from e
        except requests.RequestException as e:
            raise GithubApiError(f"{method} {url}: {e}", code="NETWORK") from e

        if r.status_code >= 400:
            raise classify_response(r, method, url)

        payload = None
        if r.status_code != 204 and r.content:
            try:
                payload = r.json()
            except ValueError:
                payload = None
        return ApiResponse(
            data=payload,
            status_code=r.status_code,
            headers=r.headers,
            next_page=_next_page(r),
            request_id=r.headers.get(REQUEST_ID_HEADER, ""),
        )

    def close(self) -> None:
        """Close the HTTP session."""
        if self.session:
            self.session.close()
            logger.debug("GitHub client session closed")
