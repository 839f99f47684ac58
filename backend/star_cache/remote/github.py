"""GitHub REST client for starred repositories."""

from __future__ import annotations

import base64
import binascii
from typing import Any
from urllib.parse import parse_qs, urlparse

import requests

from star_cache.core.config import Settings
from star_cache.core.errors import InvalidInputError, QuotaExceededError, TransportError
from star_cache.core.logging import get_logger
from star_cache.core.metrics import FETCH_FAILURES
from star_cache.models.entities import Starred, User
from star_cache.sync.pool import BoundedPool
from star_cache.utils.time import parse_timestamp, utc_now

logger = get_logger(__name__)

STAR_MEDIA_TYPE = "application/vnd.github.star+json"
JSON_MEDIA_TYPE = "application/vnd.github+json"


class GitHubClient:
    """Fetches the token owner's profile, starred repositories and READMEs."""

    def __init__(
        self,
        token: str,
        api_url: str = "https://api.github.com",
        per_page: int = 100,
        parallelism: int = 20,
        request_timeout: float = 10.0,
        user_timeout: float = 5.0,
        session: requests.Session | None = None,
    ) -> None:
        if not token:
            raise InvalidInputError("GitHub token must not be empty")
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.per_page = per_page
        self.request_timeout = request_timeout
        self.user_timeout = user_timeout
        self.pool = BoundedPool(parallelism, name="github")
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"token {token}",
                "Accept": JSON_MEDIA_TYPE,
                "User-Agent": "star-cache",
            }
        )

    @classmethod
    def from_settings(cls, settings: Settings, session: requests.Session | None = None) -> "GitHubClient":
        return cls(
            token=settings.require_token(),
            api_url=settings.api_url,
            per_page=settings.per_page,
            parallelism=settings.parallelism,
            request_timeout=settings.request_timeout,
            user_timeout=settings.user_timeout,
            session=session,
        )

    def current_user(self) -> User:
        payload = _json(self._get("/user", timeout=self.user_timeout), "/user")
        if not isinstance(payload, dict) or not payload.get("login"):
            raise TransportError("GitHub returned no user for this token")
        try:
            return User(
                owner=str(payload["login"]),
                token=self.token,
                avatar_url=payload.get("avatar_url") or "",
                url=payload.get("html_url") or "",
                bio=payload.get("bio") or "",
                created_at=parse_timestamp(payload.get("created_at")),
                updated_at=parse_timestamp(payload.get("updated_at")),
                cached_at=utc_now(),
            )
        except (TypeError, ValueError) as exc:
            raise TransportError(f"Unexpected payload from /user: {exc}") from exc

    def list_starred_all(self) -> list[Starred]:
        """Fetch page one, then the remaining pages through the pool."""
        first = self._get_starred_page(1)
        payloads = _starred_page(first, 1)
        last_page = _last_page(first)

        if last_page > 1:
            outcome = self.pool.run(
                list(range(2, last_page + 1)),
                lambda page: _starred_page(self._get_starred_page(page), page),
                label=lambda page: f"page {page}",
            )
            if not outcome.ok:
                FETCH_FAILURES.labels(stage="listing").inc(outcome.failed)
                message = f"Listing starred repositories failed for {outcome.failed} page(s)"
                if any(failure.quota_exceeded for failure in outcome.failures):
                    raise QuotaExceededError(message)
                raise TransportError(message)
            for page in outcome.results:
                payloads.extend(page)

        cached_at = utc_now()
        starred: list[Starred] = []
        for payload in payloads:
            try:
                starred.append(_starred_from_payload(payload, cached_at))
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                raise TransportError(f"Unexpected starred repository payload: {exc!r}") from exc
        return starred

    def fetch_readme(self, owner: str, repo: str) -> str:
        path = f"/repos/{owner}/{repo}/readme"
        payload = _json(self._get(path, timeout=self.request_timeout), path)
        if not isinstance(payload, dict):
            raise TransportError(f"Unexpected payload from {path}")
        return _decode_content(payload, f"{owner}/{repo}")

    def _get_starred_page(self, page: int) -> requests.Response:
        return self._get(
            "/user/starred",
            params={"page": page, "per_page": self.per_page},
            headers={"Accept": STAR_MEDIA_TYPE},
            timeout=self.request_timeout,
        )

    def _get(
        self,
        path: str,
        timeout: float,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> requests.Response:
        url = f"{self.api_url}{path}"
        try:
            resp = self.session.get(url, params=params, headers=headers, timeout=timeout)
        except requests.RequestException as exc:
            raise TransportError(f"GET {path} failed: {exc}") from exc
        if resp.ok:
            return resp
        if _is_rate_limited(resp):
            raise QuotaExceededError(f"GitHub API quota exceeded on GET {path}")
        raise TransportError(f"GET {path} failed ({resp.status_code}): {_error_detail(resp)}")


def _is_rate_limited(resp: requests.Response) -> bool:
    if resp.status_code not in (403, 429):
        return False
    if resp.headers.get("X-RateLimit-Remaining") == "0":
        return True
    return "rate limit" in _error_detail(resp).lower()


def _error_detail(resp: requests.Response) -> str:
    try:
        payload = resp.json()
    except ValueError:
        return resp.text
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return resp.text


def _json(resp: requests.Response, path: str) -> Any:
    # requests.JSONDecodeError is a ValueError.
    try:
        return resp.json()
    except ValueError as exc:
        raise TransportError(f"GET {path} returned a body that is not JSON: {exc}") from exc


def _starred_page(resp: requests.Response, page: int) -> list[dict[str, Any]]:
    payload = _json(resp, f"/user/starred?page={page}")
    if not isinstance(payload, list):
        raise TransportError(f"Starred page {page} is not a list")
    return payload


def _last_page(resp: requests.Response) -> int:
    last = resp.links.get("last", {}).get("url")
    if not last:
        return 1
    values = parse_qs(urlparse(last).query).get("page")
    try:
        return int(values[0]) if values else 1
    except ValueError:
        return 1


def _decode_content(payload: dict[str, Any], name: str) -> str:
    content = payload.get("content") or ""
    if payload.get("encoding", "base64") != "base64":
        return str(content)
    try:
        return base64.b64decode(content).decode("utf-8", errors="replace")
    except (binascii.Error, TypeError, ValueError) as exc:
        raise TransportError(f"README of {name} is not valid base64") from exc


def _starred_from_payload(payload: dict[str, Any], cached_at) -> Starred:
    # The star media type nests the repository under "repo".
    repo = payload.get("repo") or payload
    owner = (repo.get("owner") or {}).get("login") or ""
    name = repo.get("name") or ""
    if not owner or not name:
        raise ValueError("repository without owner or name")
    return Starred(
        owner=owner,
        repo=name,
        full_name=repo.get("full_name") or f"{owner}/{name}",
        url=repo.get("html_url") or "",
        description=repo.get("description") or "",
        topics=list(repo.get("topics") or []),
        watchers_count=int(repo.get("watchers_count") or 0),
        stargazers_count=int(repo.get("stargazers_count") or 0),
        forks_count=int(repo.get("forks_count") or 0),
        starred_at=parse_timestamp(payload.get("starred_at")),
        created_at=parse_timestamp(repo.get("created_at")),
        updated_at=parse_timestamp(repo.get("updated_at")),
        pushed_at=parse_timestamp(repo.get("pushed_at")),
        cached_at=cached_at,
    )


__all__ = ["GitHubClient"]
