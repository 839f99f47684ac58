"""Tests for the GitHub client with a scripted HTTP session."""

from __future__ import annotations

import pytest
import requests

from conftest import API, ScriptedSession, json_response, raw_response, readme_payload, star_payload
from star_cache.core.errors import InvalidInputError, QuotaExceededError, TransportError
from star_cache.remote.github import GitHubClient


def _client(routes, parallelism: int = 2) -> tuple[GitHubClient, ScriptedSession]:
    session = ScriptedSession(routes)
    return GitHubClient("tok", api_url=API, parallelism=parallelism, session=session), session


def _link(last: int) -> dict[str, str]:
    return {"Link": f'<{API}/user/starred?page=2&per_page=100>; rel="next", <{API}/user/starred?page={last}&per_page=100>; rel="last"'}


def test_current_user() -> None:
    client, _ = _client(
        {
            "/user": json_response(
                200,
                {"login": "octocat", "html_url": "https://github.com/octocat", "bio": None, "created_at": "2011-01-25T18:44:36Z"},
            )
        }
    )
    user = client.current_user()
    assert user.owner == "octocat"
    assert user.token == "tok"
    assert user.bio == ""
    assert user.cached_at is not None
    assert user.created_at.year == 2011


@pytest.mark.parametrize(
    "response",
    [
        raw_response(200, b"<html>bad gateway</html>"),
        json_response(200, ["not", "a", "user"]),
        json_response(200, {"login": "octocat", "created_at": "yesterday"}),
    ],
)
def test_unreadable_user_is_a_transport_error(response: requests.Response) -> None:
    client, _ = _client({"/user": response})
    with pytest.raises(TransportError):
        client.current_user()


def test_list_starred_all_walks_every_page() -> None:
    client, session = _client(
        {
            "/user/starred?page=1": json_response(200, [star_payload("a/one")], _link(3)),
            "/user/starred?page=2": json_response(200, [star_payload("b/two")]),
            "/user/starred?page=3": json_response(200, [star_payload("c/three")]),
        }
    )
    starred = client.list_starred_all()

    assert sorted(item.full_name for item in starred) == ["a/one", "b/two", "c/three"]
    first = next(item for item in starred if item.full_name == "a/one")
    assert first.owner == "a"
    assert first.repo == "one"
    assert first.description == ""
    assert first.topics == ["cli"]
    assert first.pushed_at.isoformat() == "2024-01-01T00:00:00+00:00"
    assert len(session.requests) == 3


def test_single_page_listing() -> None:
    client, session = _client({"/user/starred?page=1": json_response(200, [star_payload("a/one")])})
    assert [item.full_name for item in client.list_starred_all()] == ["a/one"]
    assert len(session.requests) == 1


def test_quota_on_any_page_aborts_listing() -> None:
    client, _ = _client(
        {
            "/user/starred?page=1": json_response(200, [star_payload("a/one")], _link(3)),
            "/user/starred?page=2": json_response(200, [star_payload("b/two")]),
            "/user/starred?page=3": json_response(403, {"message": "API rate limit exceeded"}, {"X-RateLimit-Remaining": "0"}),
        }
    )
    with pytest.raises(QuotaExceededError):
        client.list_starred_all()


def test_transport_failure_on_a_page_aborts_listing() -> None:
    client, _ = _client(
        {
            "/user/starred?page=1": json_response(200, [star_payload("a/one")], _link(2)),
            "/user/starred?page=2": requests.ConnectionError("reset"),
        }
    )
    with pytest.raises(TransportError, match="1 page"):
        client.list_starred_all()


def test_quota_on_first_page() -> None:
    client, _ = _client({"/user/starred?page=1": json_response(429, {"message": "You have exceeded a secondary rate limit"})})
    with pytest.raises(QuotaExceededError):
        client.list_starred_all()


def test_first_page_that_is_not_json() -> None:
    client, _ = _client({"/user/starred?page=1": raw_response(200, b"<html>bad gateway</html>")})
    with pytest.raises(TransportError, match="not JSON"):
        client.list_starred_all()


def test_later_page_that_is_not_json() -> None:
    client, _ = _client(
        {
            "/user/starred?page=1": json_response(200, [star_payload("a/one")], _link(2)),
            "/user/starred?page=2": raw_response(200, b"not json"),
        }
    )
    with pytest.raises(TransportError, match="1 page"):
        client.list_starred_all()


def _with_bad_timestamp() -> dict:
    payload = star_payload("a/one")
    payload["repo"]["pushed_at"] = "last tuesday"
    return payload


@pytest.mark.parametrize(
    "body",
    [
        {"message": "not a list"},
        [_with_bad_timestamp()],
        [{"repo": {"name": "one"}}],
        ["a/one"],
    ],
)
def test_malformed_listing_is_a_transport_error(body) -> None:
    client, _ = _client({"/user/starred?page=1": json_response(200, body)})
    with pytest.raises(TransportError):
        client.list_starred_all()


def test_fetch_readme_decodes_base64() -> None:
    client, _ = _client({"/repos/a/one/readme": json_response(200, readme_payload("# Hello\nworld"))})
    assert client.fetch_readme("a", "one") == "# Hello\nworld"


@pytest.mark.parametrize(
    "response",
    [
        raw_response(200, b"<html>proxy error</html>"),
        json_response(200, ["unexpected"]),
        json_response(200, {"content": "@@@ not base64 @@@", "encoding": "base64"}),
        json_response(404, {"message": "Not Found"}),
    ],
)
def test_unreadable_readme_is_a_transport_error(response: requests.Response) -> None:
    client, _ = _client({"/repos/a/one/readme": response})
    with pytest.raises(TransportError):
        client.fetch_readme("a", "one")


def test_forbidden_without_rate_limit_is_transport() -> None:
    client, _ = _client({"/user": json_response(403, {"message": "Bad credentials"}, {"X-RateLimit-Remaining": "42"})})
    with pytest.raises(TransportError):
        client.current_user()


def test_empty_token_is_rejected() -> None:
    with pytest.raises(InvalidInputError):
        GitHubClient("")
