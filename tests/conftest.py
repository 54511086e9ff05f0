"""Shared fixtures: a fake requests session routed by (method, path)."""

import json as jsonlib
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import urlparse

import pytest
from requests.structures import CaseInsensitiveDict

from release_sync.clients.github_client import ClientSettings, GithubClient
from release_sync.configs.config import Config
from release_sync.utils.publish_models import Repo


class FakeResponse:
    def __init__(
        self,
        status_code: int = 200,
        payload: Any = None,
        *,
        headers: Optional[Dict[str, str]] = None,
        next_page: int = 0,
    ) -> None:
        self.status_code = status_code
        self._payload = payload
        self.headers = CaseInsensitiveDict(headers or {})
        self.links = {}
        if next_page:
            self.links["next"] = {"url": f"https://api.github.com/resource?per_page=100&page={next_page}", "rel": "next"}
        self.content = b"" if payload is None else jsonlib.dumps(payload).encode("utf-8")

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("no JSON body")
        return self._payload


@dataclass
class Call:
    method: str
    path: str
    url: str
    params: Optional[Dict[str, Any]] = None
    json: Optional[Dict[str, Any]] = None
    data: Any = None
    headers: Optional[Dict[str, str]] = None
    timeout: Optional[float] = None


Handler = Callable[[Call], FakeResponse]


@dataclass
class FakeSession:
    """Routes requests to canned responses and records every call.

    A route holds a queue: responses are consumed in order and the last one
    repeats. A callable route receives the ``Call`` and returns a response;
    an exception instance is raised.
    """

    routes: Dict[Tuple[str, str], List[Any]] = field(default_factory=dict)
    calls: List[Call] = field(default_factory=list)

    def add(self, method: str, path: str, *responses: Any) -> "FakeSession":
        self.routes[(method, path)] = list(responses)
        return self

    def request(self, method, url, params=None, json=None, data=None, headers=None, timeout=None):
        path = urlparse(url).path.lstrip("/")
        call = Call(method, path, url, params, json, data, headers, timeout)
        self.calls.append(call)
        queue = self.routes.get((method, path))
        if not queue:
            return FakeResponse(404, {"message": "Not Found"})
        resp = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(resp, Exception):
            raise resp
        if callable(resp):
            return resp(call)
        return resp

    def paths(self, method: Optional[str] = None) -> List[str]:
        return [c.path for c in self.calls if method is None or c.method == method]

    def close(self) -> None:
        pass


@pytest.fixture(autouse=True)
def no_metrics(monkeypatch):
    monkeypatch.setattr(Config, "METRICS_ENABLED", False)


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def client(session: FakeSession) -> GithubClient:
    return GithubClient(ClientSettings(quota_enabled=False), session=session)


@pytest.fixture
def repo() -> Repo:
    return Repo(owner="octo", name="demo")
