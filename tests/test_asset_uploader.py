"""Tests for asset upload error classification."""

import io
import logging

import pytest
import requests

from conftest import FakeResponse
from release_sync.configs.config import Config
from release_sync.utils.asset_uploader import AssetUploader
from release_sync.utils.errors import GithubApiError, RetriableError
from release_sync.utils.publish_models import Asset


ASSETS = "repos/octo/demo/releases/42/assets"


@pytest.fixture
def uploader(client, repo):
    return AssetUploader(client, repo)


@pytest.fixture
def asset():
    return Asset(name="demo_1.0.0_linux_amd64.tar.gz")


def test_upload_streams_to_upload_host(uploader, session, asset):
    session.add("POST", ASSETS, FakeResponse(201, {"id": 7, "name": asset.name}))
    stream = io.BytesIO(b"\x1f\x8b binary")

    uploader.upload("42", asset, stream)

    call = session.calls[-1]
    assert call.url.startswith("https://uploads.github.com/")
    assert call.params == {"name": asset.name}
    assert call.data is stream
    assert call.headers["Content-Type"] == "application/octet-stream"


def test_unprocessable_is_permanent(uploader, session, asset):
    session.add("POST", ASSETS, FakeResponse(422, {"message": "Validation Failed", "errors": [{"code": "already_exists"}]}))

    with pytest.raises(GithubApiError) as exc_info:
        uploader.upload("42", asset, io.BytesIO(b"x"))

    assert not isinstance(exc_info.value, RetriableError)
    assert exc_info.value.status_code == 422
    assert exc_info.value.code == "VALIDATION"


def test_server_error_is_retriable(uploader, session, asset, caplog):
    session.add("POST", ASSETS, FakeResponse(502, {"message": "Bad Gateway"}, headers={"X-GitHub-Request-Id": "ABCD:1234"}))

    with caplog.at_level(logging.WARNING):
        with pytest.raises(RetriableError) as exc_info:
            uploader.upload("42", asset, io.BytesIO(b"x"))

    cause = exc_info.value.cause
    assert isinstance(cause, GithubApiError)
    assert cause.status_code == 502
    assert exc_info.value.request_id == "ABCD:1234"
    assert "release-id=42" in caplog.text
    assert "request-id=ABCD:1234" in caplog.text


def test_connection_failure_is_retriable(uploader, session, asset):
    session.add("POST", ASSETS, requests.ConnectionError("connection reset"))

    with pytest.raises(RetriableError) as exc_info:
        uploader.upload("42", asset, io.BytesIO(b"x"))

    assert exc_info.value.cause.code == "NETWORK"


def test_malformed_release_id_is_permanent(uploader, session, asset):
    with pytest.raises(GithubApiError) as exc_info:
        uploader.upload("not-a-number", asset, io.BytesIO(b"x"))

    assert exc_info.value.code == "VALIDATION"
    assert session.calls == []


@pytest.fixture
def unwritable_metrics(monkeypatch, tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    monkeypatch.setattr(Config, "METRICS_ENABLED", True)
    monkeypatch.setattr(Config, "METRICS_ROOT", str(blocker / "metrics"))


def test_upload_succeeds_when_metrics_cannot_be_written(uploader, session, asset, unwritable_metrics):
    session.add("POST", ASSETS, FakeResponse(201, {"id": 7, "name": asset.name}))

    uploader.upload("42", asset, io.BytesIO(b"x"))

    assert len(session.calls) == 1


def test_server_error_stays_retriable_when_metrics_cannot_be_written(uploader, session, asset, unwritable_metrics):
    session.add("POST", ASSETS, FakeResponse(502, {"message": "Bad Gateway"}))

    with pytest.raises(RetriableError) as exc_info:
        uploader.upload("42", asset, io.BytesIO(b"x"))

    assert exc_info.value.cause.status_code == 502
