#!/usr/bin/env python3
"""Upload build artifacts to an existing GitHub Release."""

from __future__ import annotations

import logging
from typing import BinaryIO, Optional

from release_sync.clients.github_client import GithubClient, repo_path
from release_sync.utils.cancellation import CancelToken
from release_sync.utils.errors import GithubApiError, RetriableError
from release_sync.utils.metrics import incr
from release_sync.utils.publish_models import Asset, Repo


logger = logging.getLogger(__name__)


class AssetUploader:
    """Single-shot uploads; retrying is left to the caller.

    A 422 (asset already exists, bad name) is permanent and raised as the
    original ``GithubApiError``. Every other failure is raised as
    ``RetriableError`` so an outer policy can re-run the whole upload.
    """

    def __init__(self, client: GithubClient, repo: Repo):
        self.client = client
        self.repo = repo

    def upload(self, release_id: str, asset: Asset, fileobj: BinaryIO, cancel: Optional[CancelToken] = None) -> None:
        try:
            numeric_id = int(release_id)
        except (TypeError, ValueError):
            raise GithubApiError(f"invalid release id: {release_id!r}", code="VALIDATION")

        try:
            self.client.post(
                repo_path(self.repo, "releases", str(numeric_id), "assets"),
                params={"name": asset.name},
                data=fileobj,
                headers={"Content-Type": "application/octet-stream"},
                upload=True,
                cancel=cancel,
            )
        except GithubApiError as e:
            logger.warning(
                f"upload failed: name={asset.name} release-id={release_id} request-id={e.request_id}"
            )
            if e.unprocessable or e.code == "CANCELLED":
                incr("upload.failed", kind="permanent", repo=str(self.repo))
                raise
            incr("upload.failed", kind="retriable", repo=str(self.repo))
            raise RetriableError(e) from e

        logger.debug(f"uploaded: name={asset.name} release-id={release_id}")
