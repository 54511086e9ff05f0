#!/usr/bin/env python3
"""Commit a single file to a repository branch through the contents API.

The target branch is created from the default branch's current tip when it
does not exist yet. An existing file is updated by passing its current blob
SHA back to GitHub, which rejects the write if the file moved in between.
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Dict, Optional

from release_sync.clients.github_client import GithubClient, repo_path
from release_sync.utils.cancellation import CancelToken
from release_sync.utils.errors import GithubApiError
from release_sync.utils.metrics import incr
from release_sync.utils.publish_models import CommitAuthor, FileCommit, Repo
from release_sync.utils.repo_lookups import RepoLookups


logger = logging.getLogger(__name__)


class FilePublisher:
    """Ensure-branch, then create-or-update one file."""

    def __init__(self, client: GithubClient, lookups: Optional[RepoLookups] = None):
        self.client = client
        self.lookups = lookups or RepoLookups(client)

    def create_file(
        self,
        commit_author: CommitAuthor,
        repo: Repo,
        content: bytes,
        path: str,
        message: str,
        cancel: Optional[CancelToken] = None,
    ) -> FileCommit:
        """Write ``content`` to ``path`` on ``repo.branch`` (default branch if empty).

        Returns:
            The commit that was submitted, with ``prior_sha`` set when an
            existing file was replaced.

        Raises:
            GithubApiError: With context naming the step that failed.
        """
        cancel = cancel or CancelToken()
        try:
            default_branch = self.lookups.get_default_branch(repo, cancel=cancel)
        except GithubApiError as e:
            raise e.with_context("could not get default branch") from e

        branch = repo.branch or default_branch
        logger.info(f"pushing: repository={repo} branch={branch} file={path}")

        if branch and branch != default_branch:
            self.ensure_branch(repo, branch, default_branch, cancel=cancel)

        commit = FileCommit(
            path=path,
            content=content,
            message=message,
            branch=branch,
            committer=commit_author,
            prior_sha=self.current_sha(repo, path, branch, cancel=cancel),
        )
        try:
            self.client.put(repo_path(repo, "contents", path), json=self._payload(commit), cancel=cancel)
        except GithubApiError as e:
            raise e.with_context(f"could not update {path!r}") from e

        action = "updated" if commit.prior_sha else "created"
        logger.info(f"file {action}: repository={repo} branch={branch} file={path}")
        incr("file.committed", repo=str(repo), action=action)
        return commit

    def ensure_branch(self, repo: Repo, branch: str, default_branch: str, cancel: Optional[CancelToken] = None) -> bool:
        """Create ``branch`` at the tip of ``default_branch`` unless it exists.

        Returns:
            True if the branch was created.
        """
        try:
            self.client.get(repo_path(repo, "branches", branch), cancel=cancel)
            return False
        except GithubApiError as e:
            if not e.not_found:
                raise e.with_context(f"could not get branch {branch!r}") from e

        default_ref = f"refs/heads/{default_branch}"
        try:
            resp = self.client.get(repo_path(repo, "git", "ref", "heads", default_branch), cancel=cancel)
        except GithubApiError as e:
            raise e.with_context(f"could not get ref {default_ref!r}") from e
        sha = ((resp.data or {}).get("object") or {}).get("sha", "")

        new_ref = f"refs/heads/{branch}"
        try:
            self.client.post(repo_path(repo, "git", "refs"), json={"ref": new_ref, "sha": sha}, cancel=cancel)
        except GithubApiError as e:
            raise e.with_context(f"could not create ref {new_ref!r} from {sha!r}") from e

        logger.info(f"branch created: repository={repo} branch={branch} from={default_branch} sha={sha}")
        incr("branch.created", repo=str(repo))
        return True

    def current_sha(self, repo: Repo, path: str, branch: str, cancel: Optional[CancelToken] = None) -> Optional[str]:
        """Blob SHA of ``path`` on ``branch``, or None when the file does not exist."""
        params = {"ref": branch} if branch else None
        try:
            resp = self.client.get(repo_path(repo, "contents", path), params=params, cancel=cancel)
        except GithubApiError as e:
            if e.not_found:
                return None
            raise e.with_context(f"could not get {path!r}") from e
        data = resp.data
        if not isinstance(data, dict):
            # a directory listing comes back as a list
            raise GithubApiError(f"could not get {path!r}: path is not a file", code="VALIDATION")
        return data.get("sha") or None

    @staticmethod
    def _payload(commit: FileCommit) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "message": commit.message,
            "content": base64.b64encode(commit.content).decode("ascii"),
            "committer": {"name": commit.committer.name, "email": commit.committer.email},
        }
        if commit.branch:
            payload["branch"] = commit.branch
        if commit.prior_sha:
            payload["sha"] = commit.prior_sha
        return payload
