#!/usr/bin/env python3
"""Create or update the GitHub Release for a tag.

The upsert runs in a fixed order:

  1. optional draft cleanup: delete a draft release whose name equals the new
     title (only for draft releases with ``replace_existing_draft``),
  2. lookup by tag,
  3. create when the tag has no release, otherwise merge the existing body
     with the new one per ``notes_mode`` and edit the release.

Bodies are truncated to GitHub's 125,000 character limit before submission.
"""

from __future__ import annotations

import logging
import unicodedata
from typing import Any, Dict, Optional

from release_sync.clients.github_client import GithubClient, repo_path
from release_sync.configs.config import Config
from release_sync.utils.cancellation import CancelToken
from release_sync.utils.errors import GithubApiError
from release_sync.utils.metrics import incr
from release_sync.utils.paginator import Paginator
from release_sync.utils.publish_models import NotesMode, Page, Release, ReleaseSpec, Repo


logger = logging.getLogger(__name__)

MAX_RELEASE_BODY_CHARS = 125000
TRUNCATION_MARKER = "\n\n..."
# how far back from the limit a line break is still preferred over a hard cut
BOUNDARY_WINDOW = 2000
RELEASES_PER_PAGE = 50


def _splits_cluster(text: str, end: int) -> bool:
    """True when cutting ``text`` at ``end`` would separate joined characters."""
    before = text[end - 1]
    after = text[end]
    if 0xD800 <= ord(before) <= 0xDBFF:
        return True
    return bool(unicodedata.combining(after)) or after in ("\u200d", "\ufe0f") or before == "\u200d"


def truncate_body(body: str, max_chars: int = MAX_RELEASE_BODY_CHARS) -> str:
    """Fit ``body`` into ``max_chars``.

    Cuts at the last line break within ``BOUNDARY_WINDOW`` of the limit when
    there is one, never between a character and its combining marks or
    surrogate pair, and appends ``TRUNCATION_MARKER``.
    """
    if len(body) <= max_chars:
        return body
    if max_chars <= len(TRUNCATION_MARKER):
        end = max_chars
        while end > 0 and _splits_cluster(body, end):
            end -= 1
        return body[:end]

    end = max_chars - len(TRUNCATION_MARKER)
    newline = body.rfind("\n", max(0, end - BOUNDARY_WINDOW), end)
    if newline > 0:
        end = newline
    while end > 0 and _splits_cluster(body, end):
        end -= 1
    return body[:end].rstrip() + TRUNCATION_MARKER


def merge_notes(existing: str, current: str, mode: NotesMode) -> str:
    """Combine the body already on the release with the new one.

    ``keep-existing`` keeps a non-empty remote body and only fills an empty one.
    """
    if mode == "append":
        return "\n\n".join([existing, current])
    if mode == "prepend":
        return "\n\n".join([current, existing])
    if mode == "replace":
        return current
    if existing:
        return existing
    return current


class ReleasePublisher:
    def __init__(
        self,
        client: GithubClient,
        *,
        body_max_chars: Optional[int] = None,
        lookup_strict: Optional[bool] = None,
    ):
        """Initialize the publisher.

        Args:
            client: GitHub REST client.
            body_max_chars: Body limit; defaults to ``Config.RELEASE_BODY_MAX_CHARS``.
            lookup_strict: When True only a 404 on the tag lookup means "create";
                other lookup failures propagate. When False every lookup
                failure is treated as "no release yet".
        """
        cfg = Config.get_release_config()
        self.client = client
        self.body_max_chars = int(body_max_chars if body_max_chars is not None else cfg["body_max_chars"])
        self.lookup_strict = cfg["lookup_strict"] if lookup_strict is None else lookup_strict

    # -------- Public API --------
    def create_release(self, spec: ReleaseSpec, body: str, cancel: Optional[CancelToken] = None) -> str:
        """Upsert the release for ``spec.tag`` and return its id as a string.

        Raises:
            GithubApiError: Wrapped with "could not release" context.
        """
        cancel = cancel or CancelToken()
        if spec.draft and spec.replace_existing_draft:
            self.delete_existing_draft(spec.repo, spec.title, cancel=cancel)

        body = truncate_body(body, self.body_max_chars)
        try:
            release = self.create_or_update(spec, body, cancel=cancel)
        except GithubApiError as e:
            raise e.with_context("could not release") from e
        return str(release.id)

    def create_or_update(self, spec: ReleaseSpec, body: str, cancel: Optional[CancelToken] = None) -> Release:
        cancel = cancel or CancelToken()
        existing = self.get_by_tag(spec.repo, spec.tag, cancel=cancel)
        if existing is None:
            return self._create(spec, body, cancel)

        merged = merge_notes(existing.body, body, spec.notes_mode)
        return self.update_release(spec.repo, existing.id, spec.to_payload(truncate_body(merged, self.body_max_chars)), cancel=cancel)

    def get_by_tag(self, repo: Repo, tag: str, cancel: Optional[CancelToken] = None) -> Optional[Release]:
        """Return the release for ``tag`` or None when there is none."""
        try:
            resp = self.client.get(repo_path(repo, "releases", "tags", tag), cancel=cancel)
        except GithubApiError as e:
            if e.not_found:
                return None
            if self.lookup_strict or e.code == "CANCELLED":
                raise e.with_context(f"could not look up release {tag!r}") from e
            logger.warning(f"release lookup failed, assuming none exists: repo={repo} tag={tag} error={e}")
            return None
        return Release.from_api(resp.data or {})

    def update_release(self, repo: Repo, release_id: int, payload: Dict[str, Any], cancel: Optional[CancelToken] = None) -> Release:
        resp = self.client.patch(repo_path(repo, "releases", str(release_id)), json=payload, cancel=cancel)
        release = Release.from_api(resp.data or {"id": release_id})
        logger.info(f"release updated: name={payload.get('name')} release_id={release.id} request_id={resp.request_id}")
        incr("release.updated", repo=str(repo))
        return release

    def delete_existing_draft(self, repo: Repo, name: str, cancel: Optional[CancelToken] = None) -> bool:
        """Delete the first draft release named ``name``.

        Returns:
            True if a draft was deleted. A draft already gone counts as deleted.
        """
        cancel = cancel or CancelToken()

        def fetch(page: int, per_page: int) -> Page:
            resp = self.client.get(
                repo_path(repo, "releases"),
                params={"per_page": per_page, "page": page},
                cancel=cancel,
            )
            return Page(items=[Release.from_api(d) for d in resp.data or []], next_page=resp.next_page)

        try:
            draft = Paginator(fetch, per_page=RELEASES_PER_PAGE, label=f"releases {repo}").first(
                lambda r: r.draft and r.name == name
            )
        except GithubApiError as e:
            raise e.with_context("could not delete existing drafts") from e
        if draft is None:
            return False

        try:
            self.client.delete(repo_path(repo, "releases", str(draft.id)), cancel=cancel)
        except GithubApiError as e:
            if not e.not_found:
                raise e.with_context("could not delete previous draft release") from e
        logger.info(
            f"deleted previous draft release: commit={draft.target_commitish} tag={draft.tag_name} name={draft.name}"
        )
        incr("release.draft_deleted", repo=str(repo))
        return True

    # -------- REST helpers --------
    def _create(self, spec: ReleaseSpec, body: str, cancel: CancelToken) -> Release:
        resp = self.client.post(repo_path(spec.repo, "releases"), json=spec.to_payload(body), cancel=cancel)
        release = Release.from_api(resp.data or {})
        logger.info(f"release created: name={spec.title} release_id={release.id} request_id={resp.request_id}")
        incr("release.created", repo=str(spec.repo))
        return release
