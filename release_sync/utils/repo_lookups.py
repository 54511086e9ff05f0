#!/usr/bin/env python3
"""Single-call repository operations around a release.

Default branch, milestones, pull requests, the commit changelog between two
tags and GitHub-generated release notes. Listings go through ``Paginator``.
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import List, Optional

from release_sync.clients.github_client import GithubClient, repo_path
from release_sync.configs.config import Config
from release_sync.utils.cancellation import CancelToken
from release_sync.utils.errors import GithubApiError, NoMilestoneFoundError
from release_sync.utils.metrics import incr
from release_sync.utils.paginator import Paginator
from release_sync.utils.publish_models import CommitLine, Milestone, Page, PullRequest, Repo


logger = logging.getLogger(__name__)

COMMITS_PER_PAGE = 100
MILESTONES_PER_PAGE = 100


def first_non_empty(*values: str) -> str:
    for v in values:
        if v:
            return v
    return ""


def ref_string(primary: Repo, fallback: Repo) -> str:
    """``owner:name:branch`` from ``primary``, filling empty fields from ``fallback``."""
    return ":".join([
        first_non_empty(primary.owner, fallback.owner),
        first_non_empty(primary.name, fallback.name),
        first_non_empty(primary.branch, fallback.branch),
    ])


class RepoLookups:
    def __init__(self, client: GithubClient, *, pr_footer: Optional[str] = None, template_path: Optional[str] = None):
        self.client = client
        self.pr_footer = Config.PR_FOOTER if pr_footer is None else pr_footer
        self.template_path = template_path or Config.PR_TEMPLATE_PATH

    def get_default_branch(self, repo: Repo, cancel: Optional[CancelToken] = None) -> str:
        """Return the default branch name of ``repo``."""
        try:
            resp = self.client.get(repo_path(repo), cancel=cancel)
        except GithubApiError as e:
            logger.warning(
                f"error checking for default branch: projectID={repo} statusCode={e.status_code} error={e}"
            )
            raise e.with_context(f"repository {repo}") from e
        return (resp.data or {}).get("default_branch", "")

    # -------- Milestones --------
    def milestones(self, repo: Repo, cancel: Optional[CancelToken] = None) -> Paginator:
        """Lazy sequence over the repository's open milestones."""

        def fetch(page: int, per_page: int) -> Page:
            resp = self.client.get(
                repo_path(repo, "milestones"),
                params={"per_page": per_page, "page": page},
                cancel=cancel,
            )
            return Page(items=[Milestone.model_validate(m) for m in resp.data or [] if m], next_page=resp.next_page)

        return Paginator(fetch, per_page=MILESTONES_PER_PAGE, label=f"milestones {repo}")

    def find_milestone(self, repo: Repo, title: str, cancel: Optional[CancelToken] = None) -> Optional[Milestone]:
        """First milestone titled exactly ``title``, or None after every page."""
        return self.milestones(repo, cancel=cancel).first(lambda m: m.title == title)

    def close_milestone(self, repo: Repo, title: str, cancel: Optional[CancelToken] = None) -> Milestone:
        """Close the milestone titled ``title``.

        Raises:
            NoMilestoneFoundError: If no open milestone has that title.
            GithubApiError: If listing or editing fails.
        """
        milestone = self.find_milestone(repo, title, cancel=cancel)
        if milestone is None:
            raise NoMilestoneFoundError(title)

        milestone = milestone.model_copy(update={"state": "closed"})
        self.client.patch(repo_path(repo, "milestones", str(milestone.number)), json=milestone.to_payload(), cancel=cancel)
        logger.info(f"milestone closed: repo={repo} title={title} number={milestone.number}")
        return milestone

    # -------- Pull requests --------
    def get_pr_template(self, repo: Repo, cancel: Optional[CancelToken] = None) -> str:
        """Pull request template on ``repo.branch``; empty string when unavailable."""
        params = {"ref": repo.branch} if repo.branch else None
        try:
            resp = self.client.get(repo_path(repo, "contents", self.template_path), params=params, cancel=cancel)
            data = resp.data if isinstance(resp.data, dict) else {}
            content = data.get("content") or ""
            if data.get("encoding") == "base64":
                content = base64.b64decode(content).decode("utf-8")
            return content
        except (GithubApiError, binascii.Error, UnicodeDecodeError) as e:
            if getattr(e, "code", "") == "CANCELLED":
                raise
            logger.debug(f"no pull request template found...: repo={repo} error={e}")
            return ""

    def open_pull_request(
        self,
        base: Repo,
        head: Repo,
        title: str,
        draft: bool = False,
        cancel: Optional[CancelToken] = None,
    ) -> PullRequest:
        """Open a pull request from ``head`` into ``base``.

        A 422 (duplicate or invalid pull request) is logged and not raised.
        """
        cancel = cancel or CancelToken()
        if not base.branch:
            base = base.with_branch(self.get_default_branch(base, cancel=cancel))

        tpl = self.get_pr_template(base, cancel=cancel)
        if tpl:
            logger.info("got a pr template")

        head_ref = ref_string(head, base)
        pr = PullRequest(base=base, head=head, title=title, body="\n".join([tpl, self.pr_footer]), draft=draft)
        context = f"base={ref_string(base, head)} head={head_ref} draft={draft}"
        logger.info(f"opening pull request: {context}")

        target = Repo(owner=first_non_empty(base.owner, head.owner), name=first_non_empty(base.name, head.name))
        try:
            resp = self.client.post(
                repo_path(target, "pulls"),
                json={"title": title, "base": base.branch, "head": head_ref, "body": pr.body, "draft": draft},
                cancel=cancel,
            )
        except GithubApiError as e:
            if e.unprocessable:
                logger.warning(f"pull request validation failed: {context} error={e}")
                incr("pull_request.skipped", repo=str(target))
                return pr
            raise e.with_context("could not create pull request") from e

        logger.info(f"pull request created: {context} url={(resp.data or {}).get('html_url', '')}")
        incr("pull_request.opened", repo=str(target))
        return pr

    # -------- Release notes --------
    def changelog_lines(self, repo: Repo, prev: str, current: str, cancel: Optional[CancelToken] = None) -> List[str]:
        """``sha: subject (@login)`` for each commit between two refs, in remote order."""

        def fetch(page: int, per_page: int) -> Page:
            resp = self.client.get(
                repo_path(repo, "compare", f"{prev}...{current}"),
                params={"per_page": per_page, "page": page},
                cancel=cancel,
            )
            commits = (resp.data or {}).get("commits") or []
            return Page(items=[CommitLine.from_api(c) for c in commits], next_page=resp.next_page)

        paginator = Paginator(fetch, per_page=COMMITS_PER_PAGE, label=f"compare {repo} {prev}...{current}")
        return [c.format() for c in paginator]

    def changelog(self, repo: Repo, prev: str, current: str, cancel: Optional[CancelToken] = None) -> str:
        return "\n".join(self.changelog_lines(repo, prev, current, cancel=cancel))

    def generate_release_notes(self, repo: Repo, prev: str, current: str, cancel: Optional[CancelToken] = None) -> str:
        payload = {"tag_name": current}
        if prev:
            payload["previous_tag_name"] = prev
        resp = self.client.post(repo_path(repo, "releases", "generate-notes"), json=payload, cancel=cancel)
        return (resp.data or {}).get("body", "")
