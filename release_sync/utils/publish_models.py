#!/usr/bin/env python3
"""Pydantic models for the resources the publisher reads and writes.

All models are transient: built per call from caller input or a REST payload
and never persisted.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


NotesMode = Literal["keep-existing", "append", "prepend", "replace"]

MilestoneState = Literal["open", "closed"]


class Repo(BaseModel):
    """A remote repository, optionally pinned to a branch."""

    owner: str = Field("", description="Repository owner (user or organization)")
    name: str = Field("", description="Repository name")
    branch: str = Field("", description="Branch; empty means the default branch")

    model_config = ConfigDict(frozen=True, extra="ignore")

    def __str__(self) -> str:
        return f"{self.owner}/{self.name}"

    def with_branch(self, branch: str) -> "Repo":
        return self.model_copy(update={"branch": branch})


class CommitAuthor(BaseModel):
    name: str = Field(..., description="Committer name")
    email: str = Field(..., description="Committer email")

    model_config = {"extra": "ignore"}


class QuotaState(BaseModel):
    """Core API quota as reported by ``GET /rate_limit``."""

    remaining: int = Field(..., description="Calls left in the current window")
    reset_at: datetime = Field(..., description="When the window resets (UTC)")

    model_config = {"extra": "ignore"}

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "QuotaState":
        core = (data.get("resources") or {}).get("core") or data.get("rate")
        if not core:
            raise ValueError("rate limit response has no core quota")
        return cls(
            remaining=int(core.get("remaining", 0)),
            reset_at=datetime.fromtimestamp(int(core.get("reset", 0)), tz=timezone.utc),
        )


class Release(BaseModel):
    id: int = Field(..., description="Release id assigned by GitHub")
    tag_name: str = Field("", description="Git tag the release points at")
    name: str = Field("", description="Release title")
    body: str = Field("", description="Release notes (markdown)")
    draft: bool = False
    prerelease: bool = False
    target_commitish: Optional[str] = None
    discussion_category_name: Optional[str] = None
    html_url: str = ""
    upload_url: str = ""

    model_config = {"extra": "ignore"}

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Release":
        return cls(
            id=int(data.get("id", 0)),
            tag_name=data.get("tag_name") or "",
            name=data.get("name") or "",
            body=data.get("body") or "",
            draft=bool(data.get("draft", False)),
            prerelease=bool(data.get("prerelease", False)),
            target_commitish=data.get("target_commitish"),
            discussion_category_name=data.get("discussion_category_name"),
            html_url=data.get("html_url") or "",
            upload_url=data.get("upload_url") or "",
        )


class ReleaseSpec(BaseModel):
    """Rendered release settings for one publishing run.

    Title and target commitish arrive already templated.
    """

    repo: Repo = Field(..., description="Repository that owns the release")
    tag: str = Field(..., min_length=1, description="Tag of the release, unique per repo")
    title: str = Field(..., description="Release name")
    draft: bool = False
    prerelease: bool = False
    replace_existing_draft: bool = Field(False, description="Delete a draft with the same title first")
    discussion_category: str = ""
    target_commitish: str = ""
    notes_mode: NotesMode = "keep-existing"

    model_config = {"extra": "ignore"}

    def to_payload(self, body: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "tag_name": self.tag,
            "name": self.title,
            "body": body,
            "draft": self.draft,
            "prerelease": self.prerelease,
        }
        if self.discussion_category:
            payload["discussion_category_name"] = self.discussion_category
        if self.target_commitish:
            payload["target_commitish"] = self.target_commitish
        return payload


class Milestone(BaseModel):
    number: int = Field(..., description="Milestone number within the repo")
    title: str = Field(..., description="Milestone title")
    state: MilestoneState = "open"
    description: Optional[str] = None
    due_on: Optional[str] = None

    model_config = {"extra": "ignore"}

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"title": self.title, "state": self.state}
        if self.description is not None:
            payload["description"] = self.description
        if self.due_on is not None:
            payload["due_on"] = self.due_on
        return payload


class FileCommit(BaseModel):
    """One file write on a branch; ``prior_sha`` set means update."""

    path: str = Field(..., min_length=1)
    content: bytes = b""
    message: str = ""
    branch: str = ""
    committer: CommitAuthor
    prior_sha: Optional[str] = None

    model_config = {"extra": "ignore"}


class Asset(BaseModel):
    name: str = Field(..., min_length=1, description="Display name of the uploaded file")
    path: Optional[str] = Field(None, description="Local path, informational")

    model_config = {"extra": "ignore"}


class PullRequest(BaseModel):
    base: Repo
    head: Repo
    title: str
    body: Optional[str] = None
    draft: bool = False

    model_config = {"extra": "ignore"}


class CommitLine(BaseModel):
    sha: str
    message: str = Field("", description="First line of the commit message")
    author_login: str = ""

    model_config = {"extra": "ignore"}

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "CommitLine":
        message = ((data.get("commit") or {}).get("message") or "").split("\n")[0]
        author = data.get("author") or {}
        return cls(sha=data.get("sha") or "", message=message, author_login=author.get("login") or "")

    def format(self) -> str:
        return f"{self.sha}: {self.message} (@{self.author_login})"


class Page(BaseModel):
    """One page of a listing; ``next_page == 0`` means no more pages."""

    items: List[Any] = Field(default_factory=list)
    next_page: int = 0
