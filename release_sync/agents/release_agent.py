#!/usr/bin/env python3
"""Release publishing agent.

Entry point for a release run: generates or fetches changelogs, upserts the
GitHub Release, uploads artifacts, pushes files, opens pull requests and
closes milestones. Every remote call goes through the shared client's quota
guard and honours the caller's cancel token.
"""

import json
import logging
import os
import sys
from typing import BinaryIO, Callable, Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from release_sync.clients.github_client import ClientSettings, GithubClient
from release_sync.configs.config import Config
from release_sync.utils.asset_uploader import AssetUploader
from release_sync.utils.cancellation import CancelToken
from release_sync.utils.errors import ConfigError, GithubApiError, NoMilestoneFoundError, RetriableError
from release_sync.utils.file_publisher import FilePublisher
from release_sync.utils.publish_models import Asset, CommitAuthor, ReleaseSpec, Repo
from release_sync.utils.release_publisher import ReleasePublisher
from release_sync.utils.repo_lookups import RepoLookups

# Set up logging
logger = logging.getLogger(__name__)


class ReleaseAgent:
	"""Facade over the publishing workflows for one repository."""

	def __init__(
		self,
		repo: Repo,
		client: Optional[GithubClient] = None,
		*,
		render: Optional[Callable[[str], str]] = None,
		lookup_strict: Optional[bool] = None,
	):
		"""Initialize the release agent.

		Args:
			repo: Repository that owns releases and uploaded assets.
			client: Optional GithubClient. If None, one is built from Config.
			render: Template renderer for configured URLs.
			lookup_strict: Overrides ``Config.RELEASE_LOOKUP_STRICT``.
		"""
		self.repo = repo
		self.client = client or GithubClient(ClientSettings.from_config(render))
		self.lookups = RepoLookups(self.client)
		self.releases = ReleasePublisher(self.client, lookup_strict=lookup_strict)
		self.files = FilePublisher(self.client, self.lookups)
		self.assets = AssetUploader(self.client, repo)
		logger.info(f"Release agent initialized: repo={repo}")

	def generate_release_notes(self, repo: Repo, previous_tag: str, current_tag: str, cancel: Optional[CancelToken] = None) -> str:
		return self.lookups.generate_release_notes(repo, previous_tag, current_tag, cancel=cancel)

	def changelog(self, repo: Repo, previous_tag: str, current_tag: str, cancel: Optional[CancelToken] = None) -> str:
		return self.lookups.changelog(repo, previous_tag, current_tag, cancel=cancel)

	def close_milestone(self, repo: Repo, title: str, cancel: Optional[CancelToken] = None) -> None:
		self.lookups.close_milestone(repo, title, cancel=cancel)

	def open_pull_request(self, base: Repo, head: Repo, title: str, draft: bool = False, cancel: Optional[CancelToken] = None) -> None:
		self.lookups.open_pull_request(base, head, title, draft, cancel=cancel)

	def create_file(
		self,
		commit_author: CommitAuthor,
		repo: Repo,
		content: bytes,
		path: str,
		message: str,
		cancel: Optional[CancelToken] = None,
	) -> None:
		self.files.create_file(commit_author, repo, content, path, message, cancel=cancel)

	def create_release(self, spec: ReleaseSpec, body: str, cancel: Optional[CancelToken] = None) -> str:
		"""Upsert the release and return its id, serialized as a string."""
		return self.releases.create_release(spec, body, cancel=cancel)

	def upload(self, release_id: str, asset: Asset, fileobj: BinaryIO, cancel: Optional[CancelToken] = None) -> None:
		self.assets.upload(release_id, asset, fileobj, cancel=cancel)

	def release_url_template(self) -> str:
		"""Download URL template for assets of this repository's releases."""
		return (
			f"{self.client.settings.download_url}/{self.repo.owner}/{self.repo.name}"
			"/releases/download/{{ .Tag }}/{{ .ArtifactName }}"
		)

	def close(self) -> None:
		self.client.close()


def _build_parser():
	import argparse

	parser = argparse.ArgumentParser(
		description="Release Sync - publish releases, assets and files to GitHub",
		formatter_class=argparse.RawDescriptionHelpFormatter,
		epilog="""
Examples:
  python -m release_sync.agents.release_agent changelog --owner o --repo r --prev v1.0.0 --current v1.1.0
  python -m release_sync.agents.release_agent release --owner o --repo r --tag v1.1.0 --body-file notes.md
  python -m release_sync.agents.release_agent upload --owner o --repo r --release-id 42 dist/app.tar.gz
		"""
	)
	parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
	parser.add_argument("--timeout", type=float, default=None, help="Abort the run after this many seconds")
	sub = parser.add_subparsers(dest="command", required=True)

	def repo_args(p):
		p.add_argument("--owner", required=True, help="Repository owner (user or organization)")
		p.add_argument("--repo", required=True, help="Repository name")
		p.add_argument("--branch", default="", help="Branch (defaults to the repository default)")

	notes = sub.add_parser("notes", help="Print GitHub-generated release notes")
	repo_args(notes)
	notes.add_argument("--prev", required=True)
	notes.add_argument("--current", required=True)

	cl = sub.add_parser("changelog", help="Print commits between two tags")
	repo_args(cl)
	cl.add_argument("--prev", required=True)
	cl.add_argument("--current", required=True)

	ms = sub.add_parser("close-milestone", help="Close a milestone by title")
	repo_args(ms)
	ms.add_argument("--title", required=True)

	pr = sub.add_parser("open-pr", help="Open a pull request")
	repo_args(pr)
	pr.add_argument("--head-owner", default="")
	pr.add_argument("--head-repo", default="")
	pr.add_argument("--head-branch", required=True)
	pr.add_argument("--title", required=True)
	pr.add_argument("--draft", action="store_true")

	pf = sub.add_parser("push-file", help="Create or update a file on a branch")
	repo_args(pf)
	pf.add_argument("--path", required=True, help="Path in the repository")
	pf.add_argument("--source", required=True, help="Local file to push")
	pf.add_argument("--message", required=True)
	pf.add_argument("--author-name", required=True)
	pf.add_argument("--author-email", required=True)

	rel = sub.add_parser("release", help="Create or update the release for a tag")
	repo_args(rel)
	rel.add_argument("--tag", required=True)
	rel.add_argument("--name", default=None, help="Release title (defaults to the tag)")
	rel.add_argument("--body-file", default=None)
	rel.add_argument("--commitish", default="")
	rel.add_argument("--discussion-category", default="")
	rel.add_argument("--draft", action="store_true")
	rel.add_argument("--replace-existing-draft", action="store_true")
	rel.add_argument("--prerelease", action="store_true")
	rel.add_argument("--mode", choices=["keep-existing", "append", "prepend", "replace"], default=Config.RELEASE_NOTES_MODE)
	rel.add_argument("--json", action="store_true", help="Output JSON instead of the bare id")

	up = sub.add_parser("upload", help="Upload an asset to a release")
	repo_args(up)
	up.add_argument("--release-id", required=True)
	up.add_argument("--name", default=None, help="Asset name (defaults to the file name)")
	up.add_argument("file")

	url = sub.add_parser("url-template", help="Print the asset download URL template")
	repo_args(url)
	return parser


def _run(args, agent: ReleaseAgent, repo: Repo, cancel: CancelToken) -> int:
	if args.command == "notes":
		print(agent.generate_release_notes(repo, args.prev, args.current, cancel=cancel))
	elif args.command == "changelog":
		print(agent.changelog(repo, args.prev, args.current, cancel=cancel))
	elif args.command == "close-milestone":
		agent.close_milestone(repo, args.title, cancel=cancel)
	elif args.command == "open-pr":
		head = Repo(owner=args.head_owner, name=args.head_repo, branch=args.head_branch)
		agent.open_pull_request(repo, head, args.title, args.draft, cancel=cancel)
	elif args.command == "push-file":
		with open(args.source, "rb") as f:
			content = f.read()
		author = CommitAuthor(name=args.author_name, email=args.author_email)
		agent.create_file(author, repo, content, args.path, args.message, cancel=cancel)
	elif args.command == "release":
		body = ""
		if args.body_file:
			with open(args.body_file, "r", encoding="utf-8") as f:
				body = f.read()
		spec = ReleaseSpec(
			repo=repo,
			tag=args.tag,
			title=args.name or args.tag,
			draft=args.draft,
			prerelease=args.prerelease,
			replace_existing_draft=args.replace_existing_draft,
			discussion_category=args.discussion_category,
			target_commitish=args.commitish,
			notes_mode=args.mode,
		)
		release_id = agent.create_release(spec, body, cancel=cancel)
		if args.json:
			print(json.dumps({"release_id": release_id, "tag": args.tag}, indent=2))
		else:
			print(release_id)
	elif args.command == "upload":
		asset = Asset(name=args.name or os.path.basename(args.file), path=args.file)
		with open(args.file, "rb") as f:
			agent.upload(args.release_id, asset, f, cancel=cancel)
	elif args.command == "url-template":
		print(agent.release_url_template())
	return 0


def main(argv=None):
	"""CLI entry point for the release agent."""
	load_dotenv()
	parser = _build_parser()
	args = parser.parse_args(argv)

	# Set up logging
	log_level = logging.DEBUG if args.verbose else logging.INFO
	logging.basicConfig(
		level=log_level,
		format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
	)

	# Suppress verbose logs from libraries unless in debug mode
	if not args.verbose:
		logging.getLogger("release_sync.clients.github_client").setLevel(logging.WARNING)
		logging.getLogger("urllib3").setLevel(logging.WARNING)

	repo = Repo(owner=args.owner, name=args.repo, branch=args.branch)
	cancel = CancelToken(args.timeout)
	agent = None
	try:
		agent = ReleaseAgent(repo)
		return _run(args, agent, repo, cancel)
	except NoMilestoneFoundError as e:
		print(f"Error: {e}", file=sys.stderr)
		return 2
	except RetriableError as e:
		print(f"Error (retriable): {e}", file=sys.stderr)
		return 75
	except (GithubApiError, ConfigError, ValidationError) as e:
		print(f"Error: {e}", file=sys.stderr)
		return 1
	except KeyboardInterrupt:
		cancel.cancel()
		print("Interrupted", file=sys.stderr)
		return 130
	finally:
		if agent is not None:
			agent.close()


if __name__ == "__main__":
	sys.exit(main())
