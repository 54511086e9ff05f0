"""Tests for the release upsert: truncation, merge policy, draft cleanup."""

import unicodedata

import pytest

from conftest import FakeResponse
from release_sync.utils.errors import GithubApiError
from release_sync.utils.publish_models import ReleaseSpec
from release_sync.utils.release_publisher import (
    MAX_RELEASE_BODY_CHARS,
    TRUNCATION_MARKER,
    ReleasePublisher,
    merge_notes,
    truncate_body,
)


class FakeReleases:
    """In-memory release store behind the releases endpoints of octo/demo."""

    def __init__(self, session):
        self.by_id = {}
        self.next_id = 100
        session.add("GET", "repos/octo/demo/releases/tags/v1.0.0", self.get_by_tag)
        session.add("POST", "repos/octo/demo/releases", self.create)

    def get_by_tag(self, call):
        tag = call.path.rsplit("/", 1)[-1]
        for rel in self.by_id.values():
            if rel["tag_name"] == tag:
                return FakeResponse(200, dict(rel))
        return FakeResponse(404, {"message": "Not Found"})

    def create(self, call):
        self.next_id += 1
        rel = dict(call.json, id=self.next_id)
        self.by_id[self.next_id] = rel
        return FakeResponse(201, dict(rel), headers={"X-GitHub-Request-Id": "REQ-1"})

    def edit(self, call):
        release_id = int(call.path.rsplit("/", 1)[-1])
        self.by_id[release_id].update(call.json)
        return FakeResponse(200, dict(self.by_id[release_id]))


@pytest.fixture
def spec(repo):
    return ReleaseSpec(repo=repo, tag="v1.0.0", title="Release v1.0.0")


class TestTruncateBody:
    def test_short_body_untouched(self):
        assert truncate_body("hello") == "hello"

    def test_long_body_fits_limit(self):
        body = "x" * (MAX_RELEASE_BODY_CHARS + 500)
        result = truncate_body(body)

        assert len(result) <= MAX_RELEASE_BODY_CHARS
        assert result.endswith(TRUNCATION_MARKER)

    def test_prefers_line_boundary(self):
        line = "- change entry number ok\n"
        body = line * (MAX_RELEASE_BODY_CHARS // len(line) + 100)
        result = truncate_body(body)
        kept = result[: -len(TRUNCATION_MARKER)]

        assert len(result) <= MAX_RELEASE_BODY_CHARS
        assert kept.endswith("ok")
        assert body.startswith(kept)

    def test_never_splits_combining_sequences(self):
        body = "e\u0301" * (MAX_RELEASE_BODY_CHARS // 2 + 10)
        result = truncate_body(body)
        kept = result[: -len(TRUNCATION_MARKER)]

        assert len(result) <= MAX_RELEASE_BODY_CHARS
        assert body.startswith(kept)
        assert not unicodedata.combining(body[len(kept)])

    def test_multibyte_text_stays_valid_utf8(self):
        body = "发布说明🚀" * 30000
        result = truncate_body(body)

        assert len(result) <= MAX_RELEASE_BODY_CHARS
        result.encode("utf-8")

    def test_tiny_limit(self):
        assert truncate_body("abcdef", max_chars=3) == "abc"


class TestMergeNotes:
    @pytest.mark.parametrize("mode,expected", [
        ("keep-existing", "old"),
        ("append", "old\n\nnew"),
        ("prepend", "new\n\nold"),
        ("replace", "new"),
    ])
    def test_modes(self, mode, expected):
        assert merge_notes("old", "new", mode) == expected

    def test_keep_existing_fills_empty_body(self):
        assert merge_notes("", "new", "keep-existing") == "new"


class TestUpsert:
    def test_creates_when_tag_has_no_release(self, client, session, spec):
        store = FakeReleases(session)

        release_id = ReleasePublisher(client).create_release(spec, "notes")

        assert release_id == "101"
        assert store.by_id[101]["body"] == "notes"
        assert "target_commitish" not in session.calls[-1].json
        assert "discussion_category_name" not in session.calls[-1].json

    def test_optional_fields_sent_when_set(self, client, session, repo):
        FakeReleases(session)
        spec = ReleaseSpec(
            repo=repo, tag="v1.0.0", title="v1", target_commitish="main", discussion_category="Announcements"
        )

        ReleasePublisher(client).create_release(spec, "notes")

        payload = session.calls[-1].json
        assert payload["target_commitish"] == "main"
        assert payload["discussion_category_name"] == "Announcements"

    @pytest.mark.parametrize("mode,expected", [
        ("append", "first\n\nsecond"),
        ("prepend", "second\n\nfirst"),
        ("keep-existing", "first"),
        ("replace", "second"),
    ])
    def test_second_call_updates_same_release(self, client, session, repo, mode, expected):
        store = FakeReleases(session)
        session.add("PATCH", "repos/octo/demo/releases/101", store.edit)
        spec = ReleaseSpec(repo=repo, tag="v1.0.0", title="v1.0.0", notes_mode=mode)
        publisher = ReleasePublisher(client)

        first = publisher.create_release(spec, "first")
        second = publisher.create_release(spec, "second")

        assert first == second == "101"
        assert len(store.by_id) == 1
        assert store.by_id[101]["body"] == expected
        assert session.paths("POST") == ["repos/octo/demo/releases"]

    def test_merged_body_is_truncated(self, client, session, repo):
        store = FakeReleases(session)
        session.add("PATCH", "repos/octo/demo/releases/101", store.edit)
        spec = ReleaseSpec(repo=repo, tag="v1.0.0", title="v1.0.0", notes_mode="append")
        publisher = ReleasePublisher(client, body_max_chars=100)

        publisher.create_release(spec, "a" * 80)
        publisher.create_release(spec, "b" * 80)

        assert len(store.by_id[101]["body"]) <= 100

    def test_lookup_failure_propagates_when_strict(self, client, session, spec):
        session.add("GET", "repos/octo/demo/releases/tags/v1.0.0", FakeResponse(502, {"message": "Bad Gateway"}))

        with pytest.raises(GithubApiError) as exc_info:
            ReleasePublisher(client, lookup_strict=True).create_release(spec, "notes")

        assert exc_info.value.code == "NETWORK"
        assert "could not release" in str(exc_info.value)
        assert session.paths("POST") == []

    def test_lookup_failure_creates_when_lenient(self, client, session, spec):
        FakeReleases(session)
        session.add("GET", "repos/octo/demo/releases/tags/v1.0.0", FakeResponse(502, {"message": "Bad Gateway"}))

        release_id = ReleasePublisher(client, lookup_strict=False).create_release(spec, "notes")

        assert release_id == "101"

    def test_create_failure_is_wrapped(self, client, session, spec):
        session.add("POST", "repos/octo/demo/releases", FakeResponse(422, {"message": "Validation Failed"}))

        with pytest.raises(GithubApiError) as exc_info:
            ReleasePublisher(client).create_release(spec, "notes")

        assert exc_info.value.status_code == 422
        assert str(exc_info.value).startswith("could not release")


class TestDraftCleanup:
    def draft_spec(self, repo):
        return ReleaseSpec(repo=repo, tag="v1.0.0", title="nightly", draft=True, replace_existing_draft=True)

    def test_deletes_matching_draft_on_later_page(self, client, session, repo):
        FakeReleases(session)

        def listing(call):
            if call.params["page"] == 1:
                return FakeResponse(200, [{"id": 1, "name": "nightly", "draft": False}], next_page=2)
            return FakeResponse(200, [
                {"id": 2, "name": "other", "draft": True},
                {"id": 3, "name": "nightly", "draft": True, "tag_name": "v0.9.0"},
            ])

        session.add("GET", "repos/octo/demo/releases", listing)
        session.add("DELETE", "repos/octo/demo/releases/3", FakeResponse(204))

        ReleasePublisher(client).create_release(self.draft_spec(repo), "notes")

        assert session.paths("DELETE") == ["repos/octo/demo/releases/3"]
        assert [c.params["per_page"] for c in session.calls if c.path == "repos/octo/demo/releases" and c.method == "GET"] == [50, 50]

    def test_draft_already_gone_is_fine(self, client, session, repo):
        FakeReleases(session)
        session.add("GET", "repos/octo/demo/releases", FakeResponse(200, [{"id": 3, "name": "nightly", "draft": True}]))
        session.add("DELETE", "repos/octo/demo/releases/3", FakeResponse(404, {"message": "Not Found"}))

        assert ReleasePublisher(client).create_release(self.draft_spec(repo), "notes") == "101"

    def test_cleanup_skipped_for_published_releases(self, client, session, repo):
        FakeReleases(session)
        spec = ReleaseSpec(repo=repo, tag="v1.0.0", title="nightly", draft=False, replace_existing_draft=True)

        ReleasePublisher(client).create_release(spec, "notes")

        assert "repos/octo/demo/releases" not in session.paths("GET")

    def test_listing_failure_is_wrapped(self, client, session, repo):
        session.add("GET", "repos/octo/demo/releases", FakeResponse(500, {"message": "oops"}))

        with pytest.raises(GithubApiError, match="could not delete existing drafts"):
            ReleasePublisher(client).create_release(self.draft_spec(repo), "notes")
