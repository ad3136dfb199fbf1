"""
Pytest tests for the cached fetch pipeline (common_bitbucket/fetcher.py + api/*_cached.py).

Run from the repository root:
    pytest common_bitbucket/test_fetcher.py -v
"""

import sys
import time
from pathlib import Path

import pytest

# Set up path for imports
parent_dir = Path(__file__).parent.parent
if str(parent_dir) not in sys.path:
    sys.path.insert(0, str(parent_dir))

from cache.cache_transients import TransientCache, transient_key
from common import UpdaterConfig
from common_bitbucket import BitbucketServerAPIClient
from common_bitbucket.exceptions import (
    BitbucketServerAuthError,
    BitbucketServerNotFoundError,
    BitbucketServerRequestError,
)
from common_bitbucket.fetcher import RemoteResourceFetcher
from common_bitbucket.host import RequestContext
from common_bitbucket.models import RepositoryDescriptor
from common_bitbucket.results import FetchError, NotFound, Ok
from common_types import FetchErrorKind


ENTERPRISE = "https://bitbucket.example.com"
TAGS_EP = "/1.0/projects/ACME/repos/widget/tags"
META_EP = "/1.0/projects/ACME/repos/widget"
BRANCHES_EP = "/1.0/projects/ACME/repos/widget/branches"
FILE_EP = "/1.0/projects/ACME/repos/widget/browse/widget.php"


class FakeClient(BitbucketServerAPIClient):
    """Records calls; responses are keyed by endpoint/URL (exceptions are raised)."""

    def __init__(self, responses=None):
        super().__init__(f"{ENTERPRISE}/rest/api")
        self.responses = dict(responses or {})
        self.calls = []

    def _answer(self, key):
        self.calls.append(key)
        value = self.responses.get(key)
        if isinstance(value, Exception):
            raise value
        return value

    def get(self, endpoint, params=None, timeout=None, *, label=None):
        return self._answer(endpoint)

    def get_raw(self, url, *, timeout=None, label=None):
        return self._answer(url) or ""


class FakeHost:
    def __init__(self, *, update=True, local_files=None):
        self.update = update
        self.local_files = dict(local_files or {})

    def can_update(self, descriptor):
        return self.update

    def local_file_exists(self, descriptor, filename):
        return filename in self.local_files

    def get_local_info(self, descriptor, filename):
        return self.local_files.get(filename)

    def render_markdown(self, text):
        return f"<md>{text}</md>"


def _tags(*names):
    return {"size": len(names), "values": [{"displayId": n} for n in names], "isLastPage": True}


def _make(tmp_path, responses=None, *, host=None, config=None, context=None, branch="master"):
    d = RepositoryDescriptor(owner="ACME", repo="widget", enterprise=ENTERPRISE, file="widget.php", branch=branch)
    api = FakeClient(responses)
    cache = TransientCache(cache_file=tmp_path / "transients.json")
    fetcher = RemoteResourceFetcher(
        d,
        config=config or UpdaterConfig(),
        api=api,
        cache=cache,
        host=host or FakeHost(),
        context=context,
    )
    return d, api, cache, fetcher


# ============================================================================
# Tags
# ============================================================================

def test_tags_sorted_newest_first_with_rollback_links(tmp_path):
    d, api, _, f = _make(tmp_path, {TAGS_EP: _tags("v1.0", "v2.0", "v1.10")})

    result = f.get_remote_tag()

    assert isinstance(result, Ok)
    assert d.tags == ["v2.0", "v1.10", "v1.0"]
    assert d.newest_tag == "v2.0"
    assert d.rollback["v1.0"].endswith("/plugins/servlet/archive/projects/ACME/repos/widget?at=v1.0")
    assert f.construct_download_link() == (
        f"{ENTERPRISE}/plugins/servlet/archive/projects/ACME/repos/widget?at=v2.0"
    )


def test_cache_hit_within_ttl_issues_no_network_call(tmp_path):
    d, api, _, f = _make(tmp_path, {TAGS_EP: _tags("v1.0")})

    assert isinstance(f.get_remote_tag(), Ok)
    assert isinstance(f.get_remote_tag(), Ok)

    assert api.calls == [TAGS_EP]
    assert d.newest_tag == "v1.0"


@pytest.mark.parametrize("payload", [
    {"size": 0, "values": []},
    {"errors": [{"message": "Repository ACME/widget does not exist."}]},
    {"size": 2},
])
def test_empty_or_error_tags_become_no_tags_found(tmp_path, payload):
    d, api, cache, f = _make(tmp_path, {TAGS_EP: payload})

    result = f.get_remote_tag()

    assert result == NotFound("No tags found")
    assert d.newest_tag is None
    assert d.tags == []
    # The sentinel is cached: a second call does not hit the network.
    assert cache.get(d.repo_id, "tags") == {"message": "No tags found"}
    f.get_remote_tag()
    assert api.calls == [TAGS_EP]


def test_tags_404_is_cached_as_sentinel(tmp_path):
    err = BitbucketServerNotFoundError(status_code=404, endpoint=TAGS_EP, message="404")
    d, api, cache, f = _make(tmp_path, {TAGS_EP: err})

    assert f.get_remote_tag() == NotFound("No tags found")
    assert cache.get(d.repo_id, "tags") == {"message": "No tags found"}


@pytest.mark.parametrize("err", [
    BitbucketServerAuthError(status_code=401, endpoint=TAGS_EP, message="401 Unauthorized"),
    BitbucketServerRequestError(status_code=0, endpoint=TAGS_EP, message="connection refused"),
    BitbucketServerRequestError(status_code=503, endpoint=TAGS_EP, message="503"),
])
def test_transport_errors_are_not_cached(tmp_path, err):
    d, api, cache, f = _make(tmp_path, {TAGS_EP: err})

    result = f.get_remote_tag()

    assert isinstance(result, FetchError)
    assert result.kind == FetchErrorKind.TRANSPORT
    assert cache.get(d.repo_id, "tags") is None
    assert d.tags == []

    # Next cycle retries the network.
    api.responses[TAGS_EP] = _tags("v3.0")
    assert isinstance(f.get_remote_tag(), Ok)
    assert api.calls == [TAGS_EP, TAGS_EP]
    assert d.newest_tag == "v3.0"


def test_expired_entry_triggers_refetch(tmp_path):
    config = UpdaterConfig(cache_ttl_hours=0.0001)
    d, api, cache, f = _make(tmp_path, {TAGS_EP: _tags("v1.0")}, config=config)

    assert isinstance(f.get_remote_tag(), Ok)
    # Age the entry well past its 0.36s TTL.
    key = transient_key(d.repo_id, "tags")
    cache._get_items()[key]["meta"]["fetched_at"] = int(time.time()) - 60

    api.responses[TAGS_EP] = _tags("v1.0", "v1.1")
    assert isinstance(f.get_remote_tag(), Ok)
    assert api.calls == [TAGS_EP, TAGS_EP]
    assert d.newest_tag == "v1.1"


def test_tags_skipped_without_update_when_uncached(tmp_path):
    d, api, _, f = _make(tmp_path, {TAGS_EP: _tags("v1.0")}, host=FakeHost(update=False))

    result = f.get_remote_tag()

    assert isinstance(result, NotFound)
    assert api.calls == []
    assert d.tags == []


def test_refresh_context_bypasses_skip_and_cache(tmp_path):
    ctx = RequestContext(refresh_cache=True)
    d, api, _, f = _make(tmp_path, {TAGS_EP: _tags("v1.0")}, host=FakeHost(update=False), context=ctx)

    assert isinstance(f.get_remote_tag(), Ok)
    assert isinstance(f.get_remote_tag(), Ok)
    assert api.calls == [TAGS_EP, TAGS_EP]


def test_invalid_cached_payload_is_validation_error(tmp_path):
    d, api, cache, f = _make(tmp_path)
    cache.set(d.repo_id, "tags", {"unexpected": True}, 3600)

    result = f.get_remote_tag()

    assert isinstance(result, FetchError)
    assert result.kind == FetchErrorKind.VALIDATION
    assert api.calls == []
    assert d.newest_tag is None


def test_refresh_drops_cached_entries(tmp_path):
    d, api, cache, f = _make(tmp_path, {TAGS_EP: _tags("v1.0"), META_EP: {"project": {"public": True}}})
    f.get_remote_tag()
    f.get_repo_meta()

    assert f.refresh() == 2
    assert cache.get(d.repo_id, "tags") is None


# ============================================================================
# Download link
# ============================================================================

def test_download_link_uses_branch_off_primary(tmp_path):
    d, api, _, f = _make(tmp_path, {TAGS_EP: _tags("v2.0")}, branch="feature-x")
    f.get_remote_tag()

    assert f.construct_download_link().endswith("?at=feature-x")
    assert f.construct_download_link(branch_switch="v1.0").endswith("?at=v1.0")


# ============================================================================
# File headers / meta
# ============================================================================

def test_file_headers_set_remote_version(tmp_path):
    body = {"lines": [
        {"text": "<?php"},
        {"text": "/**"},
        {"text": " * Plugin Name: Widget"},
        {"text": " * Version: 1.2.3"},
        {"text": " * Requires PHP: 7.4"},
        {"text": " */"},
    ]}
    d, api, _, f = _make(tmp_path, {FILE_EP: body})

    assert isinstance(f.get_remote_info(), Ok)
    assert d.remote_version == "1.2.3"
    assert d.requires_php_version == "7.4"
    assert api.calls == [FILE_EP]


def test_file_info_without_version_header_is_validation_error(tmp_path):
    body = {"lines": [{"text": " * Plugin Name: Widget"}]}
    d, _, _, f = _make(tmp_path, {FILE_EP: body})

    result = f.get_remote_info()

    assert isinstance(result, FetchError)
    assert result.kind == FetchErrorKind.VALIDATION
    assert d.remote_version is None


@pytest.mark.parametrize("public,expected_private", [(True, False), (False, True)])
def test_meta_public_flag_is_inverted(tmp_path, public, expected_private):
    meta = {"slug": "widget", "name": "Widget", "project": {"key": "ACME", "public": public}}
    d, _, _, f = _make(tmp_path, {META_EP: meta})

    assert isinstance(f.get_repo_meta(), Ok)
    assert d.private is expected_private


# ============================================================================
# Changelog / readme
# ============================================================================

def test_changelog_fetches_raw_file_and_renders(tmp_path):
    url = f"{ENTERPRISE}/projects/ACME/repos/widget/browse/CHANGES.md?at=master&raw"
    d, api, _, f = _make(tmp_path, {url: "# 1.2.3\n* fixed"})

    assert isinstance(f.get_remote_changes("CHANGES.md"), Ok)
    assert d.sections["changelog"] == "<md># 1.2.3\n* fixed</md>"
    assert api.calls == [url]


def test_changelog_uses_local_copy_when_no_update(tmp_path):
    host = FakeHost(update=False, local_files={"CHANGES.md": "local notes"})
    d, api, cache, f = _make(tmp_path, host=host)

    assert isinstance(f.get_remote_changes("CHANGES.md"), Ok)
    assert api.calls == []
    assert d.sections["changelog"] == "<md>local notes</md>"
    assert cache.get(d.repo_id, "changelog") == {"changes": "local notes"}


def test_empty_changelog_is_cached_sentinel(tmp_path):
    d, api, cache, f = _make(tmp_path)

    assert f.get_remote_changes("CHANGES.md") == NotFound("No changelog found")
    assert cache.get(d.repo_id, "changelog") == {"message": "No changelog found"}
    assert "changelog" not in d.sections


README = """=== Widget ===
Contributors: alice, bob
Requires at least: 5.0
Tested up to: 6.4
Stable tag: 1.2.3

A small widget.

== Description ==
Does widget things.

== Installation ==
Upload it.

== Changelog ==
readme changes

== Credits ==
Thanks.
"""


def test_readme_skipped_without_local_readme(tmp_path):
    d, api, _, f = _make(tmp_path)

    assert isinstance(f.get_remote_readme(), NotFound)
    assert api.calls == []


def test_readme_merges_sections(tmp_path):
    url = f"{ENTERPRISE}/projects/ACME/repos/widget/browse/readme.txt?at=master&raw"
    host = FakeHost(update=True, local_files={"readme.txt": "installed"})
    d, api, _, f = _make(tmp_path, {url: README}, host=host)
    d.sections["changelog"] = "<md>from CHANGES.md</md>"

    assert isinstance(f.get_remote_readme(), Ok)
    assert d.sections["changelog"] == "<md>from CHANGES.md</md>"
    assert d.sections["description"] == "<md>Does widget things.</md>"
    assert "installation" not in d.sections
    assert d.tested == "6.4"
    assert d.requires == "5.0"
    assert d.contributors == ["alice", "bob"]


# ============================================================================
# Branches / language packs
# ============================================================================

def test_branches_require_branch_switch(tmp_path):
    d, api, _, f = _make(tmp_path, {BRANCHES_EP: {"values": [{"displayId": "dev"}]}})

    assert isinstance(f.get_remote_branches(), NotFound)
    assert api.calls == []


def test_branches_map_to_download_links(tmp_path):
    config = UpdaterConfig(branch_switch=True)
    body = {"size": 2, "values": [{"displayId": "master"}, {"displayId": "dev"}]}
    d, _, _, f = _make(tmp_path, {BRANCHES_EP: body}, config=config)

    assert isinstance(f.get_remote_branches(), Ok)
    assert set(d.branches) == {"master", "dev"}
    assert d.branches["dev"].endswith("/repos/widget?at=dev")


def test_language_pack_from_header_repo(tmp_path):
    url = f"{ENTERPRISE}/projects/ACME/repos/widget-i18n/browse/language-pack.json?at=master&raw"
    pack = '[{"language": "de_DE", "package": "packages/de_DE.zip"}]'
    d, api, _, f = _make(tmp_path, {url: pack})
    d.file_headers["Bitbucket Languages"] = f"{ENTERPRISE}/projects/ACME/repos/widget-i18n"
    d.remote_version = "1.2.3"

    assert isinstance(f.get_language_pack(), Ok)
    entry = d.language_packs["de_DE"]
    assert entry["package"] == (
        f"{ENTERPRISE}/projects/ACME/repos/widget-i18n/browse/packages/de_DE.zip?at=master&raw"
    )
    assert entry["type"] == "plugin"
    assert entry["version"] == "1.2.3"
    assert api.calls == [url]


def test_language_pack_mutation_does_not_leak_into_cache(tmp_path):
    url = f"{ENTERPRISE}/projects/ACME/repos/widget/browse/language-pack.json?at=master&raw"
    pack = '[{"language": "de_DE", "package": "packages/de_DE.zip"}]'
    d, api, cache, f = _make(tmp_path, {url: pack})

    assert isinstance(f.get_language_pack(), Ok)
    d.language_packs["de_DE"]["package"] = "changed by host"

    cached = cache.get(d.repo_id, "languages")
    assert cached["de_DE"]["package"].endswith("/browse/packages/de_DE.zip?at=master&raw")
    # A later write persists the whole cache file.
    cache.set(d.repo_id, "tags", ["v1.0"], 60)
    reloaded = TransientCache(cache_file=tmp_path / "transients.json")
    assert reloaded.get(d.repo_id, "languages")["de_DE"]["package"] != "changed by host"


def test_language_pack_cache_is_per_source_repo_and_version_follows_descriptor(tmp_path):
    i18n = f"{ENTERPRISE}/projects/ACME/repos/widget-i18n/browse/language-pack.json?at=master&raw"
    l10n = f"{ENTERPRISE}/projects/ACME/repos/widget-l10n/browse/language-pack.json?at=master&raw"
    responses = {
        i18n: '[{"language": "de_DE", "package": "de_DE.zip"}]',
        l10n: '[{"language": "fr_FR", "package": "fr_FR.zip"}]',
    }
    d, api, _, f = _make(tmp_path, responses)
    d.remote_version = "1.0"

    assert isinstance(f.get_language_pack("ACME", "widget-i18n"), Ok)
    assert set(d.language_packs) == {"de_DE"}
    assert isinstance(f.get_language_pack("ACME", "widget-l10n"), Ok)
    assert set(d.language_packs) == {"fr_FR"}
    assert api.calls == [i18n, l10n]

    # Served from cache, stamped with the current remote version.
    d.remote_version = "1.1"
    assert isinstance(f.get_language_pack("ACME", "widget-i18n"), Ok)
    assert api.calls == [i18n, l10n]
    assert d.language_packs["de_DE"]["version"] == "1.1"


# ============================================================================
# Auth hooks
# ============================================================================

def test_fetcher_installs_and_removes_auth_hooks(tmp_path):
    d, api, _, f = _make(tmp_path)
    assert len(api.middleware) == 2

    f.close()
    assert api.middleware == []


# ============================================================================
# Full update cycle
# ============================================================================

def test_get_all_runs_every_kind_and_sets_download_link(tmp_path):
    body = {"lines": [{"text": " * Plugin Name: Widget"}, {"text": " * Version: 2.0"}]}
    changes = f"{ENTERPRISE}/projects/ACME/repos/widget/browse/CHANGES.md?at=master&raw"
    responses = {
        FILE_EP: body,
        META_EP: {"project": {"key": "ACME", "public": False}},
        TAGS_EP: _tags("v1.0", "v2.0"),
        changes: "* 2.0",
    }
    d, api, _, f = _make(tmp_path, responses)

    results = f.get_all()

    assert set(results) == {"file", "meta", "tags", "changelog", "readme", "branches", "languages"}
    assert isinstance(results["file"], Ok)
    assert isinstance(results["meta"], Ok)
    assert isinstance(results["tags"], Ok)
    assert isinstance(results["changelog"], Ok)
    assert isinstance(results["readme"], NotFound)
    assert isinstance(results["branches"], NotFound)
    assert isinstance(results["languages"], NotFound)
    assert d.private is True
    assert d.download_link == f"{ENTERPRISE}/plugins/servlet/archive/projects/ACME/repos/widget?at=v2.0"
    assert api.calls == [FILE_EP, META_EP, TAGS_EP, changes]
