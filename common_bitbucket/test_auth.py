"""
Pytest tests for common_bitbucket/auth.py (Basic auth injection rules).

Run from the repository root:
    pytest common_bitbucket/test_auth.py -v
"""

import sys
from pathlib import Path

# Set up path for imports
parent_dir = Path(__file__).parent.parent
if str(parent_dir) not in sys.path:
    sys.path.insert(0, str(parent_dir))

from common import UpdaterConfig
from common_bitbucket import BitbucketServerAPIClient
from common_bitbucket.auth import (
    AuthenticationInjector,
    OutgoingRequest,
    basic_auth_header,
)
from common_bitbucket.host import RequestContext
from common_bitbucket.models import RepositoryDescriptor

ENTERPRISE = "https://bitbucket.example.com"
TAGS_URL = f"{ENTERPRISE}/rest/api/1.0/projects/ACME/repos/widget/tags"
ASSET_URL = "https://bbuseruploads.s3.amazonaws.com/some/asset.zip?Signature=abc"


def _descriptor(**kw):
    return RepositoryDescriptor(owner="ACME", repo="widget", enterprise=ENTERPRISE, **kw)


def _config(**kw):
    kw.setdefault("username", "alice")
    kw.setdefault("password", "s3cret")
    return UpdaterConfig(**kw)


def test_basic_auth_header():
    # base64("alice:s3cret")
    assert basic_auth_header("alice", "s3cret") == "Basic YWxpY2U6czNjcmV0"


def test_private_repo_in_url_gets_credentials():
    inj = AuthenticationInjector(_config(private_repos={"widget"}), descriptor=_descriptor())
    req = inj.maybe_authenticate_http(OutgoingRequest(url=TAGS_URL))
    assert req.headers["Authorization"] == basic_auth_header("alice", "s3cret")


def test_private_descriptor_gets_credentials():
    d = _descriptor()
    d.private = True
    inj = AuthenticationInjector(_config(), descriptor=d)
    req = inj.maybe_authenticate_http(OutgoingRequest(url=TAGS_URL))
    assert "Authorization" in req.headers


def test_public_repo_gets_no_credentials():
    inj = AuthenticationInjector(_config(), descriptor=_descriptor())
    req = inj.maybe_authenticate_http(OutgoingRequest(url=TAGS_URL, headers={"Accept": "application/json"}))
    assert req.headers == {"Accept": "application/json"}


def test_private_repo_other_url_gets_no_credentials():
    inj = AuthenticationInjector(_config(private_repos={"widget"}), descriptor=_descriptor())
    req = inj.maybe_authenticate_http(OutgoingRequest(url=f"{ENTERPRISE}/rest/api/1.0/projects/ACME/repos/other"))
    assert "Authorization" not in req.headers


def test_no_descriptor_gets_no_credentials():
    inj = AuthenticationInjector(_config(private_repos={"widget"}))
    req = inj.maybe_authenticate_http(OutgoingRequest(url=TAGS_URL))
    assert "Authorization" not in req.headers


def test_non_provider_host_gets_no_credentials():
    d = _descriptor()
    d.private = True
    inj = AuthenticationInjector(_config(), descriptor=d)
    req = inj.maybe_authenticate_http(OutgoingRequest(url="https://example.org/widget"))
    assert "Authorization" not in req.headers


def test_enterprise_host_matches_without_pattern():
    d = RepositoryDescriptor(owner="ACME", repo="widget", enterprise="https://git.corp.example")
    d.private = True
    inj = AuthenticationInjector(_config(), descriptor=d)
    req = inj.maybe_authenticate_http(OutgoingRequest(url="https://git.corp.example/rest/api/1.0/projects/ACME"))
    assert "Authorization" in req.headers


def test_private_install_requires_a_credential():
    ctx = RequestContext(option_page="github_updater_install", is_private=True, api="bitbucket")

    inj = AuthenticationInjector(_config(), descriptor=_descriptor(), context=ctx)
    assert "Authorization" in inj.maybe_authenticate_http(OutgoingRequest(url=TAGS_URL)).headers

    no_creds = UpdaterConfig(username="", password="")
    inj = AuthenticationInjector(no_creds, descriptor=_descriptor(), context=ctx)
    assert "Authorization" not in inj.maybe_authenticate_http(OutgoingRequest(url=TAGS_URL)).headers


def test_ajax_private_slug_gets_credentials():
    ctx = RequestContext(doing_ajax=True, slug="widget")
    inj = AuthenticationInjector(_config(private_repos={"widget"}), context=ctx)
    assert "Authorization" in inj.ajax_maybe_authenticate_http(OutgoingRequest(url=TAGS_URL)).headers

    heartbeat = RequestContext(doing_ajax=True, heartbeat=True, slug="widget")
    inj = AuthenticationInjector(_config(private_repos={"widget"}), context=heartbeat)
    assert "Authorization" not in inj.ajax_maybe_authenticate_http(OutgoingRequest(url=TAGS_URL)).headers


def test_release_asset_host_never_carries_authorization():
    req = OutgoingRequest(url=ASSET_URL, headers={"Authorization": "Basic x", "Accept": "*/*"})
    assert AuthenticationInjector.release_asset_auth(req).headers == {"Accept": "*/*"}

    other = OutgoingRequest(url=TAGS_URL, headers={"Authorization": "Basic x"})
    assert AuthenticationInjector.release_asset_auth(other).headers == {"Authorization": "Basic x"}


def test_chain_strips_auth_for_asset_host_even_for_private_repo():
    d = _descriptor()
    d.private = True
    client = BitbucketServerAPIClient(d.enterprise_api)
    inj = AuthenticationInjector(_config(host_pattern="amazonaws"), descriptor=d)
    inj.load_hooks(client)

    assert "Authorization" in client._prepare(TAGS_URL).headers
    assert "Authorization" not in client._prepare(ASSET_URL).headers

    inj.remove_hooks(client)
    assert client.middleware == []
    assert "Authorization" not in client._prepare(TAGS_URL).headers


def test_load_hooks_adds_ajax_transform_only_during_ajax():
    client = BitbucketServerAPIClient(f"{ENTERPRISE}/rest/api")
    AuthenticationInjector(_config(), context=RequestContext(doing_ajax=True)).load_hooks(client)
    assert len(client.middleware) == 3


def test_release_asset_host_strips_authorization_in_any_case():
    for name in ("authorization", "AUTHORIZATION", "Authorization"):
        req = OutgoingRequest(url=ASSET_URL, headers={name: "Basic x", "Accept": "*/*"})
        assert AuthenticationInjector.release_asset_auth(req).headers == {"Accept": "*/*"}
