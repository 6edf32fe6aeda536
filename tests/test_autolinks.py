import asyncio

from fakes import FakeIntegration, FakeProvider, FakeRegistry, FakeRemote, make_issue
from reflinker import Autolinks, AutolinkReference, Pending, Ready
from reflinker.config_loader import ReflinkerConfig
from reflinker.formatting import SPACE
from reflinker.dynamic import ProjectKeyReference
from reflinker.models import ProviderReference, ReferenceScope, ResourceDescriptor

REPO = ResourceDescriptor(key="acme/app")
GITHUB = ProviderReference(id="github", domain="github.com")


def _config(**overrides):
    data = {
        "autolinks": [{"prefix": "#", "url": "https://x/issues/<num>"}],
        "integrations": {"supported": ["jira"]},
        "enrichment": {"timeout_seconds": 1, "lookup_attempts": 1},
    }
    data.update(overrides)
    return ReflinkerConfig(**data)


def _github_remote(references, **integration_kwargs):
    github = FakeIntegration("github", domain="github.com", **integration_kwargs)
    provider = FakeProvider("github", references, domain="github.com", repo_desc=REPO)
    return FakeRemote("origin", provider, integration=github), github


def test_message_to_markdown_with_enrichment():
    jira = FakeIntegration(
        "jira",
        [ProjectKeyReference("https://jira/browse/<num>", keys=["OPS"], provider=ProviderReference(id="jira"), descriptor=REPO)],
        issues={"OPS-4": make_issue("OPS-4", title="Rotate keys", state="closed", days_ago=2)},
    )
    autolinks = Autolinks(_config(), FakeRegistry(jira))
    message = "OPS-4: rotate, see #12"

    async def run():
        links = await autolinks.get_autolinks(message)
        return links, await autolinks.get_enriched_snapshots(links)

    links, snapshots = asyncio.run(run())

    assert list(links) == ["OPS-4", "12"]
    assert snapshots["OPS-4"][0] == Ready(jira.issues["OPS-4"])
    assert snapshots["12"][0] is None

    footnotes = {}
    out = autolinks.linkify(message, "markdown", enriched=snapshots, footnotes=footnotes)
    assert out == (
        '[OPS-4](https://jira/browse/OPS-4 "OPS-4\n——\nRotate keys\nClosed, 2 days ago"): rotate, '
        "see [#12](https://x/issues/12)"
    )
    assert footnotes == {
        1: '[**Rotate keys**](https://jira/browse/OPS-4 "OPS-4")\\\n' + SPACE * 5 + "OPS-4 closed 2 days ago"
    }


def test_pending_snapshot_then_rerender():
    ref = AutolinkReference(prefix="GH-", url="https://g/<num>")
    remote, github = _github_remote([ref], issues={"12": make_issue("12", title="Crash")}, delay=0.2)
    autolinks = Autolinks(_config(autolinks=[]))

    async def run():
        snapshots = await autolinks.get_enriched_snapshots("GH-12", remote, timeout=0)
        first = autolinks.linkify("GH-12", "plaintext", enriched=snapshots)
        assert isinstance(snapshots["12"][0], Pending)
        await snapshots["12"][0].task

        snapshots = await autolinks.get_enriched_snapshots("GH-12", remote)
        return first, autolinks.linkify("GH-12", "plaintext", enriched=snapshots)

    first, second = asyncio.run(run())

    assert first == "GH-12\n——\n¹ GH-12: Loading..."
    assert second.startswith("GH-12¹\n——\n¹ GH-12: Crash  •  ")
    assert github.lookups[0][0] == REPO


def test_no_links_means_nothing_to_snapshot():
    autolinks = Autolinks(_config())
    assert asyncio.run(autolinks.get_enriched_snapshots("nothing to see")) == {}


def test_branch_autolinks_ranked():
    autolinks = Autolinks(_config(autolinks=[{"prefix": "JIRA-", "url": "https://j/<num>", "alphanumeric": True}]))
    matches = asyncio.run(autolinks.get_branch_autolinks("feature/JIRA-42-fix-bug"))
    (link,) = matches.values()
    assert link.id == "42"
    assert link.index == 8


def test_branch_autolinks_use_branch_scoped_remote_references():
    remote, _ = _github_remote(
        [
            AutolinkReference(prefix="GH-", url="https://g/<num>", reference_type=ReferenceScope.BRANCH),
            AutolinkReference(prefix="PR-", url="https://g/pull/<num>"),
        ]
    )
    autolinks = Autolinks(_config(autolinks=[]))
    matches = asyncio.run(autolinks.get_branch_autolinks("GH-3-PR-4", remote))
    assert list(matches) == ["https://g/3"]


def test_exclude_custom_with_remote():
    remote, _ = _github_remote([AutolinkReference(prefix="GH-", url="https://g/<num>")])
    autolinks = Autolinks(_config())
    links = asyncio.run(autolinks.get_autolinks("#1 GH-2", remote, exclude_custom=True))
    assert list(links) == ["2"]


def test_reload_config_replaces_references():
    autolinks = Autolinks(_config())
    assert autolinks.linkify("#1", "markdown") == "[#1](https://x/issues/1)"

    autolinks.reload_config(_config(autolinks=[{"prefix": "#", "url": "https://y/<num>"}]))

    assert autolinks.linkify("#1", "markdown") == "[#1](https://y/1)"
    assert asyncio.run(autolinks.get_autolinks("#1"))["1"].url == "https://y/1"


def test_linkify_with_remotes():
    remote, _ = _github_remote([AutolinkReference(prefix="GH-", url="https://g/<num>")])
    autolinks = Autolinks(_config())
    assert autolinks.linkify("#1 GH-2", "markdown", remotes=[remote]) == "[#1](https://x/issues/1) [GH-2](https://g/2)"


def test_serialized_autolink():
    links = asyncio.run(Autolinks(_config()).get_autolinks("fix #7"))
    assert links["7"].serialize() == {
        "id": "7",
        "index": 4,
        "prefix": "#",
        "url": "https://x/issues/7",
        "alphanumeric": False,
        "ignore_case": False,
    }


def test_integration_changes_drop_cached_refsets():
    jira = FakeIntegration("jira", [AutolinkReference(prefix="J-", url="https://j/<num>")])
    registry = FakeRegistry(jira)
    autolinks = Autolinks(_config(), registry)

    asyncio.run(autolinks.get_autolinks("J-1"))
    asyncio.run(autolinks.get_autolinks("J-1"))
    assert registry.calls == ["jira"]

    jira.maybe_connected = False
    autolinks.on_integrations_changed()
    assert list(asyncio.run(autolinks.get_autolinks("J-1"))) == []
    assert registry.calls == ["jira", "jira"]
