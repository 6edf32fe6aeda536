import asyncio

from fakes import FakeIntegration, FakeProvider, FakeRegistry, FakeRemote
from reflinker.collector import RefSetCollector
from reflinker.dynamic import ProjectKeyReference
from reflinker.models import AutolinkReference, ReferenceScope


def _ref(prefix, **kwargs):
    return AutolinkReference(prefix=prefix, url=f"https://x/{prefix}<num>", **kwargs)


def _collect(collector, *args, **kwargs):
    return asyncio.run(collector.get_refsets(*args, **kwargs))


class TestOrdering:
    def test_integrations_then_remote_then_custom(self):
        jira = FakeIntegration("jira", [_ref("JIRA-")])
        remote = FakeRemote("origin", FakeProvider("github", [_ref("#")]))
        collector = RefSetCollector(FakeRegistry(jira), custom_references=[_ref("T-")])

        refsets = _collect(collector, remote)

        assert [rs.provider.id if rs.provider else None for rs in refsets] == ["jira", "github", None]
        assert [rs.references[0].prefix for rs in refsets] == ["JIRA-", "#", "T-"]

    def test_integration_order_follows_configuration(self):
        registry = FakeRegistry(FakeIntegration("jira", [_ref("J-")]), FakeIntegration("linear", [_ref("L-")]))
        collector = RefSetCollector(registry, supported_integrations=["linear", "jira"])
        assert [rs.provider.id for rs in _collect(collector)] == ["linear", "jira"]

    def test_remote_integration_is_included_once(self):
        github = FakeIntegration("github", [_ref("GH-")])
        remote = FakeRemote("origin", FakeProvider("github"), integration=github)
        registry = FakeRegistry(github)
        collector = RefSetCollector(registry, supported_integrations=["github"])

        refsets = _collect(collector, remote)

        assert [rs.provider.id for rs in refsets] == ["github"]
        assert remote.integration_requests == 1


class TestIntegrationFailures:
    def test_failing_integration_is_dropped(self, log_messages):
        registry = FakeRegistry(
            FakeIntegration("jira", autolinks_error=RuntimeError("jira is down")),
            FakeIntegration("linear", [_ref("L-")]),
        )
        collector = RefSetCollector(registry, supported_integrations=["jira", "linear"])

        refsets = _collect(collector)

        assert [rs.provider.id for rs in refsets] == ["linear"]
        assert any("jira is down" in m for m in log_messages)

    def test_failing_registry_lookup_is_dropped(self):
        registry = FakeRegistry(FakeIntegration("linear", [_ref("L-")]), errors={"jira": KeyError("jira")})
        collector = RefSetCollector(registry, supported_integrations=["jira", "linear"])
        assert [rs.provider.id for rs in _collect(collector)] == ["linear"]

    def test_disconnected_and_missing_integrations_are_skipped(self):
        registry = FakeRegistry(FakeIntegration("jira", [_ref("J-")], maybe_connected=False))
        collector = RefSetCollector(registry, supported_integrations=["jira", "unknown"])
        assert _collect(collector) == []

    def test_integrations_without_references_contribute_nothing(self):
        collector = RefSetCollector(FakeRegistry(FakeIntegration("jira", [])))
        assert _collect(collector) == []

    def test_async_autolinks(self):
        registry = FakeRegistry(FakeIntegration("jira", [_ref("J-")], async_autolinks=True))
        refsets = _collect(RefSetCollector(registry))
        assert refsets[0].references[0].prefix == "J-"


class TestCustomReferences:
    def test_excluded_only_with_a_provider_in_scope(self):
        custom = [_ref("T-")]
        remote = FakeRemote("origin", FakeProvider("github", [_ref("#")]))
        collector = RefSetCollector(custom_references=custom)

        with_provider = _collect(collector, remote, exclude_custom=True)
        without_provider = _collect(collector, None, exclude_custom=True)

        assert [rs.provider.id for rs in with_provider] == ["github"]
        assert without_provider[0].references == custom

    def test_set_custom_references_resets_cache(self):
        collector = RefSetCollector(custom_references=[_ref("A-")])
        _collect(collector)
        collector.set_custom_references([_ref("B-")])
        assert _collect(collector)[0].references[0].prefix == "B-"


class TestBranchRefsets:
    def test_remote_keeps_only_branch_scoped_pattern_references(self):
        branch_ref = _ref("B-", reference_type=ReferenceScope.BRANCH)
        remote = FakeRemote(
            "origin",
            FakeProvider(
                "github",
                [_ref("#"), _ref("C-", reference_type=ReferenceScope.COMMIT), branch_ref, ProjectKeyReference("https://j/<num>")],
            ),
            integration=FakeIntegration("github", [_ref("GH-")]),
        )
        collector = RefSetCollector(FakeRegistry(), supported_integrations=[])

        refsets = _collect(collector, remote, for_branch=True)

        assert [rs.references for rs in refsets] == [[branch_ref]]
        assert remote.integration_requests == 0

    def test_message_and_branch_refsets_are_cached_separately(self):
        remote = FakeRemote("origin", FakeProvider("github", [_ref("#")]))
        collector = RefSetCollector()
        assert len(_collect(collector, remote)) == 1
        assert _collect(collector, remote, for_branch=True) == []


class TestCache:
    def test_reuses_refsets_per_remote(self):
        registry = FakeRegistry(FakeIntegration("jira", [_ref("J-")]))
        collector = RefSetCollector(registry)

        first = _collect(collector)
        second = _collect(collector)

        assert second is first
        assert registry.calls == ["jira"]

    def test_expired_entries_are_rebuilt(self):
        registry = FakeRegistry(FakeIntegration("jira", [_ref("J-")]))
        collector = RefSetCollector(registry, ttl_seconds=0)
        _collect(collector)
        _collect(collector)
        assert registry.calls == ["jira", "jira"]

    def test_clear_cache(self):
        registry = FakeRegistry(FakeIntegration("jira", [_ref("J-")]))
        collector = RefSetCollector(registry)
        _collect(collector)
        collector.clear_cache()
        _collect(collector)
        assert registry.calls == ["jira", "jira"]
