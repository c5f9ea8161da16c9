"""Tests for the Shrinkwrap resolver against an in-memory registry."""

import asyncio

import pytest

from common.errors import (
    HTTPStatusError,
    InvalidManifestError,
    RequestTimeoutError,
    ResolutionCancelledError,
    UnsatisfiableRangeError,
)
from resolver import ResolutionCache, ResolverConfig, Shrinkwrap
from resolver.tree import ROOT_ID
from registry_fixtures import FakeRegistryClient, package_doc


ROOT = {
    "name": "app",
    "version": "1.0.0",
    "dependencies": {"a": "^1.0.0", "b": "^1.0.0"},
}


def _documents():
    return {
        "a": package_doc("a", {"1.0.0": {"x": "^1.0.0"}}),
        "b": package_doc("b", {"1.0.0": {"x": "^1.0.0"}}),
        "x": package_doc("x", {"1.0.0": None, "1.2.0": None, "2.0.0": None}),
        "lodash": package_doc("lodash", {"4.17.20": None, "4.17.21": None}),
        "mocha": package_doc("mocha", {"1.0.0": None}),
        "fast": package_doc("fast", {"1.0.0": None}),
        "slow": package_doc("slow", {"1.0.0": None}),
    }


def _resolver(documents=None, delays=None, cache=None, **config):
    client = FakeRegistryClient(documents if documents is not None else _documents(), delays=delays)
    return Shrinkwrap(ResolverConfig(registry=client.registry, **config), client=client, cache=cache), client


def _resolve(resolver, root=ROOT, **kwargs):
    return asyncio.run(resolver.resolve(root, **kwargs))


class TestResolve:
    """End-to-end resolution."""

    def test_shared_dependency_resolved_once_and_hoisted(self):
        resolver, client = _resolver()
        resolution = _resolve(resolver)

        assert resolution.errors == []
        assert set(resolution.tree) == {"a@^1.0.0", "b@^1.0.0", "x@^1.0.0"}
        assert client.fetches["x"] == 1
        assert client.release_calls["x@^1.0.0"] == 1

        x = resolution.tree["x@^1.0.0"]
        assert x.version == "1.2.0"
        assert x.dependents == ["a@^1.0.0", "b@^1.0.0"]
        assert x.depth == 1
        assert resolution.tree.root.dependencies == {"a": "a@^1.0.0", "b": "b@^1.0.0", "x": "x@^1.0.0"}

    def test_lockfile(self):
        resolver, _client = _resolver()
        lock = _resolve(resolver).tree.to_lockfile()

        assert lock["name"] == "app"
        assert sorted(lock["dependencies"]) == ["a", "b", "x"]
        assert lock["dependencies"]["x"] == {
            "version": "1.2.0",
            "shasum": "sha-x-1.2.0",
            "released": "2020-01-02T00:00:00.000Z",
        }
        assert "dependencies" not in lock["dependencies"]["a"]

    def test_no_optimize_keeps_nested_copies(self):
        resolver, _client = _resolver(optimize=False)
        tree = _resolve(resolver).tree

        assert "x" not in tree.root.dependencies
        assert tree.holder("a@^1.0.0", "x").id == "x@^1.0.0"
        assert tree.holder("b@^1.0.0", "x").id == "x@^1.0.0"

    def test_same_name_different_ranges_share_one_fetch(self):
        documents = _documents()
        documents["b"] = package_doc("b", {"1.0.0": {"x": "~1.0.0"}})
        resolver, client = _resolver(documents)
        tree = _resolve(resolver).tree

        assert client.fetches["x"] == 1
        assert tree["x@^1.0.0"].version == "1.2.0"
        assert tree["x@~1.0.0"].version == "1.0.0"
        assert tree.holder("a@^1.0.0", "x").version == "1.2.0"
        assert tree.holder("b@^1.0.0", "x").version == "1.0.0"

    def test_no_conflicting_hoist(self):
        root = {"name": "app", "version": "1.0.0", "dependencies": {"a": "^1.0.0", "x": "^2.0.0", "b": "^1.0.0"}}
        resolver, _client = _resolver()
        tree = _resolve(resolver, root).tree

        assert tree.holder(ROOT_ID, "x").version == "2.0.0"
        assert tree.holder("a@^1.0.0", "x").version == "1.2.0"
        assert tree.holder("b@^1.0.0", "x").version == "1.2.0"
        assert tree.root.dependencies["x"] == "x@^2.0.0"

    def test_dev_duplicate_resolved_once(self):
        root = {
            "name": "app",
            "version": "1.0.0",
            "dependencies": {"lodash": "^4.0.0"},
            "devDependencies": {"lodash": "^4.0.0", "mocha": "^1.0.0"},
        }
        resolver, client = _resolver()
        tree = _resolve(resolver, root).tree

        assert set(tree) == {"lodash@^4.0.0", "mocha@^1.0.0"}
        assert tree["lodash@^4.0.0"].version == "4.17.21"
        assert client.release_calls["lodash@^4.0.0"] == 1

    def test_production_skips_dev_dependencies(self):
        root = {"name": "app", "version": "1.0.0", "dependencies": {"lodash": "^4.0.0"}, "devDependencies": {"mocha": "*"}}
        resolver, client = _resolver(production=True)
        tree = _resolve(resolver, root).tree

        assert set(tree) == {"lodash@^4.0.0"}
        assert "mocha" not in client.fetches

    def test_empty_manifest(self):
        resolver, client = _resolver()
        resolution = _resolve(resolver, {"name": "app", "version": "1.0.0"})

        assert len(resolution.tree) == 0
        assert resolution.errors == []
        assert not client.fetches
        assert resolution.tree.to_lockfile() == {"name": "app", "version": "1.0.0"}

    def test_list_source_uses_first_manifest(self):
        resolver, _client = _resolver()
        tree = _resolve(resolver, [ROOT, {"name": "ignored"}]).tree
        assert tree.name == "app"

    @pytest.mark.parametrize("source", ["nope", [], {"dependencies": ["a"]}])
    def test_invalid_root(self, source):
        resolver, _client = _resolver()
        with pytest.raises(InvalidManifestError):
            _resolve(resolver, source)

    def test_tree_is_frozen(self):
        resolver, _client = _resolver()
        tree = _resolve(resolver).tree
        assert tree.frozen

    def test_cycle_terminates(self):
        documents = {
            "a": package_doc("a", {"1.0.0": {"b": "1.0.0"}}),
            "b": package_doc("b", {"1.0.0": {"a": "1.0.0"}}),
        }
        resolver, _client = _resolver(documents)
        resolution = _resolve(resolver, {"name": "app", "version": "1.0.0", "dependencies": {"a": "1.0.0"}})

        assert resolution.errors == []
        lock = resolution.tree.to_lockfile()
        b = lock["dependencies"]["a"]["dependencies"]["b"]
        assert "dependencies" not in b
        assert resolution.tree["a@1.0.0"].dependents == [ROOT_ID, "b@1.0.0"]

    def test_cycle_back_to_shadowed_version_gets_private_copy(self):
        documents = {
            "a": package_doc("a", {"1.0.0": {"b": "1.0.0"}, "2.0.0": None}),
            "b": package_doc("b", {"1.0.0": {"a": "2.0.0", "c": "1.0.0"}}),
            "c": package_doc("c", {"1.0.0": {"a": "1.0.0"}}),
        }
        resolver, _client = _resolver(documents)
        tree = _resolve(resolver, {"name": "app", "version": "1.0.0", "dependencies": {"a": "1.0.0"}}).tree

        assert tree.holder("b@1.0.0", "a").version == "2.0.0"
        copy = tree.holder("c@1.0.0", "a")
        assert copy.version == "1.0.0"
        assert copy.id == "a@1.0.0>c@1.0.0"
        assert copy.parent == "c@1.0.0"
        c = tree.to_lockfile()["dependencies"]["a"]["dependencies"]["b"]["dependencies"]["c"]
        assert c["dependencies"]["a"]["version"] == "1.0.0"

    def test_order_independent_of_network_timing(self):
        first, _ = _resolver(delays={"a": 0.05})
        second, _ = _resolver(delays={"b": 0.05, "x": 0.02})
        assert _resolve(first).tree.to_lockfile() == _resolve(second).tree.to_lockfile()

    def test_concurrency_limit(self):
        resolver, client = _resolver(delays={"a": 0.01, "b": 0.01}, limit=1)
        _resolve(resolver)
        assert client.max_in_flight == 1

    def test_limit_override_must_be_positive(self):
        resolver, _client = _resolver()
        with pytest.raises(ValueError):
            _resolve(resolver, limit=0)


class TestErrors:
    """Partial failures never abort a resolution."""

    def test_missing_package_collected(self):
        root = {"name": "app", "version": "1.0.0", "dependencies": {"a": "^1.0.0", "missing": "^1.0.0"}}
        resolver, _client = _resolver()
        resolution = _resolve(resolver, root)

        assert "a@^1.0.0" in resolution.tree
        assert "x@^1.0.0" in resolution.tree
        assert len(resolution.errors) == 1
        error = resolution.errors[0]
        assert isinstance(error, HTTPStatusError)
        assert error.spec.id == "missing@^1.0.0"

    def test_shared_fetch_failure_reported_per_range(self):
        root = {
            "name": "app",
            "version": "1.0.0",
            "dependencies": {"missing": "^1.0.0"},
            "peerDependencies": {"missing": "^2.0.0"},
        }
        resolver, client = _resolver()
        resolution = _resolve(resolver, root)

        assert client.fetches["missing"] == 1
        assert len(resolution.errors) == 2
        first, second = resolution.errors
        assert first is not second
        assert sorted(error.spec.id for error in resolution.errors) == ["missing@^1.0.0", "missing@^2.0.0"]
        assert all(isinstance(error, HTTPStatusError) for error in resolution.errors)
        assert all(error.status_code == 404 for error in resolution.errors)
        assert first.__cause__ is second.__cause__

    def test_unsatisfiable_range_collected(self):
        root = {"name": "app", "version": "1.0.0", "dependencies": {"x": "^9.0.0", "fast": "1.0.0"}}
        resolver, _client = _resolver()
        resolution = _resolve(resolver, root)

        assert set(resolution.tree) == {"fast@1.0.0"}
        assert len(resolution.errors) == 1
        assert isinstance(resolution.errors[0], UnsatisfiableRangeError)
        assert resolution.errors[0].range == "^9.0.0"

    def test_failed_key_reported_once(self):
        documents = _documents()
        documents["a"] = package_doc("a", {"1.0.0": {"missing": "1.0.0"}})
        documents["b"] = package_doc("b", {"1.0.0": {"missing": "1.0.0"}})
        resolver, client = _resolver(documents)
        resolution = _resolve(resolver)

        assert len(resolution.errors) == 1
        assert client.fetches["missing"] == 1

    def test_lookup_timeout(self):
        root = {"name": "app", "version": "1.0.0", "dependencies": {"fast": "1.0.0", "slow": "1.0.0"}}
        resolver, _client = _resolver(delays={"slow": 5}, lookup_timeout=0.05)
        resolution = _resolve(resolver, root)

        assert set(resolution.tree) == {"fast@1.0.0"}
        assert len(resolution.errors) == 1
        assert isinstance(resolution.errors[0], RequestTimeoutError)
        assert resolution.errors[0].spec.id == "slow@1.0.0"

    def test_cancellation_returns_partial_tree(self):
        root = {"name": "app", "version": "1.0.0", "dependencies": {"fast": "1.0.0", "slow": "1.0.0"}}
        resolver, _client = _resolver(delays={"slow": 5})

        async def scenario():
            cancel = asyncio.Event()
            task = asyncio.ensure_future(resolver.resolve(root, cancel=cancel))
            await asyncio.sleep(0.05)
            cancel.set()
            return await task

        resolution = asyncio.run(scenario())
        assert set(resolution.tree) == {"fast@1.0.0"}
        assert isinstance(resolution.errors[-1], ResolutionCancelledError)


class TestCacheAndLifecycle:
    """Cache reuse and resolver lifecycle."""

    def test_shared_cache_skips_network_on_second_run(self):
        cache = ResolutionCache()
        resolver, client = _resolver(cache=cache)
        first = _resolve(resolver)
        fetches = sum(client.fetches.values())
        release_calls = sum(client.release_calls.values())

        second = _resolve(resolver)

        assert sum(client.fetches.values()) == fetches
        assert sum(client.release_calls.values()) == release_calls
        assert second.tree.to_lockfile() == first.tree.to_lockfile()
        assert cache.stats()["entries"] == 3

    def test_owned_cache_cleared_after_resolve(self):
        resolver, client = _resolver()
        _resolve(resolver)
        assert len(resolver.cache) == 0
        _resolve(resolver)
        assert client.fetches["x"] == 2

    def test_client_closed_after_resolve(self):
        resolver, client = _resolver()
        _resolve(resolver)
        assert client.closed >= 1

    def test_destroy_is_idempotent(self):
        resolver, _client = _resolver()
        assert resolver.destroy() is True
        assert resolver.destroy() is True
        with pytest.raises(RuntimeError):
            _resolve(resolver)


class TestGet:
    """Resolving a root package fetched from the registry."""

    def test_get(self):
        documents = _documents()
        documents["app"] = package_doc("app", {"1.0.0": {"a": "^1.0.0"}, "2.0.0": {"b": "^1.0.0"}})
        resolver, _client = _resolver(documents)
        resolution = asyncio.run(resolver.get("app", "^1.0.0"))

        assert resolution.tree.name == "app"
        assert resolution.tree.version == "1.0.0"
        assert set(resolution.tree) == {"a@^1.0.0", "x@^1.0.0"}

    def test_get_latest(self):
        documents = _documents()
        documents["app"] = package_doc("app", {"1.0.0": None, "2.0.0": {"b": "^1.0.0"}})
        resolver, _client = _resolver(documents)
        resolution = asyncio.run(resolver.get("app"))
        assert resolution.tree.version == "2.0.0"

    def test_get_missing_root_raises(self):
        resolver, client = _resolver()
        with pytest.raises(HTTPStatusError):
            asyncio.run(resolver.get("nope"))
        assert client.closed == 1

    def test_get_unsatisfiable_root_raises(self):
        resolver, _client = _resolver()
        with pytest.raises(UnsatisfiableRangeError):
            asyncio.run(resolver.get("x", "^9.0.0"))
