"""Tests for the dependency tree arena and lockfile output."""

import pytest

from resolver.module import Module
from resolver.tree import ROOT_ID, DependencyTree


def _place(tree, name, version, range_, parent_id):
    parent = tree.node(parent_id)
    module = Module(name=name, version=version, required=range_, depth=parent.depth + 1, shasum=f"sha-{name}")
    module.parent = parent_id
    module.add_dependent(parent_id)
    parent.dependencies[name] = module.id
    return tree.add(module)


@pytest.fixture
def tree():
    tree = DependencyTree("app", "1.0.0")
    a = _place(tree, "a", "1.0.0", "^1.0.0", ROOT_ID)
    b = _place(tree, "b", "2.0.0", "2.0.0", a.id)
    _place(tree, "c", "3.0.0", "*", b.id)
    return tree


class TestDependencyTree:
    """Arena lookups."""

    def test_mapping(self, tree):
        assert len(tree) == 3
        assert set(tree) == {"a@^1.0.0", "b@2.0.0", "c@*"}
        assert tree["b@2.0.0"].version == "2.0.0"

    def test_root(self, tree):
        assert tree.node(ROOT_ID) is tree.root
        assert tree.root.depth == 0
        assert tree.name == "app"
        assert tree.node("missing") is None

    def test_ancestors(self, tree):
        assert [node.id for node in tree.ancestors("c@*")] == ["b@2.0.0", "a@^1.0.0", ROOT_ID]
        assert tree.ancestors(ROOT_ID) == []

    def test_holder_walks_up(self, tree):
        assert tree.holder("c@*", "a").id == "a@^1.0.0"
        assert tree.holder("c@*", "b").id == "b@2.0.0"
        assert tree.holder(ROOT_ID, "c") is None

    def test_freeze(self, tree):
        tree.freeze()
        assert tree.frozen
        with pytest.raises(RuntimeError):
            tree.add(Module("d", "1.0.0", "1.0.0"))
        with pytest.raises(TypeError):
            tree.modules["d"] = None


class TestSerialization:
    """Flat and nested output."""

    def test_to_json_sorted(self, tree):
        data = tree.to_json()
        assert list(data) == ["a@^1.0.0", "b@2.0.0", "c@*"]
        assert data["b@2.0.0"]["parents"] == ["a@1.0.0"]

    def test_lockfile(self, tree):
        lock = tree.to_lockfile()
        assert lock["name"] == "app"
        a = lock["dependencies"]["a"]
        assert a["version"] == "1.0.0"
        assert a["shasum"] == "sha-a"
        c = a["dependencies"]["b"]["dependencies"]["c"]
        assert "dependencies" not in c

    def test_lockfile_cuts_cycles(self, tree):
        tree["c@*"].dependencies["a"] = "a@^1.0.0"
        c = tree.to_lockfile()["dependencies"]["a"]["dependencies"]["b"]["dependencies"]["c"]
        assert "dependencies" not in c

    def test_empty_lockfile(self):
        assert DependencyTree("app", "1.0.0").to_lockfile() == {"name": "app", "version": "1.0.0"}
