"""Tests for the prop dependency graph."""

import pytest

from connectgw.gateway import Component, ComponentType
from connectgw.gateway.props import (
    check_prop_graph,
    dependency_closure,
    independent_props,
    resolution_order,
    unmet_dependencies,
)


def component(*props):
    """Build a component from (name, depends_on) pairs."""
    return Component.from_payload(
        ComponentType.ACTION,
        {
            "key": "test",
            "configurable_props": [
                {"name": name, "type": "string", "dependsOn": list(deps)} for name, deps in props
            ],
        },
    )


class TestResolutionOrder:
    """Tests for resolution_order."""

    def test_empty(self):
        """A component without props has no stages."""
        assert resolution_order(component()) == []

    def test_stages(self):
        """Dependencies come in earlier stages; declaration order is kept within a stage."""
        c = component(
            ("spreadsheet", []),
            ("worksheet", []),
            ("sheet", ["spreadsheet"]),
            ("columns", ["sheet", "worksheet"]),
        )
        assert resolution_order(c) == [["spreadsheet", "worksheet"], ["sheet"], ["columns"]]

    def test_duplicate_names_rejected(self):
        """Duplicate prop names are invalid."""

        class P:
            def __init__(self, name):
                self.name = name
                self.depends_on = frozenset()

        with pytest.raises(ValueError, match="Duplicate"):
            check_prop_graph([P("a"), P("a")])


class TestDependencies:
    """Tests for dependency closure and unmet dependencies."""

    @pytest.fixture
    def chain(self):
        return component(
            ("account", []),
            ("base", ["account"]),
            ("table", ["base"]),
            ("field", ["table"]),
            ("note", []),
        )

    def test_closure_is_transitive_and_ordered(self, chain):
        """The closure holds every ancestor in topological order."""
        assert dependency_closure(chain, "field") == ["account", "base", "table"]
        assert dependency_closure(chain, "account") == []

    def test_unmet_names_every_missing_ancestor(self, chain):
        """All unmet dependencies are reported, not only the nearest."""
        assert unmet_dependencies(chain, "field", {}) == ["account", "base", "table"]
        assert unmet_dependencies(chain, "field", {"account": "acc-1"}) == ["base", "table"]

    def test_none_counts_as_unset(self, chain):
        """A None value does not satisfy a dependency."""
        assert unmet_dependencies(chain, "base", {"account": None}) == ["account"]

    def test_satisfied(self, chain):
        """Nothing is unmet once every ancestor has a value."""
        configured = {"account": "a", "base": "b", "table": "t"}
        assert unmet_dependencies(chain, "field", configured) == []

    def test_independent_props(self, chain):
        """Props without dependencies resolve in any order."""
        assert independent_props(chain.props) == ["account", "note"]
