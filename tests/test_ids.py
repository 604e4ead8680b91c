"""
Tests for deterministic id derivation (codeledger.core.ids).
"""

import pytest

from codeledger.core.ids import (
    api_endpoint_id,
    decode_id,
    derive_id,
    function_id,
    project_id,
)


class TestDeriveId:
    """Purity, prefixes and collision resistance."""

    def test_same_inputs_same_id(self):
        assert project_id("shop", "/src/shop") == project_id("shop", "/src/shop")

    @pytest.mark.parametrize("name,path", [
        ("shop2", "/src/shop"),
        ("shop", "/src/shop2"),
        ("Shop", "/src/shop"),
    ])
    def test_changing_either_part_changes_id(self, name, path):
        assert project_id(name, path) != project_id("shop", "/src/shop")

    def test_kind_prefixes(self):
        pid = project_id("shop", "/src/shop")
        assert pid.startswith("project_")
        assert api_endpoint_id(pid, "GET", "/x").startswith("endpoint_")
        assert function_id(pid, "f", "a.ts").startswith("function_")

    def test_ids_are_url_safe(self):
        eid = api_endpoint_id("project_x", "GET", "/api/users/:id?page=1&q=ü")
        token = eid.split("_", 1)[1]
        assert all(c.isalnum() or c in "-_" for c in token)
        assert "=" not in token

    def test_separator_inside_parts_does_not_collide(self):
        assert derive_id("function", "a:b", "c") != derive_id("function", "a", "b:c")
        assert derive_id("function", "a\\", ":b") != derive_id("function", "a\\:", "b")

    def test_decode_roundtrip_preserves_parts(self):
        parts = ["project_abc", "GET", "/api/items:batch"]
        kind, decoded = decode_id(derive_id("endpoint", *parts))
        assert kind == "endpoint"
        assert decoded == parts

    def test_decode_rejects_non_derived(self):
        with pytest.raises(ValueError):
            decode_id("nounderscore")
