"""
Tests for the ReferenceResolver service.
"""

import copy
from collections.abc import Mapping

import pytest

from ddi_api.schemas.ddi import Kind, ResolutionLevel
from ddi_api.services.classifier import is_bare_identifier
from ddi_api.services.resolver import (
    MEMBER_FIELDS,
    ReferenceResolver,
    TraversalContext,
    is_reference_field,
    resolved_field_name,
)
from ddi_api.services.store import DataStore


def unresolved_targets(store, node) -> list[str]:
    """Reference fields and bare members in a tree whose target exists."""
    found = []
    if isinstance(node, Mapping):
        for key, value in node.items():
            if is_reference_field(key, value):
                kind = ReferenceResolver._reference_kind(key, value)
                if store.lookup_reference(kind, value) is not None:
                    found.append(f"{key}:{value.get('id')}")
            elif key in MEMBER_FIELDS and isinstance(value, list):
                for member in value:
                    if is_bare_identifier(member) and store.lookup_reference(
                        MEMBER_FIELDS[key], member
                    ):
                        found.append(f"{key}:{member.get('id')}")
            found.extend(unresolved_targets(store, value))
    elif isinstance(node, list):
        for item in node:
            found.extend(unresolved_targets(store, item))
    return found


class TestResolvedFieldName:
    """Tests for reference field renaming."""

    @pytest.mark.parametrize(
        "field_name,expected",
        [
            ("conceptReference", "concept"),
            ("sourceVariableReference", "sourceVariable"),
            ("codeListReference", "codeList"),
            ("categorySchemeReference", "categoryScheme"),
            ("conceptSchemeReference", "conceptScheme"),
            ("subclassOfReference", "subclassOf"),
            ("label", "label"),
        ],
    )
    def test_rename(self, field_name, expected):
        """Test the Reference marker is dropped from resolved field names."""
        assert resolved_field_name(field_name) == expected

    def test_identifier_fields_are_not_references(self):
        """Test identifier fields are never treated as references."""
        assert not is_reference_field("urn", {"id": "x"})
        assert not is_reference_field("conceptReference", "urn:ddi:ex:x:1")
        assert is_reference_field("somethingReference", {"id": "x"})


class TestTraversalContext:
    """Tests for the traversal context."""

    def test_children_expands_only_at_root(self):
        """Test children level expands at depth 0 only."""
        ctx = TraversalContext(ResolutionLevel.CHILDREN)
        assert ctx.expands
        assert not ctx.descend().expands

    def test_enter_does_not_leak_to_siblings(self):
        """Test entering an entity returns a new context."""
        ctx = TraversalContext(ResolutionLevel.ALL)
        child = ctx.enter(Kind.CONCEPT, "concept-001")
        assert child.closes_cycle(Kind.CONCEPT, "concept-001")
        assert not ctx.closes_cycle(Kind.CONCEPT, "concept-001")


class TestResolveNone:
    """Tests for the none level."""

    def test_returns_equal_copy(self, resolver, store):
        """Test none returns a structurally equal, independent copy."""
        variable = store.lookup(Kind.VARIABLE, "var-002")
        result = resolver.resolve(variable, ResolutionLevel.NONE)

        assert result == variable
        assert result is not variable
        result["representation"]["codeRepresentation"]["recommendedDataType"] = "X"
        assert variable["representation"]["codeRepresentation"]["recommendedDataType"] == "Code"

    def test_default_level_is_none(self, resolver, store):
        """Test resolve without a level leaves references alone."""
        variable = store.lookup(Kind.VARIABLE, "var-001")
        assert "conceptReference" in resolver.resolve(variable)


class TestResolveChildren:
    """Tests for the children level."""

    def test_variable_concept_scenario(self, resolver, store):
        """Test a depth-0 conceptReference becomes an embedded concept."""
        variable = store.lookup(Kind.VARIABLE, "var-001")
        result = resolver.resolve(variable, "children")

        assert "conceptReference" not in result
        assert result["concept"] == store.lookup(Kind.CONCEPT, "concept-001")
        assert result["label"] == [{"value": "Age", "lang": "en"}]

    def test_nested_references_stay_references(self, resolver, store):
        """Test references inside an embedded target are not expanded."""
        variable = store.lookup(Kind.VARIABLE, "var-002")
        result = resolver.resolve(variable, ResolutionLevel.CHILDREN)

        source = result["sourceVariable"]
        assert source["id"] == "var-001"
        assert "conceptReference" in source
        assert "concept" not in source

    def test_code_representation_code_list(self, resolver, store):
        """Test the nested codeListReference is resolved to codeList."""
        variable = store.lookup(Kind.VARIABLE, "var-002")
        result = resolver.resolve(variable, ResolutionLevel.CHILDREN)

        code_representation = result["representation"]["codeRepresentation"]
        assert "codeListReference" not in code_representation
        assert code_representation["recommendedDataType"] == "Code"
        code_list = code_representation["codeList"]
        assert code_list["id"] == "cl-001"
        # One level only: the embedded code list keeps its own references
        assert "categoryReference" in code_list["codes"][0]
        assert "categorySchemeReference" in code_list

    def test_codes_resolve_categories(self, resolver, store):
        """Test codes of a code list get their category at children level."""
        code_list = store.lookup(Kind.CODE_LIST, "cl-001")
        result = resolver.resolve(code_list, ResolutionLevel.CHILDREN)

        first, second = result["codes"]
        assert first["category"]["label"] == [{"value": "Male", "lang": "en"}]
        assert "categoryReference" not in first
        assert second["categoryReference"]["id"] == "cat-404"
        assert "category" not in second

    def test_scheme_reference_resolved(self, resolver, store):
        """Test categorySchemeReference becomes categoryScheme."""
        code_list = store.lookup(Kind.CODE_LIST, "cl-001")
        result = resolver.resolve(code_list, ResolutionLevel.CHILDREN)

        scheme = result["categoryScheme"]
        assert "categorySchemeReference" not in result
        assert scheme["id"] == "cat-scheme-001"
        assert scheme["categories"] == [{"id": "cat-001", "agencyID": "ex", "version": "1.0.0"}]

    def test_scheme_members_expanded(self, resolver, store):
        """Test bare member identifiers become member entities."""
        scheme = store.lookup(Kind.CONCEPT_SCHEME, "cs-001")
        result = resolver.resolve(scheme, ResolutionLevel.CHILDREN)

        first, second, missing = result["concepts"]
        assert first == store.lookup(Kind.CONCEPT, "concept-001")
        assert second["name"] == [{"value": "Household", "lang": "en"}]
        assert "subclassOfReference" in second
        assert missing == {"id": "concept-404", "agencyID": "ex", "version": "1.0.0"}

    def test_result_does_not_share_store_objects(self, resolver, store):
        """Test embedded targets are copies, not the stored entities."""
        variable = store.lookup(Kind.VARIABLE, "var-001")
        result = resolver.resolve(variable, ResolutionLevel.CHILDREN)

        result["concept"]["name"].append({"value": "Âge", "lang": "fr"})
        assert len(store.lookup(Kind.CONCEPT, "concept-001")["name"]) == 1


class TestResolveAll:
    """Tests for the all level."""

    def test_resolves_recursively(self, resolver, store):
        """Test references at every depth are expanded."""
        variable = store.lookup(Kind.VARIABLE, "var-002")
        result = resolver.resolve(variable, ResolutionLevel.ALL)

        assert result["sourceVariable"]["concept"]["id"] == "concept-001"
        code_list = result["representation"]["codeRepresentation"]["codeList"]
        assert code_list["codes"][0]["category"]["id"] == "cat-001"
        assert code_list["categoryScheme"]["categories"][0]["label"] == [
            {"value": "Male", "lang": "en"}
        ]

    @pytest.mark.parametrize(
        "kind,resource_id",
        [
            (Kind.VARIABLE, "var-002"),
            (Kind.VARIABLE_SCHEME, "vs-001"),
            (Kind.CODE_LIST_SCHEME, "cls-001"),
            (Kind.CATEGORY_SCHEME, "cat-scheme-001"),
        ],
    )
    def test_no_resolvable_reference_left(self, resolver, store, kind, resource_id):
        """Test acyclic graphs keep no reference whose target exists."""
        entity = store.lookup(kind, resource_id)
        result = resolver.resolve(entity, ResolutionLevel.ALL)
        assert unresolved_targets(store, result) == []

    def test_cycle_terminates(self, resolver, store):
        """Test a two-concept subclassOf cycle is cut on the way back."""
        concept = store.lookup(Kind.CONCEPT, "concept-002")
        result = resolver.resolve(concept, ResolutionLevel.ALL)

        parent = result["subclassOf"]
        assert parent["id"] == "concept-003"
        assert parent["subclassOfReference"]["id"] == "concept-002"
        assert "subclassOf" not in parent

    def test_self_reference_left_unresolved(self, resolver, store):
        """Test a concept that is its own parent keeps the reference."""
        concept = store.lookup(Kind.CONCEPT, "concept-self")
        result = resolver.resolve(concept, ResolutionLevel.ALL)

        assert result["subclassOfReference"]["id"] == "concept-self"
        assert "subclassOf" not in result

    def test_cycle_in_scheme_members(self, resolver, store):
        """Test members on a cyclic chain are still expanded once per branch."""
        scheme = store.lookup(Kind.CONCEPT_SCHEME, "cs-001")
        result = resolver.resolve(scheme, ResolutionLevel.ALL)

        household = result["concepts"][1]
        assert household["subclassOf"]["id"] == "concept-003"
        assert household["subclassOf"]["subclassOfReference"]["id"] == "concept-002"

    def test_input_not_mutated(self, resolver, store):
        """Test resolution never changes the stored entity."""
        variable = store.lookup(Kind.VARIABLE, "var-002")
        before = copy.deepcopy(variable)
        resolver.resolve(variable, ResolutionLevel.ALL)
        assert variable == before


class TestResolverProperties:
    """Tests for properties that hold across levels."""

    @pytest.mark.parametrize("level", ["none", "children", "all"])
    def test_miss_left_unchanged(self, resolver, store, level):
        """Test a reference to a missing target is returned as is."""
        variable = store.lookup(Kind.VARIABLE, "var-miss")
        result = resolver.resolve(variable, level)

        assert result["conceptReference"] == variable["conceptReference"]
        assert "concept" not in result

    @pytest.mark.parametrize("level", [ResolutionLevel.CHILDREN, ResolutionLevel.ALL])
    @pytest.mark.parametrize(
        "kind,resource_id",
        [
            (Kind.VARIABLE, "var-001"),
            (Kind.VARIABLE, "var-002"),
            (Kind.CONCEPT, "concept-002"),
            (Kind.CONCEPT, "concept-self"),
            (Kind.CONCEPT_SCHEME, "cs-001"),
            (Kind.CODE_LIST, "cl-001"),
            (Kind.CODE_LIST_SCHEME, "cls-001"),
        ],
    )
    def test_idempotent(self, resolver, store, level, kind, resource_id):
        """Test resolving a resolved entity again changes nothing."""
        entity = store.lookup(kind, resource_id)
        once = resolver.resolve(entity, level)
        assert resolver.resolve(once, level) == once

    def test_type_mismatch_is_a_miss(self, collections):
        """Test a target tagged with another kind is not embedded."""
        collections[Kind.CONCEPT].append(
            {"id": "misfiled", "typeOfObject": "Variable", "label": [{"value": "Age"}]}
        )
        resolver = ReferenceResolver(DataStore(collections))
        variable = {
            "id": "var-x",
            "agencyID": "ex",
            "version": "1.0.0",
            "conceptReference": {"id": "misfiled", "typeOfObject": "Concept"},
        }

        for level in (ResolutionLevel.CHILDREN, ResolutionLevel.ALL):
            result = resolver.resolve(variable, level)
            assert result["conceptReference"] == {"id": "misfiled", "typeOfObject": "Concept"}
            assert "concept" not in result

    def test_untagged_reference_uses_field_kind(self, resolver):
        """Test an untagged reference is looked up by its field name."""
        variable = {"id": "var-x", "conceptReference": {"id": "concept-001"}}
        result = resolver.resolve(variable, ResolutionLevel.CHILDREN)
        assert result["concept"]["name"] == [{"value": "Age concept", "lang": "en"}]

    def test_resolve_by_urn_only(self, resolver):
        """Test a reference carrying only a URN is resolved."""
        variable = {
            "id": "var-x",
            "conceptReference": {
                "urn": "urn:ddi:ex:concept-001:1.0.0",
                "typeOfObject": "Concept",
            },
        }
        result = resolver.resolve(variable, ResolutionLevel.CHILDREN)
        assert result["concept"]["id"] == "concept-001"

    def test_resolve_many(self, resolver, store):
        """Test a collection slice is resolved element by element."""
        variables = store.collection(Kind.VARIABLE)
        results = resolver.resolve_many(variables, ResolutionLevel.CHILDREN)

        assert [v["id"] for v in results] == ["var-001", "var-002", "var-miss"]
        assert "concept" in results[0]

    def test_invalid_level(self, resolver):
        """Test an unknown level string is rejected."""
        with pytest.raises(ValueError):
            resolver.resolve({"id": "x"}, "deep")
