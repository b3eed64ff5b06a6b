"""
Shared fixtures: a small in-memory DDI graph and services bound to it.
"""

import pytest

from ddi_api.schemas.ddi import Kind
from ddi_api.services.resolver import ReferenceResolver
from ddi_api.services.store import DataStore
from ddi_api.services.xml_mapper import XmlMapper


def ref(resource_id: str, type_of_object: str | None = None) -> dict:
    """Build a reference to an 'ex' agency resource."""
    reference = {"id": resource_id, "agencyID": "ex", "version": "1.0.0"}
    if type_of_object:
        reference["typeOfObject"] = type_of_object
    return reference


def en(value: str) -> list[dict]:
    return [{"value": value, "lang": "en"}]


@pytest.fixture
def collections() -> dict[Kind, list[dict]]:
    return {
        Kind.CONCEPT: [
            {
                **ref("concept-001", "Concept"),
                "name": en("Age concept"),
            },
            {
                **ref("concept-002", "Concept"),
                "name": en("Household"),
                "subclassOfReference": ref("concept-003", "Concept"),
            },
            {
                **ref("concept-003", "Concept"),
                "name": en("Dwelling"),
                "subclassOfReference": ref("concept-002", "Concept"),
            },
            {
                **ref("concept-self", "Concept"),
                "name": en("Self"),
                "subclassOfReference": ref("concept-self", "Concept"),
            },
        ],
        Kind.CONCEPT_SCHEME: [
            {
                **ref("cs-001", "ConceptScheme"),
                "name": en("Concepts"),
                "concepts": [
                    ref("concept-001"),
                    ref("concept-002"),
                    ref("concept-404"),
                ],
            },
        ],
        Kind.VARIABLE: [
            {
                **ref("var-001"),
                "label": en("Age"),
                "conceptReference": ref("concept-001", "Concept"),
            },
            {
                **ref("var-002", "Variable"),
                "name": en("SEX"),
                "label": en("Sex"),
                "sourceVariableReference": ref("var-001", "Variable"),
                "representation": {
                    "codeRepresentation": {
                        "recommendedDataType": "Code",
                        "codeListReference": ref("cl-001", "CodeList"),
                    }
                },
            },
            {
                **ref("var-miss", "Variable"),
                "label": en("Orphan"),
                "conceptReference": ref("concept-404", "Concept"),
            },
        ],
        Kind.VARIABLE_SCHEME: [
            {
                **ref("vs-001", "VariableScheme"),
                "variables": [ref("var-001"), ref("var-002")],
            },
        ],
        Kind.CODE_LIST: [
            {
                **ref("cl-001", "CodeList"),
                "name": en("Sex codes"),
                "categorySchemeReference": ref("cat-scheme-001", "CategoryScheme"),
                "codes": [
                    {
                        **ref("code-001"),
                        "value": "1",
                        "categoryReference": ref("cat-001", "Category"),
                    },
                    {
                        **ref("code-002"),
                        "value": "2",
                        "categoryReference": ref("cat-404", "Category"),
                    },
                ],
            },
        ],
        Kind.CODE_LIST_SCHEME: [
            {
                **ref("cls-001", "CodeListScheme"),
                "codeLists": [ref("cl-001")],
            },
        ],
        Kind.CATEGORY: [
            {**ref("cat-001", "Category"), "label": en("Male")},
        ],
        Kind.CATEGORY_SCHEME: [
            {
                **ref("cat-scheme-001", "CategoryScheme"),
                "categories": [ref("cat-001")],
            },
        ],
    }


@pytest.fixture
def store(collections) -> DataStore:
    return DataStore(collections)


@pytest.fixture
def resolver(store) -> ReferenceResolver:
    return ReferenceResolver(store)


@pytest.fixture
def mapper() -> XmlMapper:
    return XmlMapper()
