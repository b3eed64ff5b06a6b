"""
DDI 3.3 XML mapping.

Converts resolved or unresolved DDI JSON entities into a namespace
qualified g:ResourcePackage document. Child elements are emitted in the
order the DDI schema expects, so the order of the _append_* calls in
_append_entity must not change.
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from lxml import etree
from pydantic import ValidationError

from ddi_api.schemas.ddi import Kind, LocalizedText, UserID
from ddi_api.services.classifier import classify, explicit_kind, is_bare_identifier
from ddi_api.utils.identifiers import entity_urn, type_tag

logger = logging.getLogger(__name__)

DDI_NAMESPACES: dict[str, str] = {
    "c": "ddi:conceptualcomponent:3_3",
    "d": "ddi:datacollection:3_3",
    "g": "ddi:group:3_3",
    "i": "ddi:instance:3_3",
    "l": "ddi:logicalproduct:3_3",
    "p": "ddi:physicaldataproduct:3_3",
    "pi": "ddi:physicalinstance:3_3",
    "r": "ddi:reusable:3_3",
    "s": "ddi:studyunit:3_3",
}
DEFAULT_NAMESPACE = DDI_NAMESPACES["i"]
XML_LANG = "{http://www.w3.org/XML/1998/namespace}lang"

ROOT_ELEMENT = "g:ResourcePackage"
GENERIC_ELEMENT = "r:Item"

ELEMENT_NAMES: dict[Kind, str] = {
    Kind.CONCEPT: "c:Concept",
    Kind.CONCEPT_SCHEME: "c:ConceptScheme",
    Kind.VARIABLE: "l:Variable",
    Kind.VARIABLE_SCHEME: "l:VariableScheme",
    Kind.CODE_LIST: "d:CodeList",
    Kind.CODE_LIST_SCHEME: "d:CodeListScheme",
    Kind.CATEGORY: "l:Category",
    Kind.CATEGORY_SCHEME: "l:CategoryScheme",
    Kind.CODE: "d:Code",
}

NAME_ELEMENTS: dict[Kind, str] = {
    Kind.CONCEPT: "c:ConceptName",
    Kind.CONCEPT_SCHEME: "c:ConceptName",
    Kind.VARIABLE: "l:VariableName",
    Kind.VARIABLE_SCHEME: "l:VariableName",
    Kind.CODE_LIST: "d:CodeListName",
    Kind.CODE_LIST_SCHEME: "d:CodeListName",
}

# (reference field, resolved field, reference element, kind), in output order
REFERENCE_BLOCKS: tuple[tuple[str, str, str, Kind], ...] = (
    ("conceptReference", "concept", "c:ConceptReference", Kind.CONCEPT),
    ("subclassOfReference", "subclassOf", "c:SubclassOfReference", Kind.CONCEPT),
    ("sourceVariableReference", "sourceVariable", "l:SourceVariableReference", Kind.VARIABLE),
    (
        "categorySchemeReference",
        "categoryScheme",
        "d:CategorySchemeReference",
        Kind.CATEGORY_SCHEME,
    ),
    ("categoryReference", "category", "d:CategoryReference", Kind.CATEGORY),
)

# (field, member kind), in output order
COLLECTION_FIELDS: tuple[tuple[str, Kind], ...] = (
    ("concepts", Kind.CONCEPT),
    ("variables", Kind.VARIABLE),
    ("codeLists", Kind.CODE_LIST),
    ("categories", Kind.CATEGORY),
    ("codes", Kind.CODE),
)

# (field, element), only the first present one is emitted
REPRESENTATION_FIELDS: tuple[tuple[str, str], ...] = (
    ("codeRepresentation", "l:CodeRepresentation"),
    ("numericRepresentation", "l:NumericRepresentation"),
    ("textRepresentation", "l:TextRepresentation"),
    ("dateRepresentation", "l:DateRepresentation"),
)


class XmlSerializationError(ValueError):
    """Raised when a value cannot be written into the XML document."""


def _qname(name: str) -> str:
    """Expand a prefixed name like 'r:URN' to lxml's {namespace}local form."""
    prefix, local = name.split(":", 1)
    return f"{{{DDI_NAMESPACES[prefix]}}}{local}"


def _text_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class XmlMapper:
    """
    Service mapping DDI JSON entities to DDI 3.3 XML.

    Stateless; one instance can serve every request.
    """

    def __init__(self, indent: str = "   "):
        self.indent = indent

    def map(self, payload: Any, kind: Kind | None = None) -> etree._Element:
        """
        Build the ResourcePackage document for one entity or a list of them.

        Args:
            payload: Entity mapping or list of entities
            kind: Kind to assume for untagged entities

        Returns:
            The g:ResourcePackage root element

        Raises:
            XmlSerializationError: If a value is not representable in XML
        """
        nsmap: dict[str | None, str] = {None: DEFAULT_NAMESPACE, **DDI_NAMESPACES}
        root = etree.Element(_qname(ROOT_ELEMENT), nsmap=nsmap)

        items = payload if isinstance(payload, list | tuple) else [payload]
        for item in items:
            if isinstance(item, Mapping):
                self._append_entity(root, item, kind)
        return root

    def serialize(self, tree: etree._Element) -> str:
        """Serialize a document to a pretty-printed UTF-8 XML string."""
        etree.indent(tree, space=self.indent)
        try:
            data = etree.tostring(
                tree, xml_declaration=True, encoding="UTF-8", pretty_print=True
            )
        except (ValueError, etree.SerialisationError) as e:
            raise XmlSerializationError(f"Could not serialize DDI XML: {e}") from e
        return data.decode("utf-8")

    def to_xml(self, payload: Any, kind: Kind | None = None) -> str:
        """Map and serialize in one step."""
        return self.serialize(self.map(payload, kind))

    def _append_entity(
        self,
        parent: etree._Element,
        obj: Mapping[str, Any],
        hint: Kind | None = None,
    ) -> etree._Element:
        kind = self._entity_kind(obj, hint)
        element = self._sub(parent, ELEMENT_NAMES.get(kind, GENERIC_ELEMENT))

        if obj.get("isUniversallyUnique"):
            element.set("isUniversallyUnique", "true")
        self._append_urn(element, obj)
        self._append_user_id(element, obj.get("userID"))

        if kind is Kind.UNKNOWN:
            return element

        if kind in NAME_ELEMENTS:
            for text in self._localized(obj.get("name")):
                self._append_string(self._sub(element, NAME_ELEMENTS[kind]), "r:String", text)
        self._append_label(element, obj.get("label"))
        for text in self._localized(obj.get("description")):
            self._append_string(self._sub(element, "r:Description"), "r:Content", text)
        if kind is Kind.CONCEPT:
            for text in self._localized(obj.get("definition")):
                self._append_string(self._sub(element, "c:Definition"), "r:Content", text)

        for ref_field, resolved_field, ref_element, ref_kind in REFERENCE_BLOCKS:
            if isinstance(obj.get(ref_field), Mapping):
                self._append_reference(element, ref_element, obj[ref_field], ref_kind)
            if isinstance(obj.get(resolved_field), Mapping):
                self._append_entity(element, obj[resolved_field], ref_kind)

        if kind is Kind.VARIABLE and isinstance(obj.get("representation"), Mapping):
            self._append_representation(element, obj["representation"])

        for field, member_kind in COLLECTION_FIELDS:
            members = obj.get(field)
            if isinstance(members, list):
                for member in members:
                    self._append_member(element, member, member_kind)

        if kind is Kind.CODE and obj.get("value") is not None:
            self._set_text(self._sub(element, "d:Value"), _text_value(obj["value"]))

        return element

    @staticmethod
    def _entity_kind(obj: Mapping[str, Any], hint: Kind | None) -> Kind:
        tagged = explicit_kind(obj)
        if tagged is not None:
            return tagged
        if hint is not None and hint is not Kind.UNKNOWN:
            return hint
        return classify(obj)

    def _append_urn(self, element: etree._Element, obj: Any) -> None:
        urn = entity_urn(obj)
        if urn:
            self._set_text(self._sub(element, "r:URN"), urn)

    def _append_user_id(self, element: etree._Element, value: Any) -> None:
        if not value:
            return
        try:
            user_id = UserID.model_validate(value)
        except ValidationError:
            logger.debug(f"Skipping malformed userID {value!r}")
            return
        child = self._sub(element, "r:UserID")
        self._set_text(child, user_id.value)
        if user_id.typeOfUserID:
            self._set_attribute(child, "typeOfUserID", user_id.typeOfUserID)

    def _append_label(self, element: etree._Element, entries: Any) -> None:
        texts = list(self._localized(entries))
        if not texts:
            return
        label = self._sub(element, "r:Label")
        for text in texts:
            self._append_string(label, "r:Content", text)

    def _append_reference(
        self,
        element: etree._Element,
        name: str,
        reference: Mapping[str, Any],
        default_kind: Kind,
    ) -> None:
        ref = self._sub(element, name)
        self._append_urn(ref, reference)
        self._set_text(self._sub(ref, "r:TypeOfObject"), type_tag(reference) or default_kind.value)

    def _append_member(self, element: etree._Element, member: Any, kind: Kind) -> None:
        if isinstance(member, str) or is_bare_identifier(member):
            ref = self._sub(element, ELEMENT_NAMES[kind])
            if isinstance(member, Mapping) and member.get("isUniversallyUnique"):
                ref.set("isUniversallyUnique", "true")
            self._append_urn(ref, member)
        elif isinstance(member, Mapping):
            self._append_entity(element, member, kind)

    def _append_representation(
        self, element: etree._Element, representation: Mapping[str, Any]
    ) -> None:
        for field, name in REPRESENTATION_FIELDS:
            details = representation.get(field)
            if not isinstance(details, Mapping):
                continue

            wrapper = self._sub(element, "l:Representation")
            rep = self._sub(wrapper, name)
            if details.get("recommendedDataType") is not None:
                self._set_text(
                    self._sub(rep, "l:RecommendedDataType"),
                    _text_value(details["recommendedDataType"]),
                )

            if field == "codeRepresentation":
                if isinstance(details.get("codeListReference"), Mapping):
                    self._append_reference(
                        rep, "l:CodeListReference", details["codeListReference"], Kind.CODE_LIST
                    )
                if isinstance(details.get("codeList"), Mapping):
                    self._append_entity(rep, details["codeList"], Kind.CODE_LIST)
            elif field in ("numericRepresentation", "dateRepresentation"):
                if details.get("format"):
                    self._set_text(self._sub(rep, "l:Format"), _text_value(details["format"]))
            elif field == "textRepresentation":
                if details.get("maxLength") is not None:
                    self._set_text(
                        self._sub(rep, "l:MaxLength"), _text_value(details["maxLength"])
                    )
            return

    def _localized(self, entries: Any) -> Iterable[LocalizedText]:
        if not isinstance(entries, list):
            return
        for entry in entries:
            try:
                yield LocalizedText.model_validate(entry)
            except ValidationError:
                logger.debug(f"Skipping malformed localized text {entry!r}")

    def _append_string(self, parent: etree._Element, name: str, text: LocalizedText) -> None:
        child = self._sub(parent, name)
        self._set_text(child, text.value)
        self._set_attribute(child, XML_LANG, text.lang)

    @staticmethod
    def _sub(parent: etree._Element, name: str) -> etree._Element:
        return etree.SubElement(parent, _qname(name))

    @staticmethod
    def _set_text(element: etree._Element, value: str) -> None:
        try:
            element.text = value
        except ValueError as e:
            raise XmlSerializationError(
                f"Value for {etree.QName(element).localname} is not valid XML text: {e}"
            ) from e

    @staticmethod
    def _set_attribute(element: etree._Element, name: str, value: str) -> None:
        try:
            element.set(name, value)
        except ValueError as e:
            raise XmlSerializationError(
                f"Attribute {etree.QName(name).localname} of "
                f"{etree.QName(element).localname} is not valid XML: {e}"
            ) from e
