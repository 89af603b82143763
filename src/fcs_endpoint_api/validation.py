"""Validation core shared by both endpoint description parsing strategies.

The streaming and whole-document strategies differ only in how they pull
values out of the XML. Everything they extract is handed to one
:class:`DescriptionBuilder`, which owns the per-parse state (declared data
views, layers and lex fields, the shared identifier namespace, the set of
resource PIDs seen so far) and applies every structural and cross-referential
rule. A resource is presented to the builder as a :class:`ResourceView`, a
plain record of the raw values found for one ``<Resource>`` element.

Conventions for raw values:
    * attribute values are stripped, with empty treated as ``None``;
    * for ``Available*`` elements ``None`` means the element is absent and
      ``""`` means it is present without a ``ref`` attribute;
    * localized texts are ``LocalizedText(lang, text, location)`` tuples.

Fatal violations raise subclasses of :class:`~fcs_endpoint_api.errors.FCSParseError`;
recoverable ones are logged as warnings.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, NamedTuple, Optional, Sequence, Set
from urllib.parse import urlsplit

from . import constants
from .config import ParserConfig
from .errors import (
    LegacyFormatError,
    MalformedInputError,
    SchemaViolationError,
    UnresolvedReferenceError,
)
from .models import (
    AvailabilityRestriction,
    ContentEncoding,
    DataView,
    DeliveryPolicy,
    EndpointDescription,
    Layer,
    LexField,
    ResourceInfo,
)

logger = logging.getLogger(__name__)

_LINE_BREAKS = re.compile(r"\s*\n+\s*")
_LANGUAGE_CODE = re.compile(r"^[A-Za-z]{3}$")


def clean_string(value: Optional[str]) -> Optional[str]:
    """Collapse multi-line text into a single line; ``None`` if nothing is left."""
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    parts = [part.strip() for part in _LINE_BREAKS.split(value)]
    cleaned = " ".join(part for part in parts if part)
    return cleaned or None


def is_uri(value: Optional[str]) -> bool:
    """Return True if ``value`` is an absolute URI without whitespace."""
    if not value or any(ch.isspace() for ch in value):
        return False
    try:
        parts = urlsplit(value)
    except ValueError:
        return False
    return bool(parts.scheme) and bool(parts.netloc or parts.path)


class LocalizedText(NamedTuple):
    lang: Optional[str]
    text: Optional[str]
    location: Optional[str] = None


@dataclass
class ResourceView:
    """Raw values of one ``<Resource>`` element, as extracted by a strategy."""

    pid: Optional[str]
    location: Optional[str] = None
    titles: List[LocalizedText] = field(default_factory=list)
    descriptions: List[LocalizedText] = field(default_factory=list)
    institutions: List[LocalizedText] = field(default_factory=list)
    landing_page: Optional[str] = None
    languages: Optional[List[str]] = None
    availability: Optional[str] = None
    data_view_refs: Optional[str] = None
    layer_refs: Optional[str] = None
    lex_field_refs: Optional[str] = None


def _missing_attribute(element: str, attribute: str, location: Optional[str]) -> SchemaViolationError:
    return SchemaViolationError(f"Element <{element}> must have a '{attribute}' attribute", location)


class DescriptionBuilder:
    """Accumulates and validates the parts of one endpoint description.

    A builder is used for exactly one parse call. Declarations must be added
    in document order: version, capabilities, data views, layers, lex fields,
    then resources.

    Args:
        config: Parser configuration (depth bound and strictness).
    """

    def __init__(self, config: Optional[ParserConfig] = None) -> None:
        self.config = config or ParserConfig()
        self.version: Optional[int] = None
        self.capabilities: List[str] = []
        self.data_views: Dict[str, DataView] = {}
        self.layers: Dict[str, Layer] = {}
        self.lex_fields: Dict[str, LexField] = {}
        self._identifiers: Set[str] = set()
        self._mime_types: Set[str] = set()
        self._pids: Set[str] = set()

    # ---------------- Capability helpers ---------------- #

    @property
    def has_advanced_search(self) -> bool:
        return constants.CAPABILITY_ADVANCED_SEARCH in self.capabilities

    @property
    def has_authenticated_search(self) -> bool:
        return constants.CAPABILITY_AUTHENTICATED_SEARCH in self.capabilities

    @property
    def has_lex_search(self) -> bool:
        return constants.CAPABILITY_LEX_SEARCH in self.capabilities

    # ---------------- Root and capabilities ---------------- #

    def check_root(self, namespace: Optional[str], local_name: str, location: Optional[str]) -> None:
        """Reject documents with a legacy, foreign or missing root namespace."""
        if namespace == constants.ED_LEGACY_NS:
            raise LegacyFormatError(
                "Endpoint description uses the legacy namespace "
                f"'{constants.ED_LEGACY_NS}'; update to the current version is required",
                location,
            )
        if namespace != constants.ED_NS:
            found = f"'{namespace}'" if namespace else "no namespace"
            raise SchemaViolationError(
                f"Endpoint description must use namespace '{constants.ED_NS}', found {found}",
                location,
            )
        if local_name != constants.ED_ROOT_ELEMENT:
            raise MalformedInputError(
                f"Expected root element <{constants.ED_ROOT_ELEMENT}>, found <{local_name}>",
                location,
            )

    def set_version(self, raw: Optional[str], location: Optional[str] = None) -> int:
        if raw is None:
            raise _missing_attribute(constants.ED_ROOT_ELEMENT, "version", location)
        try:
            version = int(raw)
        except ValueError:
            raise SchemaViolationError(
                f"Attribute 'version' is not a number (value = '{raw}')", location
            ) from None
        if version not in constants.SUPPORTED_VERSIONS:
            raise SchemaViolationError(
                f"Attribute 'version' of element <{constants.ED_ROOT_ELEMENT}> "
                "must be of value '1' or '2'",
                location,
            )
        logger.debug("Endpoint description version is %d", version)
        self.version = version
        return version

    def add_capability(self, raw: Optional[str], location: Optional[str] = None) -> None:
        value = (raw or "").strip()
        if not value:
            raise SchemaViolationError("Element <Capability> must not be empty", location)
        if not value.startswith(constants.CAPABILITY_PREFIX):
            raise SchemaViolationError(
                f"Capabilities must start with prefix '{constants.CAPABILITY_PREFIX}' "
                f"(offending value = '{value}')",
                location,
            )
        if not is_uri(value):
            raise SchemaViolationError(
                f"Capabilities must be encoded as URIs (offending value = '{value}')", location
            )
        if value in self.capabilities:
            logger.warning("Capability '%s' was already declared; ignoring duplicate", value)
            return
        logger.debug("parsed capability: %s", value)
        self.capabilities.append(value)

    def finish_capabilities(self, location: Optional[str] = None) -> None:
        if not self.capabilities:
            raise SchemaViolationError("Endpoint must support at least one capability", location)
        if constants.CAPABILITY_BASIC_SEARCH not in self.capabilities:
            raise SchemaViolationError(
                f"Endpoint must support 'basic-search' ({constants.CAPABILITY_BASIC_SEARCH})",
                location,
            )
        if self.version is not None and self.version < constants.VERSION_2:
            if self.has_advanced_search:
                logger.warning(
                    "Endpoint description is declared as version FCS 1.0 (@version = 1), "
                    "but contains support for 'advanced-search' (%s)",
                    constants.CAPABILITY_ADVANCED_SEARCH,
                )
            if self.has_authenticated_search:
                logger.warning(
                    "Endpoint description is declared as version FCS 1.0 (@version = 1), "
                    "but contains support for 'authenticated-search' (%s)",
                    constants.CAPABILITY_AUTHENTICATED_SEARCH,
                )

    # ---------------- Declarations ---------------- #

    def _claim_identifier(self, element: str, identifier: Optional[str], location: Optional[str]) -> str:
        if identifier is None:
            raise _missing_attribute(element, "id", location)
        if any(ch in identifier for ch in constants.FORBIDDEN_ID_CHARACTERS):
            raise SchemaViolationError(
                f"Value of attribute 'id' on element <{element}> may not contain the "
                "characters ',' (comma) or ';' (semicolon) or ' ' (space)",
                location,
            )
        if identifier in self._identifiers:
            raise SchemaViolationError(
                f"Identifier '{identifier}' of element <{element}> was already declared", location
            )
        self._identifiers.add(identifier)
        return identifier

    def add_data_view(
        self,
        identifier: Optional[str],
        delivery_policy: Optional[str],
        mime_type: Optional[str],
        location: Optional[str] = None,
    ) -> DataView:
        identifier = self._claim_identifier("SupportedDataView", identifier, location)
        if delivery_policy is None:
            raise _missing_attribute("SupportedDataView", "delivery-policy", location)
        policy = DeliveryPolicy.from_token(delivery_policy, location)
        mime_type = (mime_type or "").strip()
        if not mime_type:
            raise SchemaViolationError(
                "Element <SupportedDataView> must contain a MIME type", location
            )
        if mime_type in self._mime_types:
            raise SchemaViolationError(
                f"Supported data view with MIME type '{mime_type}' was already declared",
                location,
            )
        self._mime_types.add(mime_type)
        data_view = DataView(identifier=identifier, mime_type=mime_type, delivery_policy=policy)
        self.data_views[identifier] = data_view
        logger.debug("data view: id=%s, type=%s, policy=%s", identifier, mime_type, policy.token)
        return data_view

    def finish_data_views(self, location: Optional[str] = None) -> None:
        if not self.data_views:
            raise SchemaViolationError(
                "Endpoint must declare at least one <SupportedDataView>", location
            )
        if constants.MIMETYPE_HITS_DATAVIEW not in self._mime_types:
            raise SchemaViolationError(
                "Endpoint must support generic hits data view (expected MIME type "
                f"'{constants.MIMETYPE_HITS_DATAVIEW}')",
                location,
            )
        if self.has_advanced_search and constants.MIMETYPE_ADV_DATAVIEW not in self._mime_types:
            raise SchemaViolationError(
                "Endpoint claimed to support 'advanced-search' but does not declare the "
                f"advanced data view (expected MIME type '{constants.MIMETYPE_ADV_DATAVIEW}')",
                location,
            )
        if self.has_lex_search and constants.MIMETYPE_LEX_DATAVIEW not in self._mime_types:
            logger.warning(
                "Endpoint claimed to support 'lex-search' but does not declare the lex "
                "data view (expected MIME type '%s')",
                constants.MIMETYPE_LEX_DATAVIEW,
            )

    def add_layer(
        self,
        identifier: Optional[str],
        result_id: Optional[str],
        layer_type: Optional[str],
        encoding: Optional[str] = None,
        qualifier: Optional[str] = None,
        alt_value_info: Optional[str] = None,
        alt_value_info_uri: Optional[str] = None,
        location: Optional[str] = None,
    ) -> Layer:
        identifier = self._claim_identifier("SupportedLayer", identifier, location)
        if result_id is None:
            raise _missing_attribute("SupportedLayer", "result-id", location)
        if not is_uri(result_id):
            raise SchemaViolationError(
                f"'result-id' must be encoded as URIs (offending value = '{result_id}')", location
            )
        layer_type = (layer_type or "").strip()
        if not layer_type:
            raise SchemaViolationError("Element <SupportedLayer> must contain a layer type", location)
        if (
            layer_type not in constants.KNOWN_LAYER_TYPES
            and not layer_type.startswith(constants.CUSTOM_LAYER_TYPE_PREFIX)
        ):
            logger.debug(
                "layer type '%s' is neither a known type nor prefixed with '%s'",
                layer_type,
                constants.CUSTOM_LAYER_TYPE_PREFIX,
            )
        content_encoding = (
            ContentEncoding.from_token(encoding, location) if encoding else ContentEncoding.VALUE
        )
        if alt_value_info is None:
            alt_value_info_uri = None
        elif alt_value_info_uri is not None and not is_uri(alt_value_info_uri):
            raise SchemaViolationError(
                "'alt-value-info-uri' must be encoded as URIs "
                f"(offending value = '{alt_value_info_uri}')",
                location,
            )
        layer = Layer(
            identifier=identifier,
            result_id=result_id,
            layer_type=layer_type,
            encoding=content_encoding,
            qualifier=qualifier,
            alt_value_info=alt_value_info,
            alt_value_info_uri=alt_value_info_uri,
        )
        self.layers[identifier] = layer
        logger.debug(
            "layer: id=%s, resultId=%s, layer=%s, encoding=%s, qualifier=%s",
            identifier,
            result_id,
            layer_type,
            content_encoding.token,
            qualifier,
        )
        return layer

    def finish_layers(self, declared: bool, location: Optional[str] = None) -> None:
        """Check the ``<SupportedLayers>`` block against the capabilities.

        Args:
            declared: Whether the block was present in the document.
        """
        if declared and not self.layers:
            raise SchemaViolationError(
                "Element <SupportedLayers> must contain at least one <SupportedLayer>", location
            )
        if self.has_advanced_search and not declared:
            raise SchemaViolationError(
                "Endpoint must declare all supported layers (<SupportedLayers>) if they "
                f"provide the 'advanced-search' ({constants.CAPABILITY_ADVANCED_SEARCH}) capability",
                location,
            )
        if declared and not self.has_advanced_search:
            logger.warning(
                "Endpoint superfluously declared supported layers (<SupportedLayers>) "
                "without providing the 'advanced-search' (%s) capability",
                constants.CAPABILITY_ADVANCED_SEARCH,
            )
        if declared and self.version is not None and self.version < constants.VERSION_2:
            logger.warning(
                "Endpoint claims to support FCS 1.0, but includes information about "
                "<SupportedLayers>"
            )

    def add_lex_field(
        self,
        identifier: Optional[str],
        field_type: Optional[str],
        location: Optional[str] = None,
    ) -> LexField:
        identifier = self._claim_identifier("SupportedLexField", identifier, location)
        field_type = (field_type or "").strip()
        if not field_type:
            raise SchemaViolationError(
                "Element <SupportedLexField> must contain a field type", location
            )
        lex_field = LexField(identifier=identifier, field_type=field_type)
        self.lex_fields[identifier] = lex_field
        logger.debug("lex field: id=%s, type=%s", identifier, field_type)
        return lex_field

    def finish_lex_fields(self, declared: bool, location: Optional[str] = None) -> None:
        if declared and not self.lex_fields:
            raise SchemaViolationError(
                "Element <SupportedLexFields> must contain at least one <SupportedLexField>",
                location,
            )
        if self.has_lex_search and not declared:
            raise SchemaViolationError(
                "Endpoint must declare all supported lex fields (<SupportedLexFields>) if "
                f"they provide the 'lex-search' ({constants.CAPABILITY_LEX_SEARCH}) capability",
                location,
            )
        if declared and not self.has_lex_search:
            logger.warning(
                "Endpoint superfluously declared supported lex fields (<SupportedLexFields>) "
                "without providing the 'lex-search' (%s) capability",
                constants.CAPABILITY_LEX_SEARCH,
            )

    # ---------------- Resources ---------------- #

    def should_descend(self, depth: int) -> bool:
        """Return True if sub-resources at nesting ``depth`` are to be parsed."""
        return self.config.unbounded or depth < self.config.max_depth

    def claim_pid(self, pid: Optional[str], location: Optional[str] = None) -> str:
        if pid is None:
            raise _missing_attribute("Resource", "pid", location)
        if pid in self._pids:
            raise SchemaViolationError(
                f"Another element <Resource> with pid '{pid}' already exists", location
            )
        self._pids.add(pid)
        return pid

    def _localized(
        self, element: str, entries: Sequence[LocalizedText], required: bool, location: Optional[str]
    ) -> Optional[Dict[str, str]]:
        if not entries:
            if required:
                raise SchemaViolationError(
                    f"Resource must have at least one <{element}> element", location
                )
            return None
        result: Dict[str, str] = {}
        for entry in entries:
            entry_location = entry.location or location
            if entry.lang is None:
                raise _missing_attribute(element, "xml:lang", entry_location)
            text = clean_string(entry.text)
            if text is None:
                raise SchemaViolationError(
                    f"Element <{element}> must have non-empty content", entry_location
                )
            if entry.lang in result:
                logger.warning("A <%s> with language '%s' already exists", element, entry.lang)
                continue
            result[entry.lang] = text
        if constants.LANG_EN not in result:
            logger.warning("A <%s> with language 'en' is mandatory", element)
        return result

    def _languages(self, languages: Optional[Sequence[str]], location: Optional[str]) -> List[str]:
        if languages is None:
            raise SchemaViolationError("Missing element <Languages>", location)
        result: List[str] = []
        for raw in languages:
            code = (raw or "").strip()
            if not _LANGUAGE_CODE.match(code):
                raise SchemaViolationError(
                    "Element <Language> must use ISO-639-3 three letter language codes "
                    f"(offending value = '{code}')",
                    location,
                )
            if code in result:
                raise SchemaViolationError(
                    f"language '{code}' was already defined in <Language>", location
                )
            result.append(code)
        if not result:
            raise SchemaViolationError(
                "Element <Languages> must contain at least one <Language>", location
            )
        return result

    def _availability(
        self, raw: Optional[str], location: Optional[str]
    ) -> AvailabilityRestriction:
        if raw is None:
            return AvailabilityRestriction.NONE
        value = clean_string(raw)
        if value is None:
            raise SchemaViolationError(
                "Element <AvailabilityRestriction> must not be empty", location
            )
        restriction = AvailabilityRestriction.from_token(value, location)
        if not self.has_authenticated_search:
            raise SchemaViolationError(
                "Resource declares <AvailabilityRestriction> but endpoint does not support "
                f"'authenticated-search' ({constants.CAPABILITY_AUTHENTICATED_SEARCH})",
                location,
            )
        return restriction

    def _resolve(
        self,
        element: str,
        block: str,
        refs: str,
        declared: Dict[str, object],
        location: Optional[str],
    ) -> list:
        if not refs:
            raise _missing_attribute(element, "ref", location)
        resolved = []
        for token in refs.split():
            item = declared.get(token)
            if item is None:
                raise UnresolvedReferenceError(
                    token,
                    f"Identifier '{token}' referenced by <{element}> was not declared in <{block}>",
                    location,
                )
            resolved.append(item)
        return resolved

    def build_resource(
        self, view: ResourceView, sub_resources: Sequence[ResourceInfo] = ()
    ) -> ResourceInfo:
        """Validate ``view`` and turn it into a :class:`ResourceInfo`."""
        location = view.location
        pid = view.pid
        if pid is None:
            raise _missing_attribute("Resource", "pid", location)

        title = self._localized("Title", view.titles, True, location)
        description = self._localized("Description", view.descriptions, False, location)
        institution = self._localized("Institution", view.institutions, False, location)
        languages = self._languages(view.languages, location)
        restriction = self._availability(view.availability, location)

        if view.data_view_refs is None:
            raise SchemaViolationError(
                f"Missing element <AvailableDataViews> on resource with pid '{pid}'", location
            )
        data_views = self._resolve(
            "AvailableDataViews", "SupportedDataViews", view.data_view_refs, self.data_views, location
        )

        layers = []
        if view.layer_refs is not None:
            layers = self._resolve(
                "AvailableLayers", "SupportedLayers", view.layer_refs, self.layers, location
            )
        elif self.has_advanced_search:
            self._missing_declaration("AvailableLayers", "advanced-search", pid, location)

        lex_fields = []
        if view.lex_field_refs is not None:
            lex_fields = self._resolve(
                "AvailableLexFields", "SupportedLexFields", view.lex_field_refs, self.lex_fields, location
            )
        elif self.has_lex_search:
            self._missing_declaration("AvailableLexFields", "lex-search", pid, location)

        logger.debug("parsed resource with pid '%s' (%d sub-resources)", pid, len(sub_resources))
        return ResourceInfo(
            pid=pid,
            title=title,
            description=description,
            institution=institution,
            landing_page_uri=clean_string(view.landing_page),
            languages=languages,
            availability_restriction=restriction,
            available_data_views=data_views,
            available_layers=layers,
            available_lex_fields=lex_fields,
            sub_resources=sub_resources,
        )

    def _missing_declaration(
        self, element: str, capability: str, pid: str, location: Optional[str]
    ) -> None:
        if self.config.require_resource_declarations:
            raise SchemaViolationError(
                f"Endpoint must declare <{element}> on every resource if it provides the "
                f"'{capability}' capability (offending resource pid = '{pid}')",
                location,
            )
        logger.debug("No <%s> for resource '%s'", element, pid)

    def finish_resources(
        self, resources: Sequence[ResourceInfo], location: Optional[str] = None
    ) -> List[ResourceInfo]:
        if not resources:
            raise SchemaViolationError(
                "Element <Resources> must contain at least one <Resource>", location
            )
        return list(resources)

    def build(self, resources: Sequence[ResourceInfo], location: Optional[str] = None) -> EndpointDescription:
        """Assemble the final :class:`EndpointDescription`."""
        if self.version is None:
            raise SchemaViolationError("Endpoint description version was not set", location)
        resources = self.finish_resources(resources, location)
        return EndpointDescription(
            version=self.version,
            capabilities=self.capabilities,
            supported_data_views=list(self.data_views.values()),
            supported_layers=list(self.layers.values()),
            supported_lex_fields=list(self.lex_fields.values()),
            resources=resources,
        )
