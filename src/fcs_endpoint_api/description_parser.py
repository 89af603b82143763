"""Parse CLARIN-FCS endpoint descriptions into :class:`EndpointDescription` models.

Two interchangeable strategies are available (see
:class:`~fcs_endpoint_api.config.ParsingStrategy`):

* **streaming**: one forward pass over an :class:`XMLCursor`; nested
  ``<Resources>`` blocks beyond the depth bound are skipped without being
  built.
* **document**: the description is materialized as an ElementTree first and
  its parts are located with ElementPath queries; the legacy namespace is
  rejected before anything else is read.

Both strategies only *extract* raw values; every rule is applied by the shared
:class:`~fcs_endpoint_api.validation.DescriptionBuilder`, so they accept and
reject the same documents. The one configurable difference is whether a
resource lacking ``<AvailableLayers>``/``<AvailableLexFields>`` is fatal
(``ParserConfig.strict_resource_declarations``).

Typical usage:
        from pathlib import Path
        from fcs_endpoint_api.description_parser import EndpointDescriptionParser
        from fcs_endpoint_api.config import ParserConfig

        parser = EndpointDescriptionParser(ParserConfig(max_depth=2))
        description = parser.parse(Path("endpoint-description.xml"))
        print(description.version, description.capabilities)
        for resource in description.iter_resources():
                print(resource.pid, resource.get_title("en"))
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from typing import List, Optional, Sequence, Union

from . import constants
from .config import ParserConfig, ParsingStrategy
from .errors import MalformedInputError
from .models import EndpointDescription, ResourceInfo
from .validation import DescriptionBuilder, LocalizedText, ResourceView
from .xml_cursor import TEXT, XMLCursor, XMLSource, as_cursor, split_qname

logger = logging.getLogger(__name__)

ED = constants.ED_NS
NS = {"ed": constants.ED_NS}
XML_LANG = f"{{{constants.XML_NS}}}lang"


def _attr(element: ET.Element, name: str) -> Optional[str]:
    """Attribute value stripped, ``None`` if missing or empty."""
    value = element.get(name)
    if value is None:
        return None
    return value.strip() or None


def _text(element: ET.Element) -> str:
    return "".join(element.itertext())


class EndpointDescriptionParser:
    """Parser for endpoint description documents.

    Instances hold only configuration and can be reused (also concurrently)
    for any number of documents.

    Args:
        config: Parser configuration; defaults to :class:`ParserConfig()`.
    """

    def __init__(self, config: Optional[ParserConfig] = None) -> None:
        self.config = config or ParserConfig()

    def parse(self, source: Union[XMLSource, ET.ElementTree]) -> EndpointDescription:
        """Parse ``source`` with the configured strategy.

        Args:
            source: XML text (``str``/``bytes``), a :class:`~pathlib.Path`, an
                :class:`XMLCursor` positioned before the root element, or an
                already parsed element (tree).

        Returns:
            The validated endpoint description.

        Raises:
            FCSParseError: If the document is malformed or violates a rule.
        """
        if isinstance(source, ET.ElementTree):
            source = source.getroot()
        if self.config.strategy is ParsingStrategy.STREAMING:
            return self.parse_cursor(as_cursor(source))
        if isinstance(source, ET.Element):
            return self.parse_document(source)
        return self.parse_document(as_cursor(source).read_element())

    # ---------------- Streaming strategy ---------------- #

    def parse_cursor(self, cursor: XMLCursor) -> EndpointDescription:
        """Parse an endpoint description in a single pass over ``cursor``."""
        builder = DescriptionBuilder(self.config)

        if not cursor.peek_start():
            raise MalformedInputError(
                f"Expected element <{constants.ED_ROOT_ELEMENT}>", cursor.location
            )
        namespace, local_name = cursor.current_name
        builder.check_root(namespace, local_name, cursor.location)
        root_location = cursor.location
        builder.set_version(cursor.read_attribute("version"), root_location)
        cursor.advance()

        if cursor.read_start(ED, "Capabilities"):
            while cursor.read_start(ED, "Capability", stay=True):
                location = cursor.location
                cursor.advance()
                builder.add_capability(cursor.read_string(), location)
                cursor.read_end(ED, "Capability")
            cursor.read_end(ED, "Capabilities")
        builder.finish_capabilities(root_location)

        if cursor.read_start(ED, "SupportedDataViews"):
            while cursor.read_start(ED, "SupportedDataView", stay=True):
                location = cursor.location
                identifier = cursor.read_attribute("id")
                policy = cursor.read_attribute("delivery-policy")
                cursor.advance()
                builder.add_data_view(identifier, policy, cursor.read_string(), location)
                cursor.read_end(ED, "SupportedDataView")
            cursor.read_end(ED, "SupportedDataViews")
        builder.finish_data_views(root_location)

        declared = cursor.read_start(ED, "SupportedLayers")
        if declared:
            while cursor.read_start(ED, "SupportedLayer", stay=True):
                location = cursor.location
                attributes = {
                    name: cursor.read_attribute(name)
                    for name in (
                        "id",
                        "result-id",
                        "type",
                        "qualifier",
                        "alt-value-info",
                        "alt-value-info-uri",
                    )
                }
                cursor.advance()
                builder.add_layer(
                    attributes["id"],
                    attributes["result-id"],
                    cursor.read_string(),
                    encoding=attributes["type"],
                    qualifier=attributes["qualifier"],
                    alt_value_info=attributes["alt-value-info"],
                    alt_value_info_uri=attributes["alt-value-info-uri"],
                    location=location,
                )
                cursor.read_end(ED, "SupportedLayer")
            cursor.read_end(ED, "SupportedLayers")
        builder.finish_layers(declared, root_location)

        declared = cursor.read_start(ED, "SupportedLexFields")
        if declared:
            while cursor.read_start(ED, "SupportedLexField", stay=True):
                location = cursor.location
                identifier = cursor.read_attribute("id")
                cursor.advance()
                builder.add_lex_field(identifier, cursor.read_string(), location)
                cursor.read_end(ED, "SupportedLexField")
            cursor.read_end(ED, "SupportedLexFields")
        builder.finish_lex_fields(declared, root_location)

        resources: List[ResourceInfo] = []
        if cursor.read_start(ED, "Resources"):
            resources = self._stream_resources(cursor, builder, depth=0)

        self._skip_extensions(cursor, constants.ED_ROOT_ELEMENT)
        cursor.read_end(ED, constants.ED_ROOT_ELEMENT)
        return builder.build(resources, root_location)

    def _stream_resources(
        self, cursor: XMLCursor, builder: DescriptionBuilder, depth: int
    ) -> List[ResourceInfo]:
        resources = []
        while cursor.read_start(ED, "Resource", stay=True):
            resources.append(self._stream_resource(cursor, builder, depth))
        cursor.read_end(ED, "Resources")
        return resources

    def _stream_resource(
        self, cursor: XMLCursor, builder: DescriptionBuilder, depth: int
    ) -> ResourceInfo:
        location = cursor.location
        pid = builder.claim_pid(cursor.read_attribute("pid"), location)
        cursor.advance()
        logger.debug("Processing resource with pid '%s' at level %d", pid, depth)

        view = ResourceView(pid=pid, location=location)
        view.titles = self._stream_localized(cursor, "Title")
        view.descriptions = self._stream_localized(cursor, "Description")
        view.institutions = self._stream_localized(cursor, "Institution")
        # repeated landing pages: the last one wins
        while cursor.read_start(ED, "LandingPageURI"):
            view.landing_page = cursor.read_string()
            cursor.read_end(ED, "LandingPageURI")

        if cursor.read_start(ED, "Languages"):
            view.languages = []
            while cursor.read_start(ED, "Language"):
                view.languages.append(cursor.read_string())
                cursor.read_end(ED, "Language")
            cursor.read_end(ED, "Languages")

        if cursor.read_start(ED, "AvailabilityRestriction"):
            view.availability = cursor.read_string()
            cursor.read_end(ED, "AvailabilityRestriction")

        view.data_view_refs = self._stream_refs(cursor, "AvailableDataViews")
        view.layer_refs = self._stream_refs(cursor, "AvailableLayers")
        view.lex_field_refs = self._stream_refs(cursor, "AvailableLexFields")

        sub_resources: List[ResourceInfo] = []
        if cursor.peek_start(ED, "Resources"):
            sub_location = cursor.location
            if builder.should_descend(depth + 1):
                cursor.advance()
                sub_resources = builder.finish_resources(
                    self._stream_resources(cursor, builder, depth + 1), sub_location
                )
            else:
                logger.debug("skipping sub-resources of '%s' (max depth reached)", pid)
                cursor.skip_tag(ED, "Resources", required=True)

        self._skip_extensions(cursor, "Resource")
        cursor.read_end(ED, "Resource")
        return builder.build_resource(view, sub_resources)

    def _stream_localized(self, cursor: XMLCursor, local_name: str) -> List[LocalizedText]:
        entries = []
        while cursor.read_start(ED, local_name, stay=True):
            location = cursor.location
            lang = cursor.read_attribute("lang", constants.XML_NS)
            cursor.advance()
            entries.append(LocalizedText(lang, cursor.read_string(), location))
            cursor.read_end(ED, local_name)
        return entries

    def _stream_refs(self, cursor: XMLCursor, local_name: str) -> Optional[str]:
        if not cursor.read_start(ED, local_name, stay=True):
            return None
        refs = cursor.read_attribute("ref") or ""
        cursor.advance()
        cursor.read_end(ED, local_name, skip_content=True)
        return refs

    def _skip_extensions(self, cursor: XMLCursor, local_name: str) -> None:
        while not cursor.peek_end(ED, local_name):
            if cursor.event_kind == TEXT:
                raise MalformedInputError(
                    f"Unexpected text content in element <{local_name}>", cursor.location
                )
            if not cursor.is_start():
                # an end tag that does not match is reported by read_end
                return
            namespace, name = cursor.current_name
            logger.debug("skipping over extension with element {%s}%s", namespace, name)
            cursor.skip_element()

    # ---------------- Whole-document strategy ---------------- #

    def parse_document(self, root: ET.Element) -> EndpointDescription:
        """Parse an endpoint description from a materialized element tree."""
        builder = DescriptionBuilder(self.config)
        namespace, local_name = split_qname(root.tag)
        root_location = f"/{local_name}"
        builder.check_root(namespace, local_name, root_location)
        builder.set_version(_attr(root, "version"), root_location)

        for index, node in enumerate(root.findall("ed:Capabilities/ed:Capability", NS), 1):
            builder.add_capability(
                _text(node), f"{root_location}/Capabilities/Capability[{index}]"
            )
        builder.finish_capabilities(root_location)

        for index, node in enumerate(
            root.findall("ed:SupportedDataViews/ed:SupportedDataView", NS), 1
        ):
            builder.add_data_view(
                _attr(node, "id"),
                _attr(node, "delivery-policy"),
                _text(node),
                f"{root_location}/SupportedDataViews/SupportedDataView[{index}]",
            )
        builder.finish_data_views(root_location)

        block = root.find("ed:SupportedLayers", NS)
        if block is not None:
            for index, node in enumerate(block.findall("ed:SupportedLayer", NS), 1):
                builder.add_layer(
                    _attr(node, "id"),
                    _attr(node, "result-id"),
                    _text(node),
                    encoding=_attr(node, "type"),
                    qualifier=_attr(node, "qualifier"),
                    alt_value_info=_attr(node, "alt-value-info"),
                    alt_value_info_uri=_attr(node, "alt-value-info-uri"),
                    location=f"{root_location}/SupportedLayers/SupportedLayer[{index}]",
                )
        builder.finish_layers(block is not None, root_location)

        block = root.find("ed:SupportedLexFields", NS)
        if block is not None:
            for index, node in enumerate(block.findall("ed:SupportedLexField", NS), 1):
                builder.add_lex_field(
                    _attr(node, "id"),
                    _text(node),
                    f"{root_location}/SupportedLexFields/SupportedLexField[{index}]",
                )
        builder.finish_lex_fields(block is not None, root_location)

        resources = self._document_resources(
            root.findall("ed:Resources/ed:Resource", NS),
            builder,
            depth=0,
            parent_location=f"{root_location}/Resources",
        )
        return builder.build(resources, root_location)

    def _document_resources(
        self,
        nodes: Sequence[ET.Element],
        builder: DescriptionBuilder,
        depth: int,
        parent_location: str,
    ) -> List[ResourceInfo]:
        resources = []
        for index, node in enumerate(nodes, 1):
            location = f"{parent_location}/Resource[{index}]"
            pid = builder.claim_pid(_attr(node, "pid"), location)
            logger.debug("Processing resource with pid '%s' at level %d", pid, depth)

            view = ResourceView(
                pid=pid,
                location=location,
                titles=self._document_localized(node, "Title", location),
                descriptions=self._document_localized(node, "Description", location),
                institutions=self._document_localized(node, "Institution", location),
            )
            landing_pages = node.findall("ed:LandingPageURI", NS)
            if landing_pages:
                view.landing_page = _text(landing_pages[-1])
            languages = node.find("ed:Languages", NS)
            if languages is not None:
                view.languages = [_text(n) for n in languages.findall("ed:Language", NS)]
            availability = node.find("ed:AvailabilityRestriction", NS)
            if availability is not None:
                view.availability = _text(availability)
            view.data_view_refs = self._document_refs(node, "AvailableDataViews")
            view.layer_refs = self._document_refs(node, "AvailableLayers")
            view.lex_field_refs = self._document_refs(node, "AvailableLexFields")

            sub_resources: List[ResourceInfo] = []
            block = node.find("ed:Resources", NS)
            if block is not None:
                if builder.should_descend(depth + 1):
                    sub_location = f"{location}/Resources"
                    sub_resources = builder.finish_resources(
                        self._document_resources(
                            block.findall("ed:Resource", NS), builder, depth + 1, sub_location
                        ),
                        sub_location,
                    )
                else:
                    logger.debug("skipping sub-resources of '%s' (max depth reached)", pid)

            resources.append(builder.build_resource(view, sub_resources))
        return resources

    def _document_localized(
        self, node: ET.Element, local_name: str, location: str
    ) -> List[LocalizedText]:
        return [
            LocalizedText(_attr(n, XML_LANG), _text(n), f"{location}/{local_name}[{index}]")
            for index, n in enumerate(node.findall(f"ed:{local_name}", NS), 1)
        ]

    def _document_refs(self, node: ET.Element, local_name: str) -> Optional[str]:
        element = node.find(f"ed:{local_name}", NS)
        if element is None:
            return None
        return _attr(element, "ref") or ""


def parse_endpoint_description(
    source: Union[XMLSource, ET.ElementTree],
    config: Optional[ParserConfig] = None,
    **overrides,
) -> EndpointDescription:
    """Parse an endpoint description in one call.

    Args:
        source: See :meth:`EndpointDescriptionParser.parse`.
        config: Base configuration.
        **overrides: ``ParserConfig`` fields overriding ``config`` (e.g.
            ``strategy="streaming"``, ``max_depth=1``).
    """
    config = config or ParserConfig()
    if overrides:
        values = {
            "max_depth": config.max_depth,
            "strategy": config.strategy,
            "strict_resource_declarations": config.strict_resource_declarations,
        }
        values.update(overrides)
        config = ParserConfig(**values)
    return EndpointDescriptionParser(config).parse(source)
