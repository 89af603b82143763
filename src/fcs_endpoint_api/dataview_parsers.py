"""Pluggable parsers for Data View payloads and the registry dispatching to them.

Each parser declares which MIME types it accepts and a numeric priority. The
:class:`DataViewParserRegistry` keeps its parsers ordered by descending
priority and picks the first one accepting a given type. A catch-all generic
parser (lowest possible priority, accepts everything) is always installed, so
dispatch cannot come up empty for a correctly built registry.

Parsers are stateless; all state of a parse lives in local variables, which
makes a registry safe to share between threads as long as the cursors are not.

A parser is invoked with the cursor positioned on (or right before, separated
only by whitespace) the payload's root element and returns with the cursor
positioned right after that element's end tag.

Example:
    registry = DataViewParserRegistry.default()
    cursor = XMLCursor.from_string(payload_xml)
    hits = registry.parse(cursor, MIMETYPE_HITS_DATAVIEW, pid=None, ref=None)
    print(hits.text, hits.offsets)
"""

from __future__ import annotations

import logging
import sys
import xml.etree.ElementTree as ET
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Set

from . import constants
from .dataviews import (
    DataViewPayload,
    FieldType,
    GenericDOMDataView,
    GenericStringDataView,
    HitsDataView,
    HitsWithLexAnnotationsDataView,
    LexDataView,
    LexField,
    LexValue,
)
from .errors import (
    InternalParserError,
    MalformedInputError,
    SchemaViolationError,
    UnresolvedReferenceError,
)
from .xml_cursor import TEXT, XMLCursor

logger = logging.getLogger(__name__)

FALLBACK_PRIORITY = -sys.maxsize - 1


class DataViewParser:
    """Base class for data view payload parsers."""

    priority: int = 0

    def accept_type(self, mime_type: str) -> bool:
        raise NotImplementedError

    def parse(
        self,
        cursor: XMLCursor,
        mime_type: str,
        pid: Optional[str] = None,
        ref: Optional[str] = None,
    ) -> DataViewPayload:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}(priority={self.priority})"


class HitsDataViewParser(DataViewParser):
    """Parser for the generic Hits data view.

    Text runs and ``<Hit>`` spans inside ``<Result>`` are flattened into one
    string; a single space separates consecutive runs unless the text already
    ends in whitespace.
    """

    priority = 1000
    with_kinds = False

    def accept_type(self, mime_type: str) -> bool:
        return mime_type == constants.MIMETYPE_HITS_DATAVIEW

    def parse(self, cursor, mime_type, pid=None, ref=None):
        ns = constants.FCS_HITS_NS
        buffer: List[str] = []
        length = 0
        offsets: List[tuple] = []
        kinds: List[Optional[str]] = []

        cursor.read_start(ns, "Result", required=True)
        start = 0
        while not cursor.peek_end(ns, "Result"):
            if length > 0:
                if not buffer[-1][-1].isspace():
                    buffer.append(" ")
                    length += 1
                start = length

            if cursor.read_start(ns, "Hit", stay=True):
                kind = cursor.read_attribute("kind") if self.with_kinds else None
                cursor.advance()
                hit = cursor.read_string()
                cursor.read_end(ns, "Hit")
                if hit:
                    buffer.append(hit)
                    length += len(hit)
                    offsets.append((start, start + len(hit)))
                    kinds.append(kind)
                else:
                    logger.warning("skipping empty <Hit> element within <Result> element")
            elif cursor.event_kind == TEXT:
                text = cursor.read_string()
                buffer.append(text)
                length += len(text)
            else:
                raise MalformedInputError(
                    "Unexpected content within <Result> element", cursor.location
                )
        cursor.read_end(ns, "Result")

        text = "".join(buffer)
        logger.debug("parsed hits data view with %d hit(s)", len(offsets))
        if self.with_kinds:
            return HitsWithLexAnnotationsDataView(
                type=mime_type, pid=pid, ref=ref, text=text, offsets=offsets, hit_kinds=kinds
            )
        return HitsDataView(type=mime_type, pid=pid, ref=ref, text=text, offsets=offsets)


class HitsWithLexAnnotationsDataViewParser(HitsDataViewParser):
    """Hits parser that also records the ``kind`` attribute of each hit.

    Preferred over :class:`HitsDataViewParser` when both are registered; its
    payload is still a :class:`HitsDataView`.
    """

    priority = 1010
    with_kinds = True


class LexDataViewParser(DataViewParser):
    """Parser for the lexical entry data view (``<Entry>``)."""

    priority = 1000

    def accept_type(self, mime_type: str) -> bool:
        return mime_type == constants.MIMETYPE_LEX_DATAVIEW

    def parse(self, cursor, mime_type, pid=None, ref=None):
        ns = constants.FCS_LEX_NS
        xml_ns = constants.XML_NS

        cursor.read_start(ns, "Entry", required=True, stay=True)
        entry_lang = cursor.read_attribute("lang", xml_ns)
        entry_lang_uri = cursor.read_attribute("langUri")
        cursor.advance()
        logger.debug("entry: xml:lang=%s, langUri=%s", entry_lang, entry_lang_uri)

        value_ids: Set[str] = set()
        id_ref_locations: Dict[str, str] = {}
        fields: List[LexField] = []

        while cursor.read_start(ns, "Field", required=not fields, stay=True):
            location = cursor.location
            field_type = FieldType.from_token(
                cursor.read_attribute("type", required=True), location
            )
            cursor.advance()

            values: List[LexValue] = []
            seen = 0
            while cursor.read_start(ns, "Value", required=seen == 0, stay=True):
                seen += 1
                value = self._parse_value(cursor, value_ids, id_ref_locations)
                if value is not None:
                    values.append(value)
            cursor.read_end(ns, "Field")

            if not values:
                raise SchemaViolationError(
                    f"Field of type '{field_type.token}' has no usable <Value>", location
                )
            fields.append(LexField(field_type=field_type, values=values))

        cursor.read_end(ns, "Entry")

        for id_ref, location in id_ref_locations.items():
            if id_ref not in value_ids:
                raise UnresolvedReferenceError(
                    id_ref, f"No value with id '{id_ref}' found", location
                )

        return LexDataView(
            type=mime_type,
            pid=pid,
            ref=ref,
            fields=fields,
            xml_lang=entry_lang,
            lang_uri=entry_lang_uri,
        )

    def _parse_value(
        self,
        cursor: XMLCursor,
        value_ids: Set[str],
        id_ref_locations: Dict[str, str],
    ) -> Optional[LexValue]:
        location = cursor.location
        xml_lang = cursor.read_attribute("lang", constants.XML_NS)
        xml_id = cursor.read_attribute("id", constants.XML_NS)
        if xml_id is not None:
            value_ids.add(xml_id)
        lang_uri = cursor.read_attribute("langUri")
        preferred = (cursor.read_attribute("preferred") or "").lower() == "true"
        id_refs_raw = cursor.read_attribute("idRefs")
        id_refs = id_refs_raw.split() if id_refs_raw else []
        for id_ref in id_refs:
            id_ref_locations.setdefault(id_ref, location)

        if lang_uri is not None and xml_lang is None:
            raise SchemaViolationError(
                "Value with langUri attribute requires a xml:lang attribute", location
            )

        value = LexValue(
            content="",
            xml_id=xml_id,
            xml_lang=xml_lang,
            lang_uri=lang_uri,
            preferred=preferred,
            ref=cursor.read_attribute("ref"),
            id_refs=id_refs,
            vocab_ref=cursor.read_attribute("vocabRef"),
            vocab_value_ref=cursor.read_attribute("vocabValueRef"),
            type=cursor.read_attribute("type"),
            source=cursor.read_attribute("source"),
            source_ref=cursor.read_attribute("sourceRef"),
            date=cursor.read_attribute("date"),
        )
        cursor.advance()
        content = cursor.read_string()
        cursor.read_end(constants.FCS_LEX_NS, "Value")

        if not content:
            if not value.has_attributes:
                logger.error("value has no content and no attributes set! Skip.")
                return None
            logger.warning("value has no content but specifies attributes (at %s)", location)
            return value
        return replace(value, content=content)


class GenericDataViewParser(DataViewParser):
    """Catch-all parser capturing the payload's raw XML sub-tree.

    Args:
        as_string: Return a :class:`GenericStringDataView` with the serialized
            sub-tree instead of a :class:`GenericDOMDataView`.
    """

    priority = FALLBACK_PRIORITY

    def __init__(self, as_string: bool = False) -> None:
        self.as_string = as_string

    def accept_type(self, mime_type: str) -> bool:
        return True

    def parse(self, cursor, mime_type, pid=None, ref=None):
        if not cursor.peek_start():
            raise SchemaViolationError(
                "element <DataView> does not contain any nested elements", cursor.location
            )
        element = cursor.read_element()
        if self.as_string:
            return GenericStringDataView(
                type=mime_type, pid=pid, ref=ref, content=ET.tostring(element, encoding="unicode")
            )
        return GenericDOMDataView(type=mime_type, pid=pid, ref=ref, element=element)


class DataViewParserRegistry:
    """Priority ordered collection of data view parsers.

    Args:
        parsers: Specific parsers to register.
        unknown_as_string: Make the catch-all parser return the serialized
            payload text instead of an element tree.
    """

    def __init__(
        self,
        parsers: Optional[Iterable[DataViewParser]] = None,
        unknown_as_string: bool = False,
    ) -> None:
        self._fallback = GenericDataViewParser(as_string=unknown_as_string)
        self._parsers: List[DataViewParser] = [self._fallback]
        for parser in parsers or ():
            self.register(parser)

    @classmethod
    def default(cls, unknown_as_string: bool = False) -> "DataViewParserRegistry":
        """Registry with the Hits, Hits-with-lex-annotations and Lex parsers."""
        return cls(
            [HitsDataViewParser(), HitsWithLexAnnotationsDataViewParser(), LexDataViewParser()],
            unknown_as_string=unknown_as_string,
        )

    @property
    def parsers(self) -> List[DataViewParser]:
        return list(self._parsers)

    @property
    def unknown_as_string(self) -> bool:
        return self._fallback.as_string

    def register(self, parser: DataViewParser) -> None:
        """Add ``parser``, keeping the list ordered by descending priority.

        Parsers of equal priority keep their registration order.
        """
        if isinstance(parser, GenericDataViewParser):
            raise ValueError("the registry already provides a catch-all parser")
        if parser.priority <= FALLBACK_PRIORITY:
            raise ValueError(f"priority of {parser!r} must be above the fallback priority")
        self._parsers.append(parser)
        self._parsers.sort(key=lambda p: -p.priority)

    def select(self, mime_type: str) -> DataViewParser:
        """Return the highest priority parser accepting ``mime_type``."""
        for parser in self._parsers:
            if parser.accept_type(mime_type):
                return parser
        raise InternalParserError(f"no data view parser accepts type '{mime_type}'")

    def parse(
        self,
        cursor: XMLCursor,
        mime_type: str,
        pid: Optional[str] = None,
        ref: Optional[str] = None,
    ) -> DataViewPayload:
        parser = self.select(mime_type)
        logger.debug("parsing data view of type '%s' with %r", mime_type, parser)
        return parser.parse(cursor, mime_type, pid, ref)
