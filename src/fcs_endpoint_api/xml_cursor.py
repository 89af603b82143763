"""Forward-only XML cursor used by the streaming parsers.

The parsers in this package consume XML through a small pull-style contract:
peek at the current event, read or require a start tag, read an attribute off
the current start tag, read text up to the next tag, read the matching end tag,
and skip whole sub-trees. :class:`XMLCursor` implements that contract on top of
``xml.etree.ElementTree.XMLPullParser`` by turning its ``start``/``end`` events
into a ``START`` / ``TEXT`` / ``END`` event stream. Files are fed to the parser in
chunks, and elements parsed from text or files are cleared once their end tag
has been consumed, so their content is not kept for the rest of the parse.
Syntax errors surface when the cursor reaches them, not when it is created.

Text is emitted lazily: an element's ``text`` (or ``tail``) is only complete
once the parser has reported the *next* tag, so it is yielded right before the
event that follows it.

Besides streaming access the cursor can materialize the sub-tree it is
positioned on (:meth:`XMLCursor.read_element`), which is what the
whole-document parsing strategy and the generic data view parsers use.

Example:
    from fcs_endpoint_api.xml_cursor import XMLCursor

    cursor = XMLCursor.from_string("<a x='1'>hello<b/></a>")
    cursor.read_start(None, "a", required=True, stay=True)
    cursor.read_attribute("x")        # '1'
    cursor.advance()
    cursor.read_string()              # 'hello'
    cursor.skip_tag(None, "b")
    cursor.read_end(None, "a")
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from copy import deepcopy
from dataclasses import dataclass
from itertools import chain
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union

from .errors import InternalParserError, MalformedInputError, SchemaViolationError

START = "start"
END = "end"
TEXT = "text"
END_DOCUMENT = "end-document"

CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class Event:
    """A single cursor event.

    ``element`` is set for ``START``/``END`` events, ``text`` for ``TEXT``.
    """

    kind: str
    element: Optional[ET.Element] = None
    text: Optional[str] = None


_END_OF_DOCUMENT = Event(END_DOCUMENT)

XMLSource = Union["XMLCursor", ET.Element, Path, str, bytes]


def qname(namespace: Optional[str], local_name: str) -> str:
    """Return the ElementTree (Clark notation) name for ``namespace``/``local_name``."""
    if namespace:
        return f"{{{namespace}}}{local_name}"
    return local_name


def split_qname(tag: str) -> Tuple[Optional[str], str]:
    """Split a Clark notation tag into ``(namespace, local_name)``."""
    if tag.startswith("{"):
        namespace, local_name = tag[1:].split("}", 1)
        return namespace, local_name
    return None, tag


def _read_chunks(path: Path) -> Iterator[bytes]:
    with open(path, "rb") as handle:
        while True:
            chunk = handle.read(CHUNK_SIZE)
            if not chunk:
                return
            yield chunk


def _pull_events(chunks: Iterable[Union[str, bytes]]) -> Iterator[Event]:
    # str chunks are decoded already; XMLPullParser then ignores the declared encoding
    parser = ET.XMLPullParser(events=("start", "end"))
    pending: Optional[Tuple[ET.Element, str]] = None
    try:
        for chunk in chain(chunks, [None]):
            if chunk is None:
                parser.close()
            else:
                parser.feed(chunk)
            for kind, element in parser.read_events():
                if pending is not None:
                    text = getattr(pending[0], pending[1])
                    if text:
                        yield Event(TEXT, text=text)
                if kind == "start":
                    yield Event(START, element)
                    pending = (element, "text")
                else:
                    yield Event(END, element)
                    pending = (element, "tail")
    except ET.ParseError as exc:
        line, column = exc.position
        raise MalformedInputError(
            f"XML is not well-formed: {exc}", f"line {line}, column {column}"
        ) from exc


def _element_events(element: ET.Element, with_tail: bool = False) -> Iterator[Event]:
    yield Event(START, element)
    if element.text:
        yield Event(TEXT, text=element.text)
    for child in element:
        if not isinstance(child.tag, str):
            # comments and processing instructions only contribute their tail
            if child.tail:
                yield Event(TEXT, text=child.tail)
            continue
        yield from _element_events(child, with_tail=True)
    yield Event(END, element)
    if with_tail and element.tail:
        yield Event(TEXT, text=element.tail)


class XMLCursor:
    """Pull-style cursor over a stream of :class:`Event` objects.

    The cursor always points at the *current* event. Reading methods consume
    events and leave the cursor on the first event they did not consume.
    Whitespace-only text between elements is skipped by the tag oriented
    methods (``read_start``, ``peek_start``, ``peek_end``, ``read_end``).

    Args:
        events: Iterable of events, typically produced by one of the
            ``from_*`` constructors.
        release: Clear each element once its end tag has been consumed.
            Elements inside a :meth:`read_element` capture are kept.
    """

    def __init__(self, events: Iterable[Event], release: bool = False) -> None:
        self._events = iter(events)
        self._release = release
        self._capturing = 0
        self._path: List[str] = []
        self._counts: List[Dict[str, int]] = [{}]
        self._current = self._pull()

    # ---------------- Constructors ---------------- #

    @classmethod
    def from_string(cls, data: Union[str, bytes]) -> "XMLCursor":
        """Create a cursor over an XML document held in memory."""
        return cls(_pull_events([data]), release=True)

    @classmethod
    def from_file(cls, path: Path) -> "XMLCursor":
        """Create a cursor over an XML file, read in chunks of ``CHUNK_SIZE`` bytes."""
        return cls(_pull_events(_read_chunks(Path(path))), release=True)

    @classmethod
    def from_element(cls, element: ET.Element) -> "XMLCursor":
        """Create a cursor replaying an already materialized element tree.

        The tree is left untouched.
        """
        return cls(_element_events(element))

    # ---------------- Event access ---------------- #

    def _pull(self) -> Event:
        return next(self._events, _END_OF_DOCUMENT)

    def peek(self) -> Event:
        """Return the current event without consuming it."""
        return self._current

    @property
    def event_kind(self) -> str:
        return self._current.kind

    @property
    def current_name(self) -> Optional[Tuple[Optional[str], str]]:
        """``(namespace, local_name)`` of the current start or end tag."""
        if self._current.element is None:
            return None
        return split_qname(self._current.element.tag)

    @property
    def location(self) -> str:
        """Element path of the current position, e.g. ``/Root[1]/Child[2]``."""
        parts = list(self._path)
        if self._current.kind == START:
            local_name = split_qname(self._current.element.tag)[1]
            index = self._counts[-1].get(local_name, 0) + 1
            parts.append(f"{local_name}[{index}]")
        return "/" + "/".join(parts)

    def advance(self) -> Event:
        """Consume the current event and return it."""
        event = self._current
        if event.kind == END_DOCUMENT:
            raise MalformedInputError("Unexpected end of document", self.location)
        if event.kind == START:
            local_name = split_qname(event.element.tag)[1]
            counts = self._counts[-1]
            counts[local_name] = counts.get(local_name, 0) + 1
            self._path.append(f"{local_name}[{counts[local_name]}]")
            self._counts.append({})
        elif event.kind == END:
            self._path.pop()
            self._counts.pop()
        self._current = self._pull()
        if event.kind == END and self._release and not self._capturing:
            # the tail was read while pulling the next event
            event.element.clear()
        return event

    def _skip_whitespace(self) -> None:
        while self._current.kind == TEXT and not self._current.text.strip():
            self.advance()

    def _matches(self, kind: str, namespace: Optional[str], local_name: Optional[str]) -> bool:
        if self._current.kind != kind:
            return False
        if local_name is None:
            return True
        return self._current.element.tag == qname(namespace, local_name)

    def _describe(self) -> str:
        event = self._current
        if event.kind == START:
            return f"start of element <{split_qname(event.element.tag)[1]}>"
        if event.kind == END:
            return f"end of element <{split_qname(event.element.tag)[1]}>"
        if event.kind == TEXT:
            return f"text '{event.text.strip()[:40]}'"
        return "end of document"

    # ---------------- Tag oriented reading ---------------- #

    def is_start(self, namespace: Optional[str] = None, local_name: Optional[str] = None) -> bool:
        """Return True if the current event is a (matching) start tag."""
        return self._matches(START, namespace, local_name)

    def peek_start(
        self, namespace: Optional[str] = None, local_name: Optional[str] = None
    ) -> bool:
        """Skip whitespace and report whether the next tag starts ``local_name``.

        Without ``local_name`` any start tag matches.
        """
        self._skip_whitespace()
        return self._matches(START, namespace, local_name)

    def peek_end(self, namespace: Optional[str], local_name: str) -> bool:
        """Skip whitespace and report whether the next tag ends ``local_name``."""
        self._skip_whitespace()
        return self._matches(END, namespace, local_name)

    def read_start(
        self,
        namespace: Optional[str],
        local_name: str,
        required: bool = False,
        stay: bool = False,
    ) -> bool:
        """Read the start tag of ``local_name``.

        Args:
            namespace: Namespace URI of the element (``None`` for none).
            local_name: Local element name.
            required: Raise :class:`MalformedInputError` if the element is not next.
            stay: Leave the cursor *on* the start tag so attributes can be read;
                the caller then calls :meth:`advance`.

        Returns:
            True if the start tag was found.
        """
        self._skip_whitespace()
        if self._matches(START, namespace, local_name):
            if not stay:
                self.advance()
            return True
        if required:
            raise MalformedInputError(
                f"Expected element <{local_name}>, found {self._describe()}",
                self.location,
            )
        return False

    def read_end(
        self, namespace: Optional[str], local_name: str, skip_content: bool = False
    ) -> None:
        """Read the end tag of ``local_name``.

        With ``skip_content`` any remaining children and text of the element
        are consumed first.
        """
        if skip_content:
            depth = 0
            while not (self._current.kind == END and depth == 0):
                event = self.advance()
                if event.kind == START:
                    depth += 1
                elif event.kind == END:
                    depth -= 1
        else:
            self._skip_whitespace()
        if not self._matches(END, namespace, local_name):
            raise MalformedInputError(
                f"Expected end of element <{local_name}>, found {self._describe()}",
                self.location,
            )
        self.advance()

    def read_attribute(
        self, local_name: str, namespace: Optional[str] = None, required: bool = False
    ) -> Optional[str]:
        """Read an attribute of the current start tag.

        Values are stripped; an empty value is treated as absent.

        Raises:
            SchemaViolationError: If ``required`` and the attribute is missing.
            InternalParserError: If the cursor is not on a start tag.
        """
        if self._current.kind != START:
            raise InternalParserError(
                f"Cannot read attribute '{local_name}': cursor is not on a start tag"
            )
        value = self._current.element.get(qname(namespace, local_name))
        if value is not None:
            value = value.strip() or None
        if value is None and required:
            element_name = split_qname(self._current.element.tag)[1]
            raise SchemaViolationError(
                f"Element <{element_name}> must have a '{local_name}' attribute",
                self.location,
            )
        return value

    def read_string(self, required: bool = False) -> str:
        """Read text up to the next tag and return it stripped.

        Raises:
            SchemaViolationError: If ``required`` and no text content is present.
        """
        location = self.location
        parts: List[str] = []
        while self._current.kind == TEXT:
            parts.append(self._current.text)
            self.advance()
        value = "".join(parts).strip()
        if required and not value:
            raise SchemaViolationError("Element must have non-empty text content", location)
        return value

    def read_content(
        self, namespace: Optional[str], local_name: str, required: bool = False
    ) -> Optional[str]:
        """Read ``<local_name>text</local_name>`` and return the text (or None)."""
        if not self.read_start(namespace, local_name, required):
            return None
        value = self.read_string(required)
        self.read_end(namespace, local_name)
        return value or None

    def skip_element(self) -> None:
        """Consume the element the cursor is positioned on, including its end tag."""
        self._skip_whitespace()
        if self._current.kind != START:
            raise MalformedInputError(
                f"Expected an element, found {self._describe()}", self.location
            )
        depth = 0
        while True:
            event = self.advance()
            if event.kind == START:
                depth += 1
            elif event.kind == END:
                depth -= 1
                if depth == 0:
                    return

    def skip_tag(
        self, namespace: Optional[str], local_name: str, required: bool = False
    ) -> bool:
        """Skip the whole ``local_name`` sub-tree if it is next."""
        if self.read_start(namespace, local_name, required, stay=True):
            self.skip_element()
            return True
        return False

    def read_element(self) -> ET.Element:
        """Materialize the sub-tree at the cursor and move past it.

        Returns:
            A detached copy of the element (its ``tail`` is dropped).
        """
        self._skip_whitespace()
        if self._current.kind != START:
            raise MalformedInputError(
                f"Expected an element, found {self._describe()}", self.location
            )
        element = self._current.element
        self._capturing += 1
        try:
            self.skip_element()
        finally:
            self._capturing -= 1
        copy = deepcopy(element)
        copy.tail = None
        if self._release and not self._capturing:
            element.clear()
        return copy


def as_cursor(source: XMLSource) -> XMLCursor:
    """Coerce the supported input types into an :class:`XMLCursor`.

    ``str``/``bytes`` are treated as XML text, :class:`~pathlib.Path` as a file.
    """
    if isinstance(source, XMLCursor):
        return source
    if isinstance(source, ET.Element):
        return XMLCursor.from_element(source)
    if isinstance(source, Path):
        return XMLCursor.from_file(source)
    if isinstance(source, (str, bytes)):
        return XMLCursor.from_string(source)
    raise TypeError(f"Unsupported XML source type: {type(source).__name__}")
