import xml.etree.ElementTree as ET

import pytest

from fcs_endpoint_api import xml_cursor
from fcs_endpoint_api.errors import (
    InternalParserError,
    MalformedInputError,
    SchemaViolationError,
)
from fcs_endpoint_api.xml_cursor import (
    END,
    END_DOCUMENT,
    START,
    XMLCursor,
    as_cursor,
    qname,
    split_qname,
)

NS = "urn:test"
DOC = f"""<root xmlns="{NS}" version=" 2 ">
  <item id="a">first</item>
  <item id="b" empty="  ">second <b>bold</b> tail</item>
  <item id="c"/>
</root>"""


def test_qname_round_trip():
    assert qname(NS, "item") == "{urn:test}item"
    assert qname(None, "item") == "item"
    assert split_qname("{urn:test}item") == (NS, "item")
    assert split_qname("item") == (None, "item")


def test_read_start_attribute_and_string():
    cursor = XMLCursor.from_string(DOC)
    assert cursor.read_start(NS, "root", required=True, stay=True)
    assert cursor.read_attribute("version") == "2"
    cursor.advance()

    assert cursor.read_start(NS, "item", stay=True)
    assert cursor.read_attribute("id") == "a"
    cursor.advance()
    assert cursor.read_string() == "first"
    cursor.read_end(NS, "item")


def test_empty_attribute_is_treated_as_missing():
    cursor = XMLCursor.from_string(DOC)
    cursor.read_start(NS, "root")
    cursor.skip_tag(NS, "item")
    cursor.read_start(NS, "item", stay=True)
    assert cursor.read_attribute("empty") is None
    with pytest.raises(SchemaViolationError, match="must have a 'empty' attribute"):
        cursor.read_attribute("empty", required=True)


def test_location_reports_element_path():
    cursor = XMLCursor.from_string(DOC)
    cursor.read_start(NS, "root")
    cursor.skip_tag(NS, "item")
    cursor.read_start(NS, "item", stay=True)
    assert cursor.location == "/root[1]/item[2]"


def test_read_end_with_skip_content():
    cursor = XMLCursor.from_string(DOC)
    cursor.read_start(NS, "root")
    cursor.skip_tag(NS, "item")
    cursor.read_start(NS, "item")
    cursor.read_end(NS, "item", skip_content=True)
    assert cursor.peek_start(NS, "item")
    cursor.read_start(NS, "item", stay=True)
    assert cursor.read_attribute("id") == "c"


def test_read_end_mismatch_raises():
    cursor = XMLCursor.from_string(DOC)
    cursor.read_start(NS, "root")
    with pytest.raises(MalformedInputError, match="Expected end of element <root>"):
        cursor.read_end(NS, "root")


def test_required_start_missing_raises():
    cursor = XMLCursor.from_string(DOC)
    with pytest.raises(MalformedInputError, match="Expected element <other>"):
        cursor.read_start(NS, "other", required=True)


def test_read_attribute_requires_start_tag():
    cursor = XMLCursor.from_string(DOC)
    cursor.read_start(NS, "root")
    cursor.read_start(NS, "item")
    with pytest.raises(InternalParserError):
        cursor.read_attribute("id")


def test_read_content_returns_none_when_absent():
    cursor = XMLCursor.from_string(DOC)
    cursor.read_start(NS, "root")
    assert cursor.read_content(NS, "missing") is None
    assert cursor.read_content(NS, "item") == "first"


def test_read_element_materializes_subtree():
    cursor = XMLCursor.from_string(DOC)
    cursor.read_start(NS, "root")
    cursor.skip_tag(NS, "item")
    element = cursor.read_element()
    assert element.tag == qname(NS, "item")
    assert element.get("id") == "b"
    assert element.find(qname(NS, "b")).text == "bold"
    assert element.tail is None
    # cursor moved past the element
    assert cursor.peek_start(NS, "item")


def test_end_of_document():
    cursor = XMLCursor.from_string("<a/>")
    assert cursor.event_kind == START
    cursor.advance()
    assert cursor.event_kind == END
    cursor.advance()
    assert cursor.event_kind == END_DOCUMENT
    with pytest.raises(MalformedInputError, match="Unexpected end of document"):
        cursor.advance()


def test_malformed_xml_reports_line_and_column():
    cursor = XMLCursor.from_string("<a>\n<b></a>")
    with pytest.raises(MalformedInputError) as excinfo:
        cursor.read_element()
    assert excinfo.value.location.startswith("line 2")


def test_truncated_document_raises_on_creation():
    with pytest.raises(MalformedInputError, match="not well-formed"):
        XMLCursor.from_string("<a")


@pytest.mark.parametrize(
    "data",
    [
        '<?xml version="1.0" encoding="ISO-8859-1"?><a>W\u00f6rter</a>',
        '<?xml version="1.0" encoding="ISO-8859-1"?><a>W\u00f6rter</a>'.encode("latin-1"),
    ],
    ids=["str", "bytes"],
)
def test_declared_encoding(data):
    cursor = XMLCursor.from_string(data)
    cursor.read_start(None, "a")
    assert cursor.read_string() == "W\u00f6rter"


def test_from_file_reads_in_chunks(tmp_path, monkeypatch):
    monkeypatch.setattr(xml_cursor, "CHUNK_SIZE", 16)
    path = tmp_path / "doc.xml"
    path.write_text(DOC, encoding="utf-8")
    cursor = XMLCursor.from_file(path)
    cursor.read_start(NS, "root")
    assert cursor.read_content(NS, "item") == "first"
    element = cursor.read_element()
    assert element.find(qname(NS, "b")).tail == " tail"
    cursor.read_start(NS, "item", stay=True)
    assert cursor.read_attribute("id") == "c"


def test_consumed_elements_are_released():
    cursor = XMLCursor.from_string(DOC)
    cursor.read_start(NS, "root")
    cursor.read_start(NS, "item", stay=True)
    first = cursor.peek().element
    cursor.skip_element()
    assert first.attrib == {}
    assert first.text is None

    # a captured sub-tree stays whole
    element = cursor.read_element()
    assert element.find(qname(NS, "b")).text == "bold"
    assert element.find(qname(NS, "b")).tail == " tail"


def test_from_element_replays_same_events():
    element = ET.fromstring(DOC)
    cursor = XMLCursor.from_element(element)
    cursor.read_start(NS, "root")
    assert cursor.read_content(NS, "item") == "first"
    cursor.read_start(NS, "item")
    assert cursor.read_string() == "second"
    cursor.skip_tag(NS, "b")
    assert cursor.read_string() == "tail"
    cursor.read_end(NS, "item")
    # replaying does not clear the caller's tree
    assert element.find(qname(NS, "item")).get("id") == "a"
    assert element.find(qname(NS, "item")).text == "first"


def test_as_cursor_accepts_supported_sources(tmp_path):
    path = tmp_path / "doc.xml"
    path.write_text(DOC, encoding="utf-8")
    for source in (DOC, DOC.encode("utf-8"), path, ET.fromstring(DOC)):
        cursor = as_cursor(source)
        assert cursor.is_start(NS, "root")
    cursor = XMLCursor.from_string(DOC)
    assert as_cursor(cursor) is cursor
    with pytest.raises(TypeError):
        as_cursor(42)
