"""Typed Data View payloads decoded from search result records.

A search result record carries one or more ``<DataView type="...">``
fragments. The parsers in :mod:`fcs_endpoint_api.dataview_parsers` decode the
content of such a fragment into one of the immutable payload classes below.

Payload hierarchy:
    * ``DataViewPayload``: common base with ``type`` (MIME type), ``pid`` and ``ref``.
    * ``HitsDataView``: flattened text plus ``(start, end)`` hit offsets.
    * ``HitsWithLexAnnotationsDataView``: hits plus one ``kind`` tag per hit.
    * ``LexDataView``: a lexical entry with typed fields and values.
    * ``GenericDOMDataView`` / ``GenericStringDataView``: untyped fallbacks.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from .errors import UnknownValueError


@dataclass(frozen=True)
class DataViewPayload:
    """Base class of all decoded data view payloads."""

    type: str
    pid: Optional[str] = None
    ref: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.type:
            raise ValueError("type is empty")

    def is_mime_type(self, mime_type: str) -> bool:
        return self.type == mime_type

    def to_dict(self) -> dict:
        return {"type": self.type, "pid": self.pid, "ref": self.ref}


@dataclass(frozen=True)
class HitsDataView(DataViewPayload):
    """Generic Hits data view.

    ``offsets`` holds one ``(start, end)`` pair per hit; ``text[start:end]`` is
    the hit's text.
    """

    text: str = ""
    offsets: Tuple[Tuple[int, int], ...] = ()

    def __post_init__(self) -> None:
        super().__post_init__()
        object.__setattr__(self, "offsets", tuple((int(s), int(e)) for s, e in self.offsets))
        for start, end in self.offsets:
            if not 0 <= start <= end <= len(self.text):
                raise ValueError(f"hit offsets ({start}, {end}) out of range")

    @property
    def hit_count(self) -> int:
        return len(self.offsets)

    def get_hit_offsets(self, index: int) -> Tuple[int, int]:
        """Return the ``(start, end)`` offsets of hit ``index``.

        Raises:
            IndexError: If ``index`` is out of range.
        """
        if not 0 <= index < len(self.offsets):
            raise IndexError(f"hit index {index} out of range (0..{len(self.offsets) - 1})")
        return self.offsets[index]

    def get_hit_text(self, index: int) -> str:
        start, end = self.get_hit_offsets(index)
        return self.text[start:end]

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["text"] = self.text
        payload["hits"] = [
            {"start": start, "end": end, "text": self.text[start:end]}
            for start, end in self.offsets
        ]
        return payload


@dataclass(frozen=True)
class HitsWithLexAnnotationsDataView(HitsDataView):
    """Hits data view with an optional ``kind`` tag per hit."""

    hit_kinds: Tuple[Optional[str], ...] = ()

    def __post_init__(self) -> None:
        super().__post_init__()
        object.__setattr__(self, "hit_kinds", tuple(self.hit_kinds))
        if len(self.hit_kinds) != len(self.offsets):
            raise ValueError(
                f"hit_kinds has {len(self.hit_kinds)} entries, expected {len(self.offsets)}"
            )

    def get_hit_kind(self, index: int) -> Optional[str]:
        self.get_hit_offsets(index)
        return self.hit_kinds[index]

    def to_dict(self) -> dict:
        payload = super().to_dict()
        for hit, kind in zip(payload["hits"], self.hit_kinds):
            hit["kind"] = kind
        return payload


class FieldType(Enum):
    """Closed vocabulary of lexical entry field types."""

    ENTRY_ID = "entryId"
    LEMMA = "lemma"
    TRANSLATION = "translation"
    TRANSCRIPTION = "transcription"
    PHONETIC = "phonetic"
    DEFINITION = "definition"
    ETYMOLOGY = "etymology"
    CASE = "case"
    NUMBER = "number"
    GENDER = "gender"
    POS = "pos"
    BASEFORM = "baseform"
    SEGMENTATION = "segmentation"
    SENTIMENT = "sentiment"
    FREQUENCY = "frequency"
    ANTONYM = "antonym"
    HYPONYM = "hyponym"
    HYPERNYM = "hypernym"
    MERONYM = "meronym"
    HOLONYM = "holonym"
    SYNONYM = "synonym"
    RELATED = "related"
    REF = "ref"
    SENSE_REF = "senseRef"
    CITATION = "citation"

    @property
    def token(self) -> str:
        return self.value

    @classmethod
    def from_token(cls, token: Optional[str], location: Optional[str] = None) -> "FieldType":
        """Look up a field type by its (case-sensitive) wire token."""
        for member in cls:
            if member.value == token:
                return member
        raise UnknownValueError("attribute 'type' on element <Field>", token, location)


@dataclass(frozen=True)
class LexValue:
    """One ``<Value>`` of a lexical field."""

    content: str
    xml_id: Optional[str] = None
    xml_lang: Optional[str] = None
    lang_uri: Optional[str] = None
    preferred: bool = False
    ref: Optional[str] = None
    id_refs: Tuple[str, ...] = ()
    vocab_ref: Optional[str] = None
    vocab_value_ref: Optional[str] = None
    type: Optional[str] = None
    source: Optional[str] = None
    source_ref: Optional[str] = None
    date: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "id_refs", tuple(self.id_refs))

    @property
    def has_attributes(self) -> bool:
        return bool(
            self.xml_id
            or self.xml_lang
            or self.lang_uri
            or self.preferred
            or self.ref
            or self.id_refs
            or self.vocab_ref
            or self.vocab_value_ref
            or self.type
            or self.source
            or self.source_ref
            or self.date
        )

    def to_dict(self) -> dict:
        return {
            "content": self.content,
            "xml_id": self.xml_id,
            "xml_lang": self.xml_lang,
            "lang_uri": self.lang_uri,
            "preferred": self.preferred,
            "ref": self.ref,
            "id_refs": list(self.id_refs),
            "vocab_ref": self.vocab_ref,
            "vocab_value_ref": self.vocab_value_ref,
            "type": self.type,
            "source": self.source,
            "source_ref": self.source_ref,
            "date": self.date,
        }


@dataclass(frozen=True)
class LexField:
    """A typed ``<Field>`` of a lexical entry (not to be confused with the
    lex field *declaration* in :mod:`fcs_endpoint_api.models`)."""

    field_type: FieldType
    values: Tuple[LexValue, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", tuple(self.values))
        if not self.values:
            raise ValueError("values is empty")

    def to_dict(self) -> dict:
        return {
            "type": self.field_type.token,
            "values": [value.to_dict() for value in self.values],
        }


@dataclass(frozen=True)
class LexDataView(DataViewPayload):
    """Lexical entry data view."""

    fields: Tuple[LexField, ...] = ()
    xml_lang: Optional[str] = None
    lang_uri: Optional[str] = None

    def __post_init__(self) -> None:
        super().__post_init__()
        object.__setattr__(self, "fields", tuple(self.fields))
        if not self.fields:
            raise ValueError("fields is empty")

    def get_field(self, field_type: FieldType) -> Optional[LexField]:
        """Return the first field of ``field_type``, if any."""
        for lex_field in self.fields:
            if lex_field.field_type is field_type:
                return lex_field
        return None

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["xml_lang"] = self.xml_lang
        payload["lang_uri"] = self.lang_uri
        payload["fields"] = [lex_field.to_dict() for lex_field in self.fields]
        return payload


@dataclass(frozen=True, eq=False)
class GenericDOMDataView(DataViewPayload):
    """Fallback payload holding the raw XML sub-tree."""

    element: Optional[ET.Element] = None

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.element is None:
            raise ValueError("element is None")

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["content"] = ET.tostring(self.element, encoding="unicode")
        return payload


@dataclass(frozen=True)
class GenericStringDataView(DataViewPayload):
    """Fallback payload holding the raw XML sub-tree serialized as text."""

    content: str = ""

    def __post_init__(self) -> None:
        super().__post_init__()
        if not self.content:
            raise ValueError("content is empty")

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["content"] = self.content
        return payload
