"""Validated, immutable model of a CLARIN-FCS endpoint description.

These dataclasses are produced by
:class:`~fcs_endpoint_api.description_parser.EndpointDescriptionParser` and
consumed by search federators (and by the HTTP and CLI layers in this
package). They are frozen: list valued attributes are tuples and language maps
are read-only mappings, so a description can be shared freely once parsed.

Overview:
    * ``EndpointDescription`` is the root: protocol version, capabilities and
      the declared data views, layers and lex fields plus the resource forest.
    * ``DataView``, ``Layer`` and ``LexField`` are the *declarations* found in
      the ``Supported*`` blocks. Resources reference them by identifier.
    * ``ResourceInfo`` is one node of the resource tree; it owns its
      sub-resources and has no parent pointer.

Closed vocabularies on the wire (delivery policy, layer encoding, availability
restriction) are modeled as enums with an explicit token mapping. Unknown
tokens raise :class:`~fcs_endpoint_api.errors.UnknownValueError`.

Example::

    description = parse_endpoint_description(xml_text)
    for resource in description.iter_resources():
        print(resource.pid, resource.get_title("en"))
    payload = description.to_dict()
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Iterator, Mapping, Optional, Tuple

from . import constants
from .errors import UnknownValueError


def _freeze_map(value: Optional[Mapping[str, str]]) -> Optional[Mapping[str, str]]:
    if value is None:
        return None
    return MappingProxyType(dict(value))


class DeliveryPolicy(Enum):
    """How a data view is delivered in search results."""

    SEND_BY_DEFAULT = constants.POLICY_SEND_DEFAULT
    NEED_TO_REQUEST = constants.POLICY_NEED_REQUEST

    @property
    def token(self) -> str:
        return self.value

    @classmethod
    def from_token(cls, token: Optional[str], location: Optional[str] = None) -> "DeliveryPolicy":
        for member in cls:
            if member.value == token:
                return member
        raise UnknownValueError(
            "attribute 'delivery-policy' on element <SupportedDataView>", token, location
        )


class ContentEncoding(Enum):
    """Encoding of layer content in advanced data views."""

    VALUE = constants.LAYER_ENCODING_VALUE
    EMPTY = constants.LAYER_ENCODING_EMPTY

    @property
    def token(self) -> str:
        return self.value

    @classmethod
    def from_token(cls, token: Optional[str], location: Optional[str] = None) -> "ContentEncoding":
        for member in cls:
            if member.value == token:
                return member
        raise UnknownValueError("layer encoding on element <SupportedLayer>", token, location)


class AvailabilityRestriction(Enum):
    """Access tier required to retrieve results from a resource.

    ``NONE`` has no wire token; it is the absence of the
    ``<AvailabilityRestriction>`` element.
    """

    NONE = None
    AUTH_ONLY = constants.AVAILABILITY_RESTRICTION_AUTHONLY
    PERSONAL_IDENTIFIER = constants.AVAILABILITY_RESTRICTION_PERSONALID

    @property
    def token(self) -> Optional[str]:
        return self.value

    @classmethod
    def from_token(
        cls, token: Optional[str], location: Optional[str] = None
    ) -> "AvailabilityRestriction":
        for member in cls:
            if member.value is not None and member.value == token:
                return member
        raise UnknownValueError("content of element <AvailabilityRestriction>", token, location)


@dataclass(frozen=True)
class DataView:
    """A data view declared in ``<SupportedDataViews>``."""

    identifier: str
    mime_type: str
    delivery_policy: DeliveryPolicy

    def __post_init__(self) -> None:
        if not self.identifier:
            raise ValueError("identifier is empty")
        if not self.mime_type:
            raise ValueError("mime_type is empty")

    def is_mime_type(self, mime_type: str) -> bool:
        return self.mime_type == mime_type

    def to_dict(self) -> dict:
        return {
            "identifier": self.identifier,
            "mime_type": self.mime_type,
            "delivery_policy": self.delivery_policy.token,
        }


@dataclass(frozen=True)
class Layer:
    """An annotation layer declared in ``<SupportedLayers>``.

    Attributes:
        identifier: Identifier referenced by ``<AvailableLayers>``.
        result_id: URI used for the layer in advanced data view results.
        layer_type: Layer type tag (``text``, ``lemma``, ``pos``, ...; free form).
        encoding: How layer values are encoded in results.
        qualifier: Optional qualifier distinguishing layers of the same type.
        alt_value_info: Optional description of alternative values.
        alt_value_info_uri: Optional URI with more on ``alt_value_info``.
    """

    identifier: str
    result_id: str
    layer_type: str
    encoding: ContentEncoding = ContentEncoding.VALUE
    qualifier: Optional[str] = None
    alt_value_info: Optional[str] = None
    alt_value_info_uri: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.identifier:
            raise ValueError("identifier is empty")
        if not self.result_id:
            raise ValueError("result_id is empty")
        if not self.layer_type:
            raise ValueError("layer_type is empty")

    def to_dict(self) -> dict:
        return {
            "identifier": self.identifier,
            "result_id": self.result_id,
            "layer_type": self.layer_type,
            "encoding": self.encoding.token,
            "qualifier": self.qualifier,
            "alt_value_info": self.alt_value_info,
            "alt_value_info_uri": self.alt_value_info_uri,
        }


@dataclass(frozen=True)
class LexField:
    """A lexical field declared in ``<SupportedLexFields>``."""

    identifier: str
    field_type: str

    def __post_init__(self) -> None:
        if not self.identifier:
            raise ValueError("identifier is empty")
        if not self.field_type:
            raise ValueError("field_type is empty")

    def to_dict(self) -> dict:
        return {"identifier": self.identifier, "field_type": self.field_type}


@dataclass(frozen=True)
class ResourceInfo:
    """A searchable resource, possibly with nested sub-resources.

    Language maps (``title``, ``description``, ``institution``) map an
    ``xml:lang`` tag to text. ``description`` and ``institution`` are ``None``
    when the endpoint did not provide them.
    """

    pid: str
    title: Mapping[str, str]
    languages: Tuple[str, ...]
    available_data_views: Tuple[DataView, ...]
    description: Optional[Mapping[str, str]] = None
    institution: Optional[Mapping[str, str]] = None
    landing_page_uri: Optional[str] = None
    availability_restriction: AvailabilityRestriction = AvailabilityRestriction.NONE
    available_layers: Tuple[Layer, ...] = ()
    available_lex_fields: Tuple[LexField, ...] = ()
    sub_resources: Tuple["ResourceInfo", ...] = ()

    def __post_init__(self) -> None:
        if not self.pid:
            raise ValueError("pid is empty")
        if not self.title:
            raise ValueError("title is empty")
        if not self.languages:
            raise ValueError("languages is empty")
        if not self.available_data_views:
            raise ValueError("available_data_views is empty")
        object.__setattr__(self, "title", _freeze_map(self.title))
        object.__setattr__(self, "description", _freeze_map(self.description or None))
        object.__setattr__(self, "institution", _freeze_map(self.institution or None))
        object.__setattr__(self, "languages", tuple(self.languages))
        object.__setattr__(self, "available_data_views", tuple(self.available_data_views))
        object.__setattr__(self, "available_layers", tuple(self.available_layers))
        object.__setattr__(self, "available_lex_fields", tuple(self.available_lex_fields))
        object.__setattr__(self, "sub_resources", tuple(self.sub_resources))

    def get_title(self, language: str) -> Optional[str]:
        return self.title.get(language)

    def get_description(self, language: str) -> Optional[str]:
        return self.description.get(language) if self.description else None

    def get_institution(self, language: str) -> Optional[str]:
        return self.institution.get(language) if self.institution else None

    def supports_language(self, language: str) -> bool:
        return language in self.languages

    @property
    def has_availability_restriction(self) -> bool:
        return self.availability_restriction is not AvailabilityRestriction.NONE

    @property
    def has_sub_resources(self) -> bool:
        return bool(self.sub_resources)

    def iter_resources(self) -> Iterator["ResourceInfo"]:
        """Yield this resource and all descendants depth-first."""
        yield self
        for sub_resource in self.sub_resources:
            yield from sub_resource.iter_resources()

    def to_dict(self) -> dict:
        return {
            "pid": self.pid,
            "title": dict(self.title),
            "description": dict(self.description) if self.description else None,
            "institution": dict(self.institution) if self.institution else None,
            "landing_page_uri": self.landing_page_uri,
            "languages": list(self.languages),
            "availability_restriction": self.availability_restriction.token,
            "available_data_views": [dv.identifier for dv in self.available_data_views],
            "available_layers": [layer.identifier for layer in self.available_layers],
            "available_lex_fields": [lf.identifier for lf in self.available_lex_fields],
            "sub_resources": [sub.to_dict() for sub in self.sub_resources],
        }


@dataclass(frozen=True)
class EndpointDescription:
    """Root of a validated endpoint description."""

    version: int
    capabilities: Tuple[str, ...]
    supported_data_views: Tuple[DataView, ...]
    resources: Tuple[ResourceInfo, ...]
    supported_layers: Tuple[Layer, ...] = ()
    supported_lex_fields: Tuple[LexField, ...] = ()

    def __post_init__(self) -> None:
        if self.version not in constants.SUPPORTED_VERSIONS:
            raise ValueError(f"unsupported version: {self.version}")
        if not self.resources:
            raise ValueError("resources is empty")
        for name in (
            "capabilities",
            "supported_data_views",
            "resources",
            "supported_layers",
            "supported_lex_fields",
        ):
            object.__setattr__(self, name, tuple(getattr(self, name)))

    def has_capability(self, capability: str) -> bool:
        return capability in self.capabilities

    def get_data_view(self, identifier: str) -> Optional[DataView]:
        for data_view in self.supported_data_views:
            if data_view.identifier == identifier:
                return data_view
        return None

    def iter_resources(self) -> Iterator[ResourceInfo]:
        """Yield every resource of the forest depth-first."""
        for resource in self.resources:
            yield from resource.iter_resources()

    def find_resource(self, pid: str) -> Optional[ResourceInfo]:
        for resource in self.iter_resources():
            if resource.pid == pid:
                return resource
        return None

    def to_dict(self) -> dict:
        """Convert the description (recursively) into JSON-ready primitives."""
        return {
            "version": self.version,
            "capabilities": list(self.capabilities),
            "supported_data_views": [dv.to_dict() for dv in self.supported_data_views],
            "supported_layers": [layer.to_dict() for layer in self.supported_layers],
            "supported_lex_fields": [lf.to_dict() for lf in self.supported_lex_fields],
            "resources": [resource.to_dict() for resource in self.resources],
        }
