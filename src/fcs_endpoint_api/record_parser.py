"""Parser for a single CLARIN-FCS search result record.

A result record wraps the data views of one hit in a ``<Resource>`` element,
optionally grouped into ``<ResourceFragment>`` elements::

    <fcs:Resource xmlns:fcs="http://clarin.eu/fcs/resource" pid="...">
      <fcs:DataView type="application/x-clarin-fcs-hits+xml">
        <hits:Result xmlns:hits="http://clarin.eu/fcs/dataview/hits">...</hits:Result>
      </fcs:DataView>
      <fcs:ResourceFragment ref="...">
        <fcs:DataView type="...">...</fcs:DataView>
      </fcs:ResourceFragment>
    </fcs:Resource>

The payload of every ``<DataView>`` is decoded by the
:class:`~fcs_endpoint_api.dataview_parsers.DataViewParserRegistry`.
Records in the deprecated ``http://clarin.eu/fcs/1.0`` namespace are accepted
with a warning.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from . import constants
from .dataview_parsers import DataViewParserRegistry
from .dataviews import DataViewPayload
from .errors import MalformedInputError, SchemaViolationError
from .xml_cursor import XMLCursor, XMLSource, as_cursor

logger = logging.getLogger(__name__)

RECORD_NAMESPACES = (constants.FCS_RECORD_NS, constants.FCS_LEGACY_RECORD_NS)


@dataclass(frozen=True)
class ResourceFragment:
    pid: Optional[str]
    ref: Optional[str]
    data_views: Tuple[DataViewPayload, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "data_views", tuple(self.data_views))

    def to_dict(self) -> dict:
        return {
            "pid": self.pid,
            "ref": self.ref,
            "data_views": [dv.to_dict() for dv in self.data_views],
        }


@dataclass(frozen=True)
class ResourceRecord:
    """A decoded result record.

    Attributes:
        record_schema: Namespace the record was written in.
    """

    pid: str
    ref: Optional[str]
    data_views: Tuple[DataViewPayload, ...] = ()
    fragments: Tuple[ResourceFragment, ...] = ()
    record_schema: str = constants.FCS_RECORD_NS

    def __post_init__(self) -> None:
        object.__setattr__(self, "data_views", tuple(self.data_views))
        object.__setattr__(self, "fragments", tuple(self.fragments))

    @property
    def is_legacy(self) -> bool:
        return self.record_schema == constants.FCS_LEGACY_RECORD_NS

    @property
    def has_fragments(self) -> bool:
        return bool(self.fragments)

    def iter_data_views(self):
        """Yield the record's own data views followed by those of its fragments."""
        yield from self.data_views
        for fragment in self.fragments:
            yield from fragment.data_views

    def to_dict(self) -> dict:
        return {
            "pid": self.pid,
            "ref": self.ref,
            "record_schema": self.record_schema,
            "data_views": [dv.to_dict() for dv in self.data_views],
            "fragments": [fragment.to_dict() for fragment in self.fragments],
        }


class ResourceRecordParser:
    """Parse ``<Resource>`` result records.

    Args:
        registry: Data view parsers used for the payloads; defaults to
            :meth:`DataViewParserRegistry.default`.
        legacy_compat: Accept legacy records silently (no deprecation warning).
    """

    def __init__(
        self,
        registry: Optional[DataViewParserRegistry] = None,
        legacy_compat: bool = False,
    ) -> None:
        self.registry = registry or DataViewParserRegistry.default()
        self.legacy_compat = legacy_compat

    def parse(self, source: XMLSource) -> ResourceRecord:
        """Parse one record; the cursor ends right after ``</Resource>``."""
        cursor = as_cursor(source)
        if not cursor.peek_start():
            raise MalformedInputError("Expected element <Resource>", cursor.location)
        ns, local_name = cursor.current_name
        if ns not in RECORD_NAMESPACES:
            found = f"'{ns}'" if ns else "no namespace"
            raise SchemaViolationError(
                f"Record must use namespace '{constants.FCS_RECORD_NS}', found {found}",
                cursor.location,
            )
        if local_name != "Resource":
            raise MalformedInputError(
                f"Expected element <Resource>, found <{local_name}>", cursor.location
            )
        if ns == constants.FCS_LEGACY_RECORD_NS and not self.legacy_compat:
            logger.warning(
                "The endpoint supplied data in the deprecated CLARIN-FCS record data "
                "format. Please upgrade to the current record format as soon as possible."
            )

        location = cursor.location
        pid = cursor.read_attribute("pid", required=True)
        ref = cursor.read_attribute("ref")
        cursor.advance()
        logger.debug("parsing record for resource pid=%s, ref=%s", pid, ref)

        data_views = self._parse_data_views(cursor, ns, required=False)
        fragments: List[ResourceFragment] = []
        while cursor.read_start(ns, "ResourceFragment", stay=True):
            fragment_pid = cursor.read_attribute("pid")
            fragment_ref = cursor.read_attribute("ref")
            cursor.advance()
            fragments.append(
                ResourceFragment(
                    pid=fragment_pid,
                    ref=fragment_ref,
                    data_views=self._parse_data_views(cursor, ns, required=True),
                )
            )
            cursor.read_end(ns, "ResourceFragment")
        cursor.read_end(ns, "Resource")

        if not data_views and not fragments:
            raise SchemaViolationError(
                "Element <Resource> must contain at least one <DataView> or <ResourceFragment>",
                location,
            )
        return ResourceRecord(
            pid=pid, ref=ref, data_views=data_views, fragments=fragments, record_schema=ns
        )

    def _parse_data_views(
        self, cursor: XMLCursor, ns: str, required: bool
    ) -> List[DataViewPayload]:
        data_views: List[DataViewPayload] = []
        while cursor.read_start(ns, "DataView", required=required and not data_views, stay=True):
            mime_type = cursor.read_attribute("type", required=True)
            pid = cursor.read_attribute("pid")
            ref = cursor.read_attribute("ref")
            cursor.advance()
            data_views.append(self.registry.parse(cursor, mime_type, pid, ref))
            cursor.read_end(ns, "DataView")
        return data_views


def parse_record(source: XMLSource, registry: Optional[DataViewParserRegistry] = None) -> ResourceRecord:
    """Convenience wrapper around :class:`ResourceRecordParser`."""
    return ResourceRecordParser(registry).parse(source)
