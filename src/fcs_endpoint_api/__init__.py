"""FCS Endpoint API
==================

Parsing and validation toolkit for **CLARIN-FCS** endpoint descriptions and
search result payloads, with a FastAPI inspection service and a CLI on top.

Key capabilities
----------------
- Parse endpoint descriptions into an immutable
  :class:`~fcs_endpoint_api.models.EndpointDescription` with either a
  streaming or a whole-document strategy, both validated by one shared core.
- Depth-bounded parsing of nested resource trees.
- Pluggable, priority ordered Data View parsers (Hits, Hits with lex
  annotations, Lex, generic fallback).
- Result record decoding and offline protocol version detection.

Design principles
-----------------
1. **One rule set** - both parsing strategies feed
   :class:`~fcs_endpoint_api.validation.DescriptionBuilder`.
2. **Typed failures** - every fatal problem raises a subclass of
   :class:`~fcs_endpoint_api.errors.FCSParseError` carrying a document
   location; recommendations that are not met are only logged.
3. **No I/O beyond reading input** - documents are handed in by the caller.

Minimal quick start
-------------------
>>> from fcs_endpoint_api import parse_endpoint_description
>>> description = parse_endpoint_description(xml_text, strategy="streaming")
>>> [resource.pid for resource in description.iter_resources()]

FastAPI application instance (for ASGI servers like uvicorn):
>>> from fcs_endpoint_api.app import app  # noqa: F401
"""

__version__ = "0.1.0"

from .config import ParserConfig, ParsingStrategy
from .dataview_parsers import DataViewParserRegistry
from .description_parser import EndpointDescriptionParser, parse_endpoint_description
from .errors import FCSParseError
from .models import EndpointDescription, ResourceInfo
from .record_parser import ResourceRecordParser
from .version_detector import DetectedVersion, detect_version

__all__ = [
    "DataViewParserRegistry",
    "DetectedVersion",
    "EndpointDescription",
    "EndpointDescriptionParser",
    "FCSParseError",
    "ParserConfig",
    "ParsingStrategy",
    "ResourceInfo",
    "ResourceRecordParser",
    "detect_version",
    "parse_endpoint_description",
]
