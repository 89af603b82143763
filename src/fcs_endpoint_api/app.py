"""FastAPI application for inspecting CLARIN-FCS documents.

The service parses documents *posted to it*; it never contacts an endpoint
itself. Request bodies are raw XML.

Quick start (run the server)::

    uvicorn fcs_endpoint_api.run_server:app --reload

Endpoints:

    GET  /health                 Basic health probe
    GET  /config/parser          Active parser configuration (FCS_PARSER_CONFIG)
    POST /endpoint-description   Parse and validate an endpoint description
    POST /dataview?type=MIME     Decode a single data view payload
    POST /record                 Decode a search result record (<Resource>)
    POST /detect-version         Classify the protocol version of a description

Example: validate a description with the streaming strategy::

    curl -X POST "http://localhost:8000/endpoint-description?strategy=streaming&max_depth=2" \
         -H "Content-Type: application/xml" \
         --data-binary @endpoint-description.xml | jq .

Example: decode a hits payload::

    curl -X POST "http://localhost:8000/dataview?type=application/x-clarin-fcs-hits%2Bxml" \
         -H "Content-Type: application/xml" \
         -d '<Result xmlns="http://clarin.eu/fcs/dataview/hits">the <Hit>cat</Hit></Result>'

Error handling:
    * Parse failures return 422 with ``{"error", "detail", "location"}``.
    * Internal errors are wrapped in a JSON 500 payload.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import __version__
from .config import ParserConfig, ParsingStrategy
from .dataview_parsers import DataViewParserRegistry
from .description_parser import EndpointDescriptionParser
from .errors import FCSParseError, InternalParserError
from .record_parser import ResourceRecordParser
from .version_detector import detect_version
from .xml_cursor import XMLCursor

logger = logging.getLogger(__name__)

PARSER_CONFIG = ParserConfig.from_env()
REGISTRY = DataViewParserRegistry.default()

app = FastAPI(
    title="CLARIN-FCS Endpoint API",
    version=__version__,
    description="Parse and validate CLARIN-FCS endpoint descriptions and result payloads",
    docs_url="/docs",
    redoc_url="/redoc",
)


class HealthResponse(BaseModel):
    """Response model for the health probe."""

    status: str = Field(..., description="Service status")
    version: str = Field(..., description="Package version")


class ParserConfigResponse(BaseModel):
    """Response model for parser configuration."""

    max_depth: int = Field(..., description="Maximum resource nesting depth (-1 = unbounded)")
    strategy: str = Field(..., description="Parsing strategy (streaming or document)")
    strict_resource_declarations: Optional[bool] = Field(
        None, description="Explicit strictness override, if any"
    )
    require_resource_declarations: bool = Field(
        ..., description="Effective strictness for per-resource layer/lex field declarations"
    )


class VersionResponse(BaseModel):
    """Response model for version detection."""

    version: str = Field(..., description="Detected version name")
    value: int = Field(..., description="Numeric version (major << 16 | minor)")
    label: str = Field(..., description="Human readable version")


class ErrorResponse(BaseModel):
    """Error payload returned for rejected documents."""

    error: str = Field(..., description="Error class")
    detail: str = Field(..., description="What was wrong")
    location: Optional[str] = Field(None, description="Location in the document")


def _request_config(
    strategy: Optional[ParsingStrategy],
    max_depth: Optional[int],
    strict: Optional[bool],
) -> ParserConfig:
    return ParserConfig(
        max_depth=PARSER_CONFIG.max_depth if max_depth is None else max_depth,
        strategy=strategy or PARSER_CONFIG.strategy,
        strict_resource_declarations=(
            PARSER_CONFIG.strict_resource_declarations if strict is None else strict
        ),
    )


@app.exception_handler(FCSParseError)
async def parse_error_handler(request, exc: FCSParseError):
    """Report rejected documents as 422 with the error location."""
    logger.info("rejected document on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=type(exc).__name__, detail=exc.message, location=exc.location
        ).model_dump(),
    )


@app.exception_handler(InternalParserError)
async def internal_parser_error_handler(request, exc: InternalParserError):
    logger.error("internal parser error on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal Server Error", "detail": str(exc)},
    )


@app.exception_handler(500)
async def internal_error_handler(request, exc):
    """Custom 500 handler for internal errors."""
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal Server Error",
            "detail": "An unexpected error occurred processing your request",
        },
    )


@app.get("/health")
def health() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="healthy", version=__version__)


@app.get("/config/parser")
def get_parser_config() -> ParserConfigResponse:
    """Get the parser configuration loaded from the environment."""
    return ParserConfigResponse(**PARSER_CONFIG.to_dict())


@app.post("/endpoint-description")
async def endpoint_description(
    request: Request,
    strategy: Optional[ParsingStrategy] = Query(None, description="Parsing strategy"),
    max_depth: Optional[int] = Query(
        None, ge=-1, description="Maximum resource nesting depth (-1 = unbounded)"
    ),
    strict: Optional[bool] = Query(
        None, description="Require AvailableLayers/AvailableLexFields on every resource"
    ),
) -> Dict[str, Any]:
    """Parse and validate the posted endpoint description."""
    config = _request_config(strategy, max_depth, strict)
    description = EndpointDescriptionParser(config).parse(await request.body())
    return description.to_dict()


@app.post("/dataview")
async def dataview(
    request: Request,
    mime_type: str = Query(..., alias="type", description="Data view MIME type"),
    pid: Optional[str] = Query(None, description="Persistent identifier of the data view"),
    ref: Optional[str] = Query(None, description="Reference URI of the data view"),
) -> Dict[str, Any]:
    """Decode a data view payload with the registered parsers."""
    cursor = XMLCursor.from_string(await request.body())
    payload = REGISTRY.parse(cursor, mime_type, pid, ref)
    return payload.to_dict()


@app.post("/record")
async def record(request: Request) -> Dict[str, Any]:
    """Decode a search result record."""
    parsed = ResourceRecordParser(REGISTRY).parse(await request.body())
    return parsed.to_dict()


@app.post("/detect-version")
async def detect(request: Request) -> VersionResponse:
    """Detect the protocol version declared by the posted description."""
    version = detect_version(await request.body())
    return VersionResponse(version=version.name, value=version.value, label=version.label)
