"""
CLI commands for inspecting CLARIN-FCS documents.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from .config import UNBOUNDED_DEPTH, ParserConfig, ParsingStrategy
from .dataview_parsers import DataViewParserRegistry
from .description_parser import EndpointDescriptionParser
from .errors import FCSParseError
from .record_parser import ResourceRecordParser
from .version_detector import detect_version
from .xml_cursor import XMLCursor

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def _print_json(data):
    print(json.dumps(data, indent=2, ensure_ascii=False))


def _print_resource(resource, indent=1):
    title = resource.get_title("en") or next(iter(resource.title.values()))
    views = ",".join(dv.identifier for dv in resource.available_data_views)
    print(f"{'  ' * indent}- {resource.pid}: {title} [{' '.join(resource.languages)}] ({views})")
    for sub_resource in resource.sub_resources:
        _print_resource(sub_resource, indent + 1)


def cmd_describe(args):
    """Parse and validate an endpoint description."""
    setup_logging(args.verbose)

    config = ParserConfig(
        max_depth=args.max_depth,
        strategy=args.strategy,
        strict_resource_declarations=args.strict,
    )
    try:
        description = EndpointDescriptionParser(config).parse(Path(args.file))
    except FCSParseError as e:
        print(f"✗ Invalid endpoint description: {e}")
        return 1

    if args.json:
        _print_json(description.to_dict())
        return 0

    print(f"✓ Endpoint description version {description.version}")
    print("Capabilities:")
    for capability in description.capabilities:
        print(f"  - {capability}")
    print("Supported data views:")
    for data_view in description.supported_data_views:
        print(f"  - {data_view.identifier}: {data_view.mime_type} ({data_view.delivery_policy.token})")
    if description.supported_layers:
        print("Supported layers:")
        for layer in description.supported_layers:
            print(f"  - {layer.identifier}: {layer.layer_type} ({layer.result_id})")
    if description.supported_lex_fields:
        print("Supported lex fields:")
        for lex_field in description.supported_lex_fields:
            print(f"  - {lex_field.identifier}: {lex_field.field_type}")
    print(f"Resources ({sum(1 for _ in description.iter_resources())}):")
    for resource in description.resources:
        _print_resource(resource)
    return 0


def cmd_dataview(args):
    """Decode a single data view payload."""
    setup_logging(args.verbose)

    registry = DataViewParserRegistry.default(unknown_as_string=args.as_string)
    try:
        cursor = XMLCursor.from_file(Path(args.file))
        payload = registry.parse(cursor, args.type, args.pid, args.ref)
    except FCSParseError as e:
        print(f"✗ Invalid data view: {e}")
        return 1
    _print_json(payload.to_dict())
    return 0


def cmd_record(args):
    """Decode a search result record."""
    setup_logging(args.verbose)

    parser = ResourceRecordParser(legacy_compat=args.legacy_compat)
    try:
        record = parser.parse(Path(args.file))
    except FCSParseError as e:
        print(f"✗ Invalid record: {e}")
        return 1
    _print_json(record.to_dict())
    return 0


def cmd_detect(args):
    """Detect the protocol version of an endpoint description."""
    setup_logging(args.verbose)

    try:
        version = detect_version(Path(args.file))
    except FCSParseError as e:
        print(f"✗ Cannot read document: {e}")
        return 1
    print(f"{version.name} ({version.label})")
    return 0


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="CLARIN-FCS endpoint description and data view inspection CLI",
        prog="fcs-endpoint"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging"
    )

    subparsers = parser.add_subparsers(
        dest="command",
        help="Available commands"
    )

    # Describe command
    describe_parser = subparsers.add_parser(
        "describe",
        help="Parse and validate an endpoint description"
    )
    describe_parser.add_argument("file", help="Endpoint description XML file")
    describe_parser.add_argument(
        "--strategy",
        default=ParsingStrategy.DOCUMENT.value,
        choices=[s.value for s in ParsingStrategy],
        help="Parsing strategy (default: document)"
    )
    describe_parser.add_argument(
        "--max-depth",
        type=int,
        default=UNBOUNDED_DEPTH,
        help="Maximum resource nesting depth to parse (default: unbounded)"
    )
    strictness = describe_parser.add_mutually_exclusive_group()
    strictness.add_argument(
        "--strict",
        dest="strict",
        action="store_const",
        const=True,
        default=None,
        help="Require AvailableLayers/AvailableLexFields on every resource"
    )
    strictness.add_argument(
        "--lenient",
        dest="strict",
        action="store_const",
        const=False,
        help="Only log resources missing AvailableLayers/AvailableLexFields"
    )
    describe_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the parsed description as JSON"
    )
    describe_parser.set_defaults(func=cmd_describe)

    # Dataview command
    dataview_parser = subparsers.add_parser(
        "dataview",
        help="Decode a data view payload"
    )
    dataview_parser.add_argument("file", help="Payload XML file")
    dataview_parser.add_argument("--type", required=True, help="Data view MIME type")
    dataview_parser.add_argument("--pid", help="Data view persistent identifier")
    dataview_parser.add_argument("--ref", help="Data view reference")
    dataview_parser.add_argument(
        "--as-string",
        action="store_true",
        help="Return unknown data views as text instead of an element tree"
    )
    dataview_parser.set_defaults(func=cmd_dataview)

    # Record command
    record_parser = subparsers.add_parser(
        "record",
        help="Decode a search result record"
    )
    record_parser.add_argument("file", help="Record XML file")
    record_parser.add_argument(
        "--legacy-compat",
        action="store_true",
        help="Accept legacy records without a deprecation warning"
    )
    record_parser.set_defaults(func=cmd_record)

    # Detect command
    detect_parser = subparsers.add_parser(
        "detect",
        help="Detect the protocol version of an endpoint description"
    )
    detect_parser.add_argument("file", help="Endpoint description XML file")
    detect_parser.set_defaults(func=cmd_detect)

    args = parser.parse_args(argv)

    if not hasattr(args, 'func'):
        parser.print_help()
        return 1

    try:
        return args.func(args)
    except (OSError, ValueError) as e:
        print(f"✗ {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
