"""Offline detection of the protocol version an endpoint description declares.

Only the root element is inspected, so documents that would fail full
validation can still be classified. No network requests are made; callers
fetch the description themselves.
"""

from __future__ import annotations

import logging
from enum import Enum

from . import constants
from .errors import MalformedInputError
from .xml_cursor import XMLSource, as_cursor

logger = logging.getLogger(__name__)


class DetectedVersion(Enum):
    """Detected protocol version; values are ``major << 16 | minor``."""

    UNKNOWN = -1
    LEGACY = 0
    FCS_1_0 = (1 << 16) | 0
    FCS_2_0 = (2 << 16) | 0

    @property
    def label(self) -> str:
        if self is DetectedVersion.UNKNOWN:
            return "unknown"
        if self is DetectedVersion.LEGACY:
            return "legacy"
        return f"{self.value >> 16}.{self.value & 0xFFFF}"


def detect_version(source: XMLSource) -> DetectedVersion:
    """Classify the description in ``source``.

    Returns ``LEGACY`` for the deprecated resource-info namespace,
    ``FCS_1_0``/``FCS_2_0`` for a current description declaring version 1 or 2,
    and ``UNKNOWN`` otherwise.

    Raises:
        MalformedInputError: If ``source`` is not well-formed XML.
    """
    cursor = as_cursor(source)
    if not cursor.peek_start():
        raise MalformedInputError("Document has no root element", cursor.location)
    namespace, local_name = cursor.current_name

    if namespace == constants.ED_LEGACY_NS:
        logger.debug("legacy resource-info namespace detected")
        return DetectedVersion.LEGACY
    if namespace != constants.ED_NS or local_name != constants.ED_ROOT_ELEMENT:
        logger.debug("unrecognized root element {%s}%s", namespace, local_name)
        return DetectedVersion.UNKNOWN

    version = cursor.read_attribute("version")
    if version == str(constants.VERSION_1):
        return DetectedVersion.FCS_1_0
    if version == str(constants.VERSION_2):
        return DetectedVersion.FCS_2_0
    logger.debug("unsupported version attribute: %r", version)
    return DetectedVersion.UNKNOWN
