"""Wire-level identifiers of the CLARIN-FCS endpoint description and data views.

Every namespace, capability URI, MIME type and enumerated attribute token the
parsers recognize lives here so that parsers, the validation core and the HTTP
layer agree on a single spelling.
"""

from __future__ import annotations

# Endpoint description namespaces
ED_NS = "http://clarin.eu/fcs/endpoint-description"
ED_LEGACY_NS = "http://clarin.eu/fcs/1.0/resource-info"
XML_NS = "http://www.w3.org/XML/1998/namespace"

ED_ROOT_ELEMENT = "EndpointDescription"

VERSION_1 = 1
VERSION_2 = 2
SUPPORTED_VERSIONS = (VERSION_1, VERSION_2)

# Capabilities
CAPABILITY_PREFIX = "http://clarin.eu/fcs/capability/"
CAPABILITY_BASIC_SEARCH = CAPABILITY_PREFIX + "basic-search"
CAPABILITY_ADVANCED_SEARCH = CAPABILITY_PREFIX + "advanced-search"
CAPABILITY_AUTHENTICATED_SEARCH = CAPABILITY_PREFIX + "authenticated-search"
CAPABILITY_LEX_SEARCH = CAPABILITY_PREFIX + "lex-search"

# Data view MIME types
MIMETYPE_HITS_DATAVIEW = "application/x-clarin-fcs-hits+xml"
MIMETYPE_ADV_DATAVIEW = "application/x-clarin-fcs-adv+xml"
MIMETYPE_LEX_DATAVIEW = "application/x-clarin-fcs-lex+xml"

# Data view payload namespaces
FCS_HITS_NS = "http://clarin.eu/fcs/dataview/hits"
FCS_LEX_NS = "http://clarin.eu/fcs/dataview/lex"

# Result record namespaces
FCS_RECORD_NS = "http://clarin.eu/fcs/resource"
FCS_LEGACY_RECORD_NS = "http://clarin.eu/fcs/1.0"

LANG_EN = "en"

# Attribute / content tokens
POLICY_SEND_DEFAULT = "send-by-default"
POLICY_NEED_REQUEST = "need-to-request"
LAYER_ENCODING_VALUE = "value"
LAYER_ENCODING_EMPTY = "empty"
AVAILABILITY_RESTRICTION_AUTHONLY = "authOnly"
AVAILABILITY_RESTRICTION_PERSONALID = "personalIdentifier"

# Layer types defined by the protocol; anything else should use the "x-" prefix
KNOWN_LAYER_TYPES = frozenset({"text", "lemma", "pos", "orth", "norm", "phonetic"})
CUSTOM_LAYER_TYPE_PREFIX = "x-"

# Characters not allowed in SupportedDataView/Layer/LexField identifiers
FORBIDDEN_ID_CHARACTERS = (" ", ",", ";")
