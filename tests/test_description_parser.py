import logging
import xml.etree.ElementTree as ET
from pathlib import Path

import pytest

from fcs_endpoint_api import constants
from fcs_endpoint_api.config import ParserConfig
from fcs_endpoint_api.description_parser import (
    EndpointDescriptionParser,
    parse_endpoint_description,
)
from fcs_endpoint_api.errors import (
    LegacyFormatError,
    MalformedInputError,
    SchemaViolationError,
    UnknownValueError,
    UnresolvedReferenceError,
)
from fcs_endpoint_api.models import AvailabilityRestriction, ContentEncoding, DeliveryPolicy

FIXTURES = Path(__file__).resolve().parent / "fixtures" / "endpoint"
V2 = FIXTURES / "description_v2.xml"
V1 = FIXTURES / "description_v1.xml"
LEGACY = FIXTURES / "description_legacy.xml"

HITS_DV = (
    '<SupportedDataView id="hits" delivery-policy="send-by-default">'
    "application/x-clarin-fcs-hits+xml</SupportedDataView>"
)
ADV_DV = (
    '<SupportedDataView id="adv" delivery-policy="send-by-default">'
    "application/x-clarin-fcs-adv+xml</SupportedDataView>"
)
LEX_DV = (
    '<SupportedDataView id="lex" delivery-policy="need-to-request">'
    "application/x-clarin-fcs-lex+xml</SupportedDataView>"
)
WORD_LAYER = '<SupportedLayer id="word" result-id="http://example.org/layers/text">text</SupportedLayer>'
LEMMA_FIELD = '<SupportedLexField id="lemma-field">lemma</SupportedLexField>'


def resource(
    pid="r1",
    titles=(("en", "Corpus"),),
    languages=("eng",),
    data_views="hits",
    availability=None,
    layers=None,
    lex_fields=None,
    children=(),
    extra="",
    landing_pages=(),
):
    parts = [f'<Resource pid="{pid}">']
    for lang, text in titles:
        lang_attr = f' xml:lang="{lang}"' if lang else ""
        parts.append(f"<Title{lang_attr}>{text}</Title>")
    for uri in landing_pages:
        parts.append(f"<LandingPageURI>{uri}</LandingPageURI>")
    if languages is not None:
        parts.append(
            "<Languages>" + "".join(f"<Language>{code}</Language>" for code in languages) + "</Languages>"
        )
    if availability is not None:
        parts.append(f"<AvailabilityRestriction>{availability}</AvailabilityRestriction>")
    if data_views is not None:
        parts.append(f'<AvailableDataViews ref="{data_views}"/>')
    if layers is not None:
        parts.append(f'<AvailableLayers ref="{layers}"/>')
    if lex_fields is not None:
        parts.append(f'<AvailableLexFields ref="{lex_fields}"/>')
    if children:
        parts.append("<Resources>" + "".join(children) + "</Resources>")
    parts.append(extra)
    parts.append("</Resource>")
    return "".join(parts)


def description(
    capabilities=("basic-search",),
    data_views=(HITS_DV,),
    layers=None,
    lex_fields=None,
    resources=None,
    version="2",
    namespace=constants.ED_NS,
    root="EndpointDescription",
):
    xmlns = f' xmlns="{namespace}"' if namespace else ""
    version_attr = f' version="{version}"' if version is not None else ""
    parts = [f"<{root}{xmlns}{version_attr}>"]
    parts.append(
        "<Capabilities>"
        + "".join(
            f"<Capability>{constants.CAPABILITY_PREFIX}{name}</Capability>" for name in capabilities
        )
        + "</Capabilities>"
    )
    parts.append("<SupportedDataViews>" + "".join(data_views) + "</SupportedDataViews>")
    if layers is not None:
        parts.append("<SupportedLayers>" + "".join(layers) + "</SupportedLayers>")
    if lex_fields is not None:
        parts.append("<SupportedLexFields>" + "".join(lex_fields) + "</SupportedLexFields>")
    if resources is None:
        resources = (resource(),)
    parts.append("<Resources>" + "".join(resources) + "</Resources>")
    parts.append(f"</{root}>")
    return "".join(parts)


@pytest.fixture(params=["streaming", "document"])
def strategy(request):
    return request.param


def parse(source, strategy, **overrides):
    return parse_endpoint_description(source, strategy=strategy, **overrides)


# ---------------- Well-formed descriptions ---------------- #


def test_parses_full_description(strategy):
    ed = parse(V2, strategy)

    assert ed.version == 2
    assert ed.capabilities == (
        constants.CAPABILITY_BASIC_SEARCH,
        constants.CAPABILITY_ADVANCED_SEARCH,
        constants.CAPABILITY_AUTHENTICATED_SEARCH,
        constants.CAPABILITY_LEX_SEARCH,
    )
    assert [dv.identifier for dv in ed.supported_data_views] == ["hits", "adv", "lex"]
    assert ed.get_data_view("lex").delivery_policy is DeliveryPolicy.NEED_TO_REQUEST

    word, lemma, pos = ed.supported_layers
    assert word.encoding is ContentEncoding.VALUE
    assert lemma.layer_type == "lemma"
    assert pos.encoding is ContentEncoding.EMPTY
    assert pos.qualifier == "ud"
    assert pos.alt_value_info == "Universal Dependencies tags"
    assert pos.alt_value_info_uri == "https://universaldependencies.org/u/pos/"
    assert [lf.field_type for lf in ed.supported_lex_fields] == ["lemma", "pos"]

    assert [r.pid for r in ed.resources] == [
        "hdl:11022/0000-0000-0001",
        "hdl:11022/0000-0000-0005",
    ]
    corpus = ed.resources[0]
    assert corpus.get_title("en") == "Reference Corpus"
    assert corpus.get_title("de") == "Referenzkorpus"
    assert corpus.get_description("en") == "A balanced reference corpus."
    assert corpus.get_institution("en") == "Example Institute"
    assert corpus.landing_page_uri == "http://endpoint.example.org/corpus"
    assert corpus.languages == ("deu", "eng")
    assert corpus.availability_restriction is AvailabilityRestriction.AUTH_ONLY
    assert [dv.identifier for dv in corpus.available_data_views] == ["hits", "adv"]
    assert [layer.identifier for layer in corpus.available_layers] == ["word", "lemma", "pos"]
    assert [lf.identifier for lf in corpus.available_lex_fields] == ["lex-lemma"]

    assert [r.pid for r in corpus.sub_resources] == [
        "hdl:11022/0000-0000-0002",
        "hdl:11022/0000-0000-0004",
    ]
    assert corpus.sub_resources[0].sub_resources[0].pid == "hdl:11022/0000-0000-0003"
    assert len(list(ed.iter_resources())) == 5

    dictionary = ed.resources[1]
    assert dictionary.description is None
    assert not dictionary.has_availability_restriction


def test_strategies_produce_equal_models():
    for path in (V1, V2):
        streamed = parse(path, "streaming")
        document = parse(path, "document")
        assert streamed == document
        assert streamed.to_dict() == document.to_dict()


def test_parses_version_1_description(strategy):
    ed = parse(V1, strategy)
    assert ed.version == 1
    assert ed.capabilities == (constants.CAPABILITY_BASIC_SEARCH,)
    assert ed.supported_layers == ()
    assert ed.supported_lex_fields == ()
    (corpus,) = ed.resources
    assert corpus.pid == "http://hdl.handle.net/1234/corpus-a"
    assert corpus.languages == ("nld",)
    assert not corpus.has_sub_resources


@pytest.mark.parametrize(
    "max_depth,expected",
    [
        (0, ["0001", "0005"]),
        (1, ["0001", "0005"]),
        (2, ["0001", "0002", "0004", "0005"]),
        (3, ["0001", "0002", "0003", "0004", "0005"]),
        (-1, ["0001", "0002", "0003", "0004", "0005"]),
    ],
)
def test_depth_bound(strategy, max_depth, expected):
    ed = parse(V2, strategy, max_depth=max_depth)
    assert [r.pid.rsplit("-", 1)[1] for r in ed.iter_resources()] == expected


def test_skipped_sub_resources_are_not_validated(strategy):
    # the nested resource reuses a pid and would fail if it were parsed
    child = resource(pid="r1")
    xml = description(resources=(resource(pid="r1", children=(child,)),))
    ed = parse(xml, strategy, max_depth=1)
    assert [r.pid for r in ed.iter_resources()] == ["r1"]
    with pytest.raises(SchemaViolationError, match="pid 'r1' already exists"):
        parse(xml, strategy)


def test_accepts_element_and_tree_sources(strategy):
    root = ET.parse(V2).getroot()
    from_element = parse(root, strategy)
    from_tree = parse(ET.ElementTree(root), strategy)
    from_bytes = parse(V2.read_bytes(), strategy)
    assert from_element == from_tree == from_bytes


def test_parser_instance_is_reusable():
    parser = EndpointDescriptionParser(ParserConfig(strategy="streaming"))
    first = parser.parse(V1)
    second = parser.parse(V1.read_text(encoding="utf-8"))
    assert first == second


def test_extension_elements_are_skipped(strategy):
    extra = '<x:Extra xmlns:x="urn:ext"><x:Nested>ignored</x:Nested></x:Extra>'
    ed = parse(description(resources=(resource(extra=extra),)), strategy)
    assert ed.resources[0].pid == "r1"


def test_stray_text_in_resource_is_rejected():
    xml = description(resources=(resource(extra="stray text"),))
    with pytest.raises(MalformedInputError, match="Unexpected text content"):
        parse(xml, "streaming")


# ---------------- Root element ---------------- #


def test_legacy_namespace_is_rejected(strategy):
    with pytest.raises(LegacyFormatError):
        parse(LEGACY, strategy)


@pytest.mark.parametrize("namespace", ["urn:foreign", None])
def test_foreign_or_missing_namespace_is_rejected(strategy, namespace):
    with pytest.raises(SchemaViolationError, match="must use namespace"):
        parse(description(namespace=namespace), strategy)


def test_wrong_root_element(strategy):
    with pytest.raises(MalformedInputError, match="Expected root element"):
        parse(description(root="Description"), strategy)


@pytest.mark.parametrize("version", [None, "3", "two"])
def test_invalid_version(strategy, version):
    with pytest.raises(SchemaViolationError, match="version"):
        parse(description(version=version), strategy)


def test_malformed_xml(strategy):
    with pytest.raises(MalformedInputError) as excinfo:
        parse(
            f'<EndpointDescription xmlns="{constants.ED_NS}" version="2">'
            "<Capabilities></EndpointDescription>",
            strategy,
        )
    assert excinfo.value.location.startswith("line 1")


# ---------------- Capabilities ---------------- #


def test_basic_search_is_required(strategy):
    xml = description(capabilities=("advanced-search",), data_views=(HITS_DV, ADV_DV), layers=(WORD_LAYER,))
    with pytest.raises(SchemaViolationError, match="basic-search"):
        parse(xml, strategy)


def test_capability_prefix_is_required(strategy):
    xml = description().replace(
        "</Capabilities>", "<Capability>http://example.org/capability/x</Capability></Capabilities>"
    )
    with pytest.raises(SchemaViolationError, match="must start with prefix"):
        parse(xml, strategy)


def test_duplicate_capability_is_dropped(strategy, caplog):
    with caplog.at_level(logging.WARNING):
        ed = parse(description(capabilities=("basic-search", "basic-search")), strategy)
    assert ed.capabilities == (constants.CAPABILITY_BASIC_SEARCH,)
    assert "already declared" in caplog.text


def test_version_1_with_advanced_search_warns(strategy, caplog):
    xml = description(
        version="1",
        capabilities=("basic-search", "advanced-search"),
        data_views=(HITS_DV, ADV_DV),
        layers=(WORD_LAYER,),
        resources=(resource(layers="word"),),
    )
    with caplog.at_level(logging.WARNING):
        ed = parse(xml, strategy)
    assert ed.version == 1
    assert "version FCS 1.0" in caplog.text
    assert "<SupportedLayers>" in caplog.text


# ---------------- Declarations ---------------- #


def test_hits_data_view_is_required(strategy):
    xml = description(data_views=(ADV_DV,))
    with pytest.raises(SchemaViolationError, match="generic hits data view"):
        parse(xml, strategy)


def test_advanced_search_requires_adv_data_view(strategy):
    xml = description(
        capabilities=("basic-search", "advanced-search"),
        layers=(WORD_LAYER,),
        resources=(resource(layers="word"),),
    )
    with pytest.raises(SchemaViolationError, match="advanced data view"):
        parse(xml, strategy)


def test_advanced_search_requires_layers(strategy):
    xml = description(capabilities=("basic-search", "advanced-search"), data_views=(HITS_DV, ADV_DV))
    with pytest.raises(SchemaViolationError, match="must declare all supported layers"):
        parse(xml, strategy)


def test_empty_layers_block(strategy):
    xml = description(
        capabilities=("basic-search", "advanced-search"), data_views=(HITS_DV, ADV_DV), layers=()
    )
    with pytest.raises(SchemaViolationError, match="at least one <SupportedLayer>"):
        parse(xml, strategy)


def test_superfluous_layers_warn(strategy, caplog):
    with caplog.at_level(logging.WARNING):
        parse(description(layers=(WORD_LAYER,)), strategy)
    assert "superfluously declared supported layers" in caplog.text


def test_lex_search_requires_lex_fields(strategy):
    xml = description(capabilities=("basic-search", "lex-search"), data_views=(HITS_DV, LEX_DV))
    with pytest.raises(SchemaViolationError, match="must declare all supported lex fields"):
        parse(xml, strategy)


def test_lex_search_without_lex_data_view_warns(strategy, caplog):
    xml = description(
        capabilities=("basic-search", "lex-search"),
        lex_fields=(LEMMA_FIELD,),
        resources=(resource(lex_fields="lemma-field"),),
    )
    with caplog.at_level(logging.WARNING):
        ed = parse(xml, strategy)
    assert ed.resources[0].available_lex_fields[0].field_type == "lemma"
    assert "does not declare the lex data view" in caplog.text


def test_identifiers_are_unique_across_blocks(strategy):
    layer = '<SupportedLayer id="hits" result-id="http://example.org/layers/text">text</SupportedLayer>'
    xml = description(
        capabilities=("basic-search", "advanced-search"),
        data_views=(HITS_DV, ADV_DV),
        layers=(layer,),
    )
    with pytest.raises(SchemaViolationError, match="'hits' of element <SupportedLayer> was already declared"):
        parse(xml, strategy)


def test_duplicate_mime_type(strategy):
    other = HITS_DV.replace('id="hits"', 'id="hits2"')
    with pytest.raises(SchemaViolationError, match="already declared"):
        parse(description(data_views=(HITS_DV, other)), strategy)


@pytest.mark.parametrize("identifier", ["a b", "a,b", "a;b"])
def test_forbidden_identifier_characters(strategy, identifier):
    data_view = HITS_DV.replace('id="hits"', f'id="{identifier}"')
    with pytest.raises(SchemaViolationError, match="may not contain"):
        parse(description(data_views=(data_view,)), strategy)


def test_unknown_delivery_policy(strategy):
    data_view = HITS_DV.replace("send-by-default", "always")
    with pytest.raises(UnknownValueError) as excinfo:
        parse(description(data_views=(data_view,)), strategy)
    assert excinfo.value.value == "always"


def test_unknown_layer_encoding(strategy):
    layer = WORD_LAYER.replace("<SupportedLayer ", '<SupportedLayer type="binary" ')
    with pytest.raises(UnknownValueError):
        parse(description(layers=(layer,)), strategy)


def test_layer_result_id_must_be_uri(strategy):
    layer = WORD_LAYER.replace("http://example.org/layers/text", "not a uri")
    with pytest.raises(SchemaViolationError, match="'result-id' must be encoded as URIs"):
        parse(description(layers=(layer,)), strategy)


# ---------------- Resources ---------------- #


def test_unresolved_data_view_reference(strategy):
    xml = description(resources=(resource(data_views="hits adv"),))
    with pytest.raises(UnresolvedReferenceError) as excinfo:
        parse(xml, strategy)
    assert excinfo.value.reference == "adv"


def test_unresolved_layer_reference(strategy):
    xml = description(
        capabilities=("basic-search", "advanced-search"),
        data_views=(HITS_DV, ADV_DV),
        layers=(WORD_LAYER,),
        resources=(resource(layers="word lemma"),),
    )
    with pytest.raises(UnresolvedReferenceError, match="'lemma'"):
        parse(xml, strategy)


def test_duplicate_pid_across_branches(strategy):
    xml = description(
        resources=(
            resource(pid="a", children=(resource(pid="shared"),)),
            resource(pid="shared"),
        )
    )
    with pytest.raises(SchemaViolationError, match="pid 'shared' already exists"):
        parse(xml, strategy)


def test_resource_requires_pid(strategy):
    xml = description(resources=(resource().replace(' pid="r1"', ""),))
    with pytest.raises(SchemaViolationError, match="'pid' attribute"):
        parse(xml, strategy)


def test_resource_requires_available_data_views(strategy):
    with pytest.raises(SchemaViolationError, match="Missing element <AvailableDataViews>"):
        parse(description(resources=(resource(data_views=None),)), strategy)


def test_resource_requires_title(strategy):
    with pytest.raises(SchemaViolationError, match="at least one <Title>"):
        parse(description(resources=(resource(titles=()),)), strategy)


def test_title_requires_language(strategy):
    with pytest.raises(SchemaViolationError, match="xml:lang"):
        parse(description(resources=(resource(titles=((None, "Corpus"),)),)), strategy)


def test_title_without_english_warns(strategy, caplog):
    xml = description(resources=(resource(titles=(("de", "Korpus"), ("de", "Zweiter"))),))
    with caplog.at_level(logging.WARNING):
        ed = parse(xml, strategy)
    assert dict(ed.resources[0].title) == {"de": "Korpus"}
    assert "with language 'de' already exists" in caplog.text
    assert "language 'en' is mandatory" in caplog.text


def test_last_landing_page_wins(strategy):
    pages = ("http://example.org/old", "http://example.org/new")
    ed = parse(description(resources=(resource(landing_pages=pages),)), strategy)
    corpus = ed.resources[0]
    assert corpus.landing_page_uri == "http://example.org/new"
    assert corpus.languages == ("eng",)


def test_declared_encoding_of_text_input(strategy):
    xml = '<?xml version="1.0" encoding="ISO-8859-1"?>' + description(
        resources=(resource(titles=(("en", "Wörterbuch"),)),)
    )
    assert parse(xml, strategy).resources[0].get_title("en") == "Wörterbuch"
    latin1 = parse(xml.encode("latin-1"), strategy)
    assert latin1.resources[0].get_title("en") == "Wörterbuch"


@pytest.mark.parametrize(
    "languages,message",
    [
        (("en",), "three letter"),
        (("eng", "eng"), "already defined"),
        ((), "at least one <Language>"),
        (None, "Missing element <Languages>"),
    ],
)
def test_language_rules(strategy, languages, message):
    with pytest.raises(SchemaViolationError, match=message):
        parse(description(resources=(resource(languages=languages),)), strategy)


def test_empty_sub_resources_block(strategy):
    xml = description(resources=(resource(extra="<Resources></Resources>"),))
    with pytest.raises(SchemaViolationError, match="at least one <Resource>"):
        parse(xml, strategy)


def test_availability_restriction_requires_authenticated_search(strategy):
    xml = description(resources=(resource(availability="authOnly"),))
    with pytest.raises(SchemaViolationError, match="authenticated-search"):
        parse(xml, strategy)


def test_unknown_availability_restriction(strategy):
    xml = description(
        capabilities=("basic-search", "authenticated-search"),
        resources=(resource(availability="everyone"),),
    )
    with pytest.raises(UnknownValueError):
        parse(xml, strategy)


def test_personal_identifier_restriction(strategy):
    xml = description(
        capabilities=("basic-search", "authenticated-search"),
        resources=(resource(availability="personalIdentifier"),),
    )
    ed = parse(xml, strategy)
    assert ed.resources[0].availability_restriction is AvailabilityRestriction.PERSONAL_IDENTIFIER


# ---------------- Missing per-resource declarations ---------------- #

ADVANCED_WITHOUT_AVAILABLE_LAYERS = description(
    capabilities=("basic-search", "advanced-search"),
    data_views=(HITS_DV, ADV_DV),
    layers=(WORD_LAYER,),
)


def test_streaming_requires_available_layers_by_default():
    with pytest.raises(SchemaViolationError, match="<AvailableLayers> on every resource"):
        parse(ADVANCED_WITHOUT_AVAILABLE_LAYERS, "streaming")


def test_document_tolerates_missing_available_layers_by_default():
    ed = parse(ADVANCED_WITHOUT_AVAILABLE_LAYERS, "document")
    assert ed.resources[0].available_layers == ()


def test_strictness_can_be_overridden():
    ed = parse(ADVANCED_WITHOUT_AVAILABLE_LAYERS, "streaming", strict_resource_declarations=False)
    assert ed.resources[0].available_layers == ()
    with pytest.raises(SchemaViolationError):
        parse(ADVANCED_WITHOUT_AVAILABLE_LAYERS, "document", strict_resource_declarations=True)
