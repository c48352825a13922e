from __future__ import annotations

import pytest

from card_vault.soap.response import ParsedResponse, RegexResponseParser, XmlResponseParser


def test_regex_parser_reads_standard_response(make_soap_response):
    parsed = RegexResponseParser().parse(make_soap_response("0", "Success", "1001"))
    assert parsed == ParsedResponse(err_code="0", err_message="Success", card_id="1001")


def test_regex_parser_tolerates_prefixes_and_attributes():
    text = '<a:ErrCode xsi:type="string"> 3 </a:ErrCode><a:ErrMessage>Duplicate</a:ErrMessage><a:ID>7</a:ID>'
    parsed = RegexResponseParser().parse(text)
    assert parsed.err_code == "3"
    assert parsed.err_message == "Duplicate"
    assert parsed.card_id == "7"


def test_regex_parser_prefers_card_id_over_id():
    parsed = RegexResponseParser().parse("<ID>1</ID><CardID>2</CardID>")
    assert parsed.card_id == "2"


@pytest.mark.parametrize("text", ["", "<html>Service Unavailable</html>", "<ErrCode>0"])
def test_regex_parser_missing_elements_yield_none(text):
    parsed = RegexResponseParser().parse(text)
    assert parsed.err_code is None


def test_xml_parser_matches_regex_parser_on_well_formed_body(make_soap_response):
    text = make_soap_response("1", "Updated", "55")
    assert XmlResponseParser().parse(text) == RegexResponseParser().parse(text)


def test_xml_parser_malformed_body_yields_empty():
    assert XmlResponseParser().parse("<ErrCode>0") == ParsedResponse()
