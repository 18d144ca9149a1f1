"""Tests for the CMCI XML response codec."""

import xml.etree.ElementTree as ET

from cmcimock.api.wire import (
    XML_DECLARATION,
    build_response,
    parse_response,
    record_tag,
    result_summary,
)
from cmcimock.protocol import XML_NAMESPACE, ResponseCode


def test_summary_only_document():
    summary = result_summary(
        ResponseCode.OK, recordcount=20, displayed=20, cachetoken="ABCDEF0123456789"
    )
    body = build_response(summary)
    assert body.startswith(XML_DECLARATION + "\n")

    root = ET.fromstring(body.encode("utf-8"))
    assert root.tag == f"{{{XML_NAMESPACE}}}response"
    assert root.attrib["version"] == "3.0"
    assert root.attrib["connect_version"] == "0620"

    parsed, records = parse_response(body)
    assert parsed["api_response1"] == "1024"
    assert parsed["api_response1_alt"] == "OK"
    assert parsed["api_response2"] == "0"
    assert parsed["recordcount"] == "20"
    assert parsed["displayed_recordcount"] == "20"
    assert parsed["cachetoken"] == "ABCDEF0123456789"
    assert records == []
    assert record_tag(body) is None


def test_records_are_named_after_resource_type():
    records = [{"program": "PROG001", "status": "ENABLED"}, {"program": "PROG002", "status": "ENABLED"}]
    body = build_response(
        result_summary(ResponseCode.OK, recordcount=2, displayed=2),
        records,
        "CICSDefinitionProgram",
    )
    _, parsed = parse_response(body)
    assert parsed == records
    assert record_tag(body) == "cicsdefinitionprogram"


def test_nodata_summary_carries_source():
    body = build_response(
        result_summary(ResponseCode.NODATA, api_source="CICSPlex SM")
    )
    summary, _ = parse_response(body)
    assert summary["api_response1"] == "1027"
    assert summary["api_response1_alt"] == "NODATA"
    assert summary["api_source"] == "CICSPlex SM"
    assert summary["recordcount"] == "0"
    assert "cachetoken" not in summary
    assert "displayed_recordcount" not in summary


def test_schema_location_uses_base_url():
    body = build_response(
        result_summary(ResponseCode.OK), schema_base_url="http://mainframe:1490/"
    )
    assert (
        "http://mainframe:1490/CICSSystemManagement/schema/CICSSystemManagement.xsd"
        in body
    )


def test_attribute_values_are_escaped():
    body = build_response(
        result_summary(ResponseCode.INVALIDDATA, message='bad <value> & "quote"')
    )
    summary, _ = parse_response(body.encode("utf-8"))
    assert summary["api_response2_alt"] == 'bad <value> & "quote"'
    assert summary["api_response1"] == "1041"


def test_control_characters_are_replaced():
    body = build_response(
        result_summary(ResponseCode.INVALIDPARM, message="Unknown resource type bad\x01name"),
        [{"name": "REC\x00\x1f", "status": "ENABLED"}],
        "CICSRegion",
    )
    summary, records = parse_response(body.encode("utf-8"))
    assert summary["api_response2_alt"] == "Unknown resource type bad?name"
    assert records[0]["name"] == "REC??"
    assert records[0]["status"] == "ENABLED"
