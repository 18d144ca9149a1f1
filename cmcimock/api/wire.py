"""XML codec for CMCI responses.

A response is a ``<response>`` root carrying a ``<resultsummary>`` element
whose attributes describe the outcome, followed by an optional ``<records>``
element with one child per record. Record fields are child attributes.
"""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from typing import Dict, List, Optional, Sequence, Tuple, Union

from cmcimock.protocol import (
    CICS_SYSTEM_MANAGEMENT,
    CONNECT_VERSION,
    RESPONSE_VERSION,
    SUCCESS_RESPONSE_2,
    XML_NAMESPACE,
    XSI_NAMESPACE,
    ResponseCode,
)
from cmcimock.storage.models import Record

MEDIA_TYPE = "application/xml"
XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'
DEFAULT_SCHEMA_BASE_URL = "http://localhost:9080"

# Attribute order of <resultsummary> as real CMCI servers emit it
_SUMMARY_ATTRIBUTES = (
    "api_source",
    "api_function",
    "api_response1",
    "api_response2",
    "api_response1_alt",
    "api_response2_alt",
    "recordcount",
    "displayed_recordcount",
    "cachetoken",
)

# Characters XML 1.0 does not allow anywhere in a document
_XML_ILLEGAL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\ufffe\uffff]")


def result_summary(
    code: ResponseCode,
    *,
    function: str = "GET",
    message: str = "",
    recordcount: int = 0,
    displayed: Optional[int] = None,
    cachetoken: Optional[str] = None,
    api_source: Optional[str] = None,
) -> Dict[str, str]:
    summary = {
        "api_function": function,
        "api_response1": code.value,
        "api_response2": SUCCESS_RESPONSE_2,
        "api_response1_alt": code.alias,
        "api_response2_alt": message,
        "recordcount": str(recordcount),
    }
    if displayed is not None:
        summary["displayed_recordcount"] = str(displayed)
    if cachetoken:
        summary["cachetoken"] = cachetoken
    if api_source:
        summary["api_source"] = api_source
    return summary


def _schema_location(schema_base_url: str) -> str:
    base = schema_base_url.rstrip("/")
    return (
        f"{XML_NAMESPACE} "
        f"{base}/{CICS_SYSTEM_MANAGEMENT}/schema/{CICS_SYSTEM_MANAGEMENT}.xsd"
    )


def _xml_text(value: object) -> str:
    return _XML_ILLEGAL_CHARS.sub("?", str(value))


def build_response(
    summary: Dict[str, str],
    records: Optional[Sequence[Record]] = None,
    resource_type: Optional[str] = None,
    *,
    schema_base_url: str = DEFAULT_SCHEMA_BASE_URL,
) -> str:
    """Serialize a result summary and optional records into a CMCI XML document.

    ``records=None`` omits the ``<records>`` element entirely, which is how
    summary-only responses are expressed.
    """
    root = ET.Element(
        "response",
        {
            "xmlns": XML_NAMESPACE,
            "xmlns:xsi": XSI_NAMESPACE,
            "xsi:schemaLocation": _schema_location(schema_base_url),
            "version": RESPONSE_VERSION,
            "connect_version": CONNECT_VERSION,
        },
    )
    ordered = {key: _xml_text(summary[key]) for key in _SUMMARY_ATTRIBUTES if key in summary}
    ET.SubElement(root, "resultsummary", ordered)
    if records is not None:
        container = ET.SubElement(root, "records")
        tag = (resource_type or "record").lower()
        for record in records:
            ET.SubElement(
                container, tag, {key: _xml_text(value) for key, value in record.items()}
            )
    ET.indent(root)
    return f"{XML_DECLARATION}\n{ET.tostring(root, encoding='unicode')}"


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def parse_response(
    body: Union[str, bytes],
) -> Tuple[Dict[str, str], List[Dict[str, str]]]:
    """Parse a CMCI XML document into ``(summary attributes, record attribute maps)``."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    root = ET.fromstring(body)
    summary: Dict[str, str] = {}
    records: List[Dict[str, str]] = []
    for child in root:
        name = _local_name(child.tag)
        if name == "resultsummary":
            summary = dict(child.attrib)
        elif name == "records":
            records = [dict(item.attrib) for item in child]
    return summary, records


def record_tag(body: Union[str, bytes]) -> Optional[str]:
    """Element name used for records in ``body``, or None when it has no records."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    root = ET.fromstring(body)
    for child in root:
        if _local_name(child.tag) == "records" and len(child):
            return _local_name(child[0].tag)
    return None
