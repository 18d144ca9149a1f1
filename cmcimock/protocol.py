"""CMCI protocol constants shared by the codec, services and routes."""

from __future__ import annotations

from enum import Enum
from typing import Mapping, Optional

CICS_SYSTEM_MANAGEMENT = "CICSSystemManagement"
RESULT_CACHE_RESOURCE = "cicsresultcache"

XML_NAMESPACE = "http://www.ibm.com/xmlns/prod/CICS/smw2int"
XSI_NAMESPACE = "http://www.w3.org/2001/XMLSchema-instance"
RESPONSE_VERSION = "3.0"
CONNECT_VERSION = "0620"

# api_response2 is always zero in this mock
SUCCESS_RESPONSE_2 = "0"


class ResponseCode(str, Enum):
    """CMCI api_response1 values, keyed by their textual alias."""

    OK = "1024"
    NODATA = "1027"
    INVALIDPARM = "1028"
    NOTAVAILABLE = "1034"
    INVALIDDATA = "1041"

    @property
    def alias(self) -> str:
        return self.name


RESOURCE_TYPES = {
    "cicsmanagedregion": "CICSManagedRegion",
    "cicscicsplex": "CICSCICSPlex",
    "cicsregion": "CICSRegion",
    "cicsdefinitionprogram": "CICSDefinitionProgram",
    "cicsdefinitiontransaction": "CICSDefinitionTransaction",
    "cicsdefinitionurimap": "CICSDefinitionURIMap",
    "cicsdefinitionwebservice": "CICSDefinitionWebService",
    "cicsdefinitionbundle": "CICSDefinitionBundle",
    "cicsprogram": "CICSProgram",
    "cicslibrary": "CICSLibrary",
    "cicstcpipservice": "CICSTCPIPService",
    "cicspipeline": "CICSPipeline",
    "cicswebservice": "CICSWebService",
    "cicsjvmserver": "CICSJVMServer",
    "cicsurimap": "CICSURIMap",
    "cicsregiongroup": "CICSRegionGroup",
    "cicscsdgroup": "CICSCSDGroup",
    "cicscsdgroupinlist": "CICSCSDGroupInList",
    "cicsresultcache": "CICSResultCache",
    "cicstask": "CICSTask",
    "cicsbundle": "CICSBundle",
    "cicsbundlepart": "CICSBundlePart",
    "cicslocalfile": "CICSLocalFile",
    "cicslocaltransaction": "CICSLocalTransaction",
    "cicsremotetransaction": "CICSRemoteTransaction",
}


def normalize_resource_type(segment: Optional[str]) -> Optional[str]:
    """Return the lower-case resource key for a path segment, or None if unknown."""
    if not segment:
        return None
    key = segment.lower()
    return key if key in RESOURCE_TYPES else None


# Directive flags are bare query parameters; CMCI clients send either case.
RETAIN_DIRECTIVE = "nodiscard"
SUMMARY_ONLY_DIRECTIVE = "summonly"


def has_directive(params: Mapping[str, object], name: str) -> bool:
    """True if ``name`` is present as a query parameter, in either case."""
    return name.lower() in params or name.upper() in params


def first_param(params: Mapping[str, str], *names: str) -> Optional[str]:
    """Return the first non-empty value among alternative spellings of a parameter."""
    for name in names:
        value = params.get(name)
        if value:
            return value
    return None
