"""Generators for fake CMCI resource records."""

from __future__ import annotations

import secrets
from typing import Callable, Dict, List

from cmcimock.storage.models import Record


def _keydata(nbytes: int = 8) -> str:
    return secrets.token_hex(nbytes).upper()


def _managed_region(i: int) -> Record:
    name = f"REGION{i + 1}"
    record = {
        "_keydata": _keydata(),
        "actvtime": "",
        "ainsfail": "CONTINUE",
        "applid": name,
        "autoinst": "NEVER",
        "botrsupd": "1",
        "cicsname": name,
        "cicsstate": "ACTIVE",
        "cmasname": "MYCMAS",
        "cpsmver": "0620",
        "daylghtsv": "NO",
        "desc": f"Mock region {i + 1}",
        "host": "",
        "mastype": "LOCAL",
        "monstatus": "NO",
        "mxtsev": "HS",
        "networkid": "",
        "nrmsev": "N_A",
        "port": "",
        "readrs": "200",
        "retention": "0",
        "rtastatus": "SAM",
        "samsev": "VHS",
        "sdmsev": "VHS",
        "secbypass": "NO",
        "seccmdchk": "NO",
        "secreschk": "NO",
        "sossev": "HS",
        "stlsev": "VHS",
        "tdmsev": "HW",
        "tmezone": "Z",
    }
    # Trace masks are all reported as zero
    for trace in ("bastrace", "chetrace", "comtrace", "dattrace", "knltrace",
                  "mastrace", "msgtrace", "quetrace", "rtatrace", "srvtrace"):
        record[trace] = "00000000"
    for sample in ("cicssamp", "connsamp", "dbxsamp", "filesamp", "glblsamp",
                   "jrnlsamp", "progsamp", "tdqsamp", "termsamp"):
        record[sample] = "0"
    return record


def _cicsplex(i: int) -> Record:
    return {
        "_keydata": _keydata(16),
        "accesstype": "LOCAL",
        "botrsupd": "1",
        "cmasname": "REGION1",
        "mpstatus": "YES",
        "plexname": f"PLEX{i + 1}",
        "readrs": "200",
        "rspoolid": "DFHRSTAT",
        "status": "ACTIVE",
        "sysid": "EPCM",
        "toprsupd": "5",
        "transitcmas": "",
        "transitcnt": "0",
        "updaters": "15",
    }


def _program_definition(i: int) -> Record:
    return {
        "_keydata": _keydata(),
        "program": f"PROG{i + 1:03d}",
        "language": "COBOL",
        "length": "12345",
        "reload": "NO",
        "resident": "NO",
        "status": "ENABLED",
        "usage": "NORMAL",
        "uselpacopy": "NO",
    }


_GENERATORS: Dict[str, Callable[[int], Record]] = {
    "cicsmanagedregion": _managed_region,
    "cicscicsplex": _cicsplex,
    "cicsdefinitionprogram": _program_definition,
}


def generate_records(resource_type: str, count: int) -> List[Record]:
    """Build ``count`` records for ``resource_type``; unknown tables get a generic shape."""

    generator = _GENERATORS.get(resource_type)
    records: List[Record] = []
    for i in range(max(0, count)):
        if generator is not None:
            records.append(generator(i))
        else:
            records.append(
                {
                    "_keydata": _keydata(),
                    "name": f"{resource_type.upper()}{i + 1}",
                    "status": "ACTIVE",
                }
            )
    return records
