"""Decoding of EDNS(0) OPT records and their options."""

from __future__ import annotations

import enum
import ipaddress
import struct
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from .dns import UNKNOWN, AnswerTooShortError, DnsDecodeError, parse_labels

_OPT_TYPE = 41


class OptionCode(enum.IntEnum):
    """EDNS option codes that have a known mnemonic."""

    NSID = 3
    CSUBNET = 8
    EXPIRE = 9
    COOKIE = 10
    KEEPALIVE = 11
    PADDING = 12
    ERRORS = 15


# Extended DNS error info codes (RFC 8914), indexed by their numeric value.
_EXTENDED_ERRORS: Tuple[str, ...] = (
    "Other", "Unsupported DNSKEY Algorithm", "Unsupported DS Digest Type",
    "Stale Answer", "Forged Answer", "DNSSEC Indeterminate", "DNSSEC Bogus",
    "Signature Expired", "Signature Not Yet Valid", "DNSKEY Missing",
    "RRSIGs Missing", "No Zone Key Bit Set", "NSEC Missing", "Cached Error",
    "Not Ready", "Blocked", "Censored", "Filtered", "Prohibited",
    "Stale NXDOMAIN Answer", "Not Authoritative", "Not Supported",
    "No Reachable Authority", "Network Error", "Invalid Data",
)

OPT_CODES: Dict[int, str] = {member.value: member.name for member in OptionCode}
ERROR_CODES: Dict[int, str] = dict(enumerate(_EXTENDED_ERRORS))


class EdnsBadRootDomainError(DnsDecodeError):
    default_message = "edns, name MUST be 0 (root domain)"


class EdnsDataTooShortError(DnsDecodeError):
    default_message = "edns, not enough data to decode rdata answer"


class EdnsOptionTooShortError(DnsDecodeError):
    default_message = "edns, not enough data to decode option answer"


class EdnsCsubnetBadFamilyError(DnsDecodeError):
    default_message = "edns, csubnet option bad family"


class EdnsTooManyOptsError(DnsDecodeError):
    default_message = "edns, packet contained too many OPT RRs"


@dataclass
class DnsOption:
    code: int = 0
    name: str = ""
    data: str = ""


@dataclass
class DnsExtended:
    udp_size: int = 0
    extended_rcode: int = 0
    version: int = 0
    do: int = 0
    z: int = 0
    options: List[DnsOption] = field(default_factory=list)


def opt_code_to_string(code: int) -> str:
    """Return the mnemonic of an EDNS option code, or UNKNOWN."""
    try:
        return OptionCode(code).name
    except ValueError:
        return UNKNOWN


def _decode_options(payload: bytes, start: int, end: int) -> Tuple[List[DnsOption], int]:
    options: List[DnsOption] = []
    pos = start
    while pos < end:
        if end - pos < 4:
            raise EdnsOptionTooShortError()
        code, length = struct.unpack(">HH", bytes(payload[pos:pos + 4]))
        data_end = pos + 4 + length
        if data_end > end:
            raise EdnsDataTooShortError()
        opt_name = opt_code_to_string(code)
        options.append(DnsOption(code=code, name=opt_name, data=parse_option(opt_name, payload[pos + 4:data_end])))
        pos = data_end
    return options, pos


def decode_edns(arcount: int, start_offset: int, payload: bytes) -> Tuple[DnsExtended, int]:
    """Scan ``arcount`` records for the OPT record and decode it.

    Returns the EDNS data and the offset after the last record. On failure
    the raised error carries the EDNS data decoded so far in ``partial``.
    """
    offset = start_offset
    edns = DnsExtended()
    found = False

    for _ in range(arcount):
        try:
            name, nxt = parse_labels(offset, payload)
            if len(payload) - nxt < 10:
                raise AnswerTooShortError()
            rtype, udp_size, flags, rdlength = struct.unpack(">HHIH", bytes(payload[nxt:nxt + 10]))
            rdata_offset = nxt + 10

            if rtype != _OPT_TYPE:
                if len(payload) - rdata_offset < rdlength:
                    raise EdnsDataTooShortError()
                offset = rdata_offset + rdlength
                continue

            # a message may hold a single OPT record only
            if found:
                raise EdnsTooManyOptsError()
            if name:
                raise EdnsBadRootDomainError()

            edns.udp_size = udp_size
            edns.extended_rcode = (flags >> 24) << 4
            edns.version = (flags >> 16) & 0xFF
            edns.do = (flags >> 15) & 1
            edns.z = flags & 0x7FFF

            if len(payload) - rdata_offset < rdlength:
                raise EdnsDataTooShortError()

            edns.options, offset = _decode_options(payload, rdata_offset, rdata_offset + rdlength)
            found = True
        except DnsDecodeError as exc:
            exc.partial = edns
            exc.offset = offset
            raise
    return edns, offset


def parse_option(opt_name: str, opt_data: bytes) -> str:
    """Render the data of a supported option; other options give "-"."""
    if opt_name == OptionCode.ERRORS.name:
        return parse_errors(opt_data)
    if opt_name == OptionCode.CSUBNET.name:
        return parse_csubnet(opt_data)
    return "-"


def parse_errors(data: bytes) -> str:
    """Render an extended DNS error option (RFC 8914)."""
    if len(data) < 2:
        raise EdnsOptionTooShortError()
    code = int.from_bytes(data[:2], "big")
    label = ERROR_CODES.get(code, "-")
    extra = bytes(data[2:]).decode("utf-8", errors="replace") if len(data) > 2 else "-"
    return f"{code} {label} {extra}"


def _padded(raw: bytes, size: int) -> bytes:
    return bytes(raw[:size]).ljust(size, b"\x00")


def parse_csubnet(data: bytes) -> str:
    """Render a client subnet option (RFC 7871)."""
    if len(data) < 4:
        raise EdnsOptionTooShortError()
    family = int.from_bytes(data[:2], "big")
    src_mask = data[2]
    if family == 1:
        return f"{ipaddress.IPv4Address(_padded(data[4:], 4))}/{src_mask}"
    if family == 2:
        addr6 = ipaddress.IPv6Address(_padded(data[4:], 16))
        text = str(addr6.ipv4_mapped) if addr6.ipv4_mapped is not None else str(addr6)
        return f"[{text}]/{src_mask}"
    raise EdnsCsubnetBadFamilyError()