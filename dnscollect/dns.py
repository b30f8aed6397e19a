"""Decoding of the DNS wire format: header, questions, resource records."""

from __future__ import annotations

import ipaddress
import struct
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

DNS_HEADER_LEN = 12
UNKNOWN = "UNKNOWN"

RDATATYPES: Dict[int, str] = {
    0: "NONE", 1: "A", 2: "NS", 3: "MD", 4: "MF", 5: "CNAME", 6: "SOA",
    7: "MB", 8: "MG", 9: "MR", 10: "NULL", 11: "WKS", 12: "PTR", 13: "HINFO",
    14: "MINFO", 15: "MX", 16: "TXT", 17: "RP", 18: "AFSDB", 19: "X25",
    20: "ISDN", 21: "RT", 22: "NSAP", 23: "NSAP_PTR", 24: "SIG", 25: "KEY",
    26: "PX", 27: "GPOS", 28: "AAAA", 29: "LOC", 30: "NXT", 33: "SRV",
    35: "NAPTR", 36: "KX", 37: "CERT", 38: "A6", 39: "DNAME", 41: "OPT",
    42: "APL", 43: "DS", 44: "SSHFP", 45: "IPSECKEY", 46: "RRSIG", 47: "NSEC",
    48: "DNSKEY", 49: "DHCID", 50: "NSEC3", 51: "NSEC3PARAM", 52: "TSLA",
    53: "SMIMEA", 55: "HIP", 56: "NINFO", 59: "CDS", 60: "CDNSKEY",
    61: "OPENPGPKEY", 62: "CSYNC", 64: "SVCB", 65: "HTTPS", 99: "SPF",
    103: "UNSPEC", 108: "EUI48", 109: "EUI64", 249: "TKEY", 250: "TSIG",
    251: "IXFR", 252: "AXFR", 253: "MAILB", 254: "MAILA", 255: "ANY",
    256: "URI", 257: "CAA", 258: "AVC", 259: "AMTRELAY", 32768: "TA",
    32769: "DLV",
}

RCODES: Dict[int, str] = {
    0: "NOERROR", 1: "FORMERR", 2: "SERVFAIL", 3: "NXDOMAIN", 4: "NOIMP",
    5: "REFUSED", 6: "YXDOMAIN", 7: "YXRRSET", 8: "NXRRSET", 9: "NOTAUTH",
    10: "NOTZONE", 11: "DSOTYPENI", 16: "BADSIG", 17: "BADKEY", 18: "BADTIME",
    19: "BADMODE", 20: "BADNAME", 21: "BADALG", 22: "BADTRUNC", 23: "BADCOOKIE",
}

_OPT_TYPE = 41


class DnsDecodeError(ValueError):
    """Base error for a packet that cannot be decoded.

    ``partial`` holds whatever records were decoded before the failure and
    ``offset`` the position where decoding stopped, when known.
    """

    default_message = "malformed pkt"

    def __init__(self, message: Optional[str] = None, *, partial=None, offset: Optional[int] = None):
        super().__init__(message or self.default_message)
        self.partial = partial
        self.offset = offset


class HeaderTooShortError(DnsDecodeError):
    default_message = "malformed pkt, dns payload too short to decode header"


class LabelTooLongError(DnsDecodeError):
    default_message = "malformed pkt, label too long"


class LabelInvalidDataError(DnsDecodeError):
    default_message = "malformed pkt, invalid label length byte"


class LabelInvalidOffsetError(DnsDecodeError):
    default_message = "malformed pkt, invalid offset to decode label"


class LabelInvalidPointerError(DnsDecodeError):
    default_message = "malformed pkt, label pointer not pointing to prior data"


class LabelTooShortError(DnsDecodeError):
    default_message = "malformed pkt, dns payload too short to get label"


class QtypeTooShortError(DnsDecodeError):
    default_message = "malformed pkt, not enough data to decode qtype"


class AnswerTooShortError(DnsDecodeError):
    default_message = "malformed pkt, not enough data to decode answer"


class RdataTooShortError(DnsDecodeError):
    default_message = "malformed pkt, not enough data to decode rdata answer"


@dataclass
class DnsHeader:
    id: int = 0
    qr: int = 0
    opcode: int = 0
    aa: int = 0
    tc: int = 0
    rd: int = 0
    ra: int = 0
    z: int = 0
    ad: int = 0
    cd: int = 0
    rcode: int = 0
    qdcount: int = 0
    ancount: int = 0
    nscount: int = 0
    arcount: int = 0


@dataclass
class DnsAnswer:
    name: str = ""
    rdatatype: str = ""
    rclass: int = 0
    ttl: int = 0
    rdata: str = ""


def rdatatype_to_string(rrtype: int) -> str:
    """Return the mnemonic of a record type, or UNKNOWN."""
    return RDATATYPES.get(rrtype, UNKNOWN)


def rcode_to_string(rcode: int) -> str:
    """Return the mnemonic of a response code, or UNKNOWN."""
    return RCODES.get(rcode, UNKNOWN)


def _text(data: bytes) -> str:
    return bytes(data).decode("utf-8", errors="replace")


def _u16(payload: bytes, offset: int) -> int:
    return int.from_bytes(payload[offset:offset + 2], "big")


def decode_dns(payload: bytes) -> DnsHeader:
    """Decode the fixed 12-byte DNS header."""
    if len(payload) < DNS_HEADER_LEN:
        raise HeaderTooShortError()
    ident, flags, qd, an, ns, ar = struct.unpack(">HHHHHH", bytes(payload[:DNS_HEADER_LEN]))
    return DnsHeader(
        id=ident,
        qr=flags >> 15,
        opcode=(flags >> 11) & 0xF,
        aa=(flags >> 10) & 1,
        tc=(flags >> 9) & 1,
        rd=(flags >> 8) & 1,
        ra=(flags >> 7) & 1,
        z=(flags >> 6) & 1,
        ad=(flags >> 5) & 1,
        cd=(flags >> 4) & 1,
        rcode=flags & 0xF,
        qdcount=qd,
        ancount=an,
        nscount=ns,
        arcount=ar,
    )


def decode_question(qdcount: int, payload: bytes) -> Tuple[str, int, int]:
    """Decode every question; return the last (qname, qtype) and the end offset."""
    offset = DNS_HEADER_LEN
    qname = ""
    qtype = 0
    for _ in range(qdcount):
        qname, offset = parse_labels(offset, payload)
        if len(payload) - offset < 4:
            raise QtypeTooShortError()
        qtype = _u16(payload, offset)
        offset += 4
    return qname, qtype, offset


def decode_answer(ancount: int, start_offset: int, payload: bytes) -> Tuple[List[DnsAnswer], int]:
    """Decode ``ancount`` resource records starting at ``start_offset``.

    OPT records are skipped. On failure the raised error carries the records
    decoded so far in ``partial`` and the last good offset in ``offset``.
    """
    offset = start_offset
    answers: List[DnsAnswer] = []

    for _ in range(ancount):
        try:
            name, next_offset = parse_labels(offset, payload)
            if len(payload) - next_offset < 10:
                raise AnswerTooShortError()
            rtype, rclass, ttl, rdlength = struct.unpack(
                ">HHIH", bytes(payload[next_offset:next_offset + 10])
            )
            rdata_offset = next_offset + 10
            end = rdata_offset + rdlength
            if len(payload) - rdata_offset < rdlength:
                raise RdataTooShortError()
            if rtype == _OPT_TYPE:
                offset = end
                continue
            rdatatype = rdatatype_to_string(rtype)
            parsed = parse_rdata(rdatatype, payload[rdata_offset:end], payload[:end], rdata_offset)
        except DnsDecodeError as exc:
            exc.partial = answers
            exc.offset = offset
            raise
        answers.append(DnsAnswer(name=name, rdatatype=rdatatype, rclass=rclass, ttl=ttl, rdata=parsed))
        offset = end
    return answers, offset


def parse_labels(offset: int, payload: bytes) -> Tuple[str, int]:
    """Decode a possibly compressed domain name; return it and the offset after it."""
    if offset < 0:
        raise LabelInvalidOffsetError()

    size = len(payload)
    labels: List[str] = []
    start_offset = offset
    max_offset = size
    end_offset: Optional[int] = None
    total_length = 0

    while True:
        if offset >= size:
            raise LabelTooShortError()
        if offset >= max_offset:
            raise LabelInvalidPointerError()

        length = payload[offset]
        if length == 0:
            if end_offset is None:
                end_offset = offset + 1
            break

        kind = length & 0xC0
        if kind == 0xC0:
            if offset + 2 > size:
                raise LabelTooShortError()
            if offset + 2 > max_offset:
                raise LabelInvalidPointerError()
            ptr = _u16(payload, offset) & 0x3FFF
            # pointers must always point to prior data
            if ptr >= start_offset:
                raise LabelInvalidPointerError()
            if end_offset is None:
                end_offset = offset + 2
            max_offset = start_offset
            start_offset = ptr
            offset = ptr
        elif kind == 0x00:
            if offset + length + 1 > size:
                raise LabelTooShortError()
            if offset + length + 1 > max_offset:
                raise LabelInvalidPointerError()
            total_length += length + 1
            if total_length > 254:
                raise LabelTooLongError()
            labels.append(_text(payload[offset + 1:offset + length + 1]))
            offset += length + 1
        else:
            raise LabelInvalidDataError()

    return ".".join(labels), end_offset


def parse_rdata(rdatatype: str, rdata: bytes, payload: bytes, rdata_offset: int) -> str:
    """Render the rdata of a supported record type; other types give "-"."""
    by_data: Dict[str, Callable[[bytes], str]] = {
        "A": parse_a,
        "AAAA": parse_aaaa,
        "TXT": parse_txt,
    }
    by_offset: Dict[str, Callable[[int, bytes], str]] = {
        "CNAME": parse_cname,
        "MX": parse_mx,
        "SRV": parse_srv,
        "NS": parse_ns,
        "PTR": parse_ptr,
        "SOA": parse_soa,
    }
    if rdatatype in by_data:
        return by_data[rdatatype](rdata)
    if rdatatype in by_offset:
        return by_offset[rdatatype](rdata_offset, payload)
    return "-"


def parse_soa(rdata_offset: int, payload: bytes) -> str:
    primary_ns, offset = parse_labels(rdata_offset, payload)
    resp_mailbox, offset = parse_labels(offset, payload)
    if offset + 20 > len(payload):
        raise RdataTooShortError()
    serial, refresh, retry, expire, minimum = struct.unpack(">IiiiI", bytes(payload[offset:offset + 20]))
    return f"{primary_ns} {resp_mailbox} {serial} {refresh} {retry} {expire} {minimum}"


def _format_ip(raw: bytes) -> str:
    if len(raw) == 16 and raw[:10] == bytes(10) and raw[10:12] == b"\xff\xff":
        return str(ipaddress.IPv4Address(raw[12:]))
    if len(raw) == 4:
        return str(ipaddress.IPv4Address(raw))
    return str(ipaddress.IPv6Address(raw))


def parse_a(rdata: bytes) -> str:
    if len(rdata) < 4:
        raise RdataTooShortError()
    return _format_ip(bytes(rdata[:4]))


def parse_aaaa(rdata: bytes) -> str:
    if len(rdata) < 16:
        raise RdataTooShortError()
    return _format_ip(bytes(rdata[:16]))


def parse_cname(rdata_offset: int, payload: bytes) -> str:
    return parse_labels(rdata_offset, payload)[0]


def parse_mx(rdata_offset: int, payload: bytes) -> str:
    # preference plus at least one byte for the exchange name
    if len(payload) < rdata_offset + 3:
        raise RdataTooShortError()
    pref = _u16(payload, rdata_offset)
    host, _ = parse_labels(rdata_offset + 2, payload)
    return f"{pref} {host}"


def parse_srv(rdata_offset: int, payload: bytes) -> str:
    if len(payload) < rdata_offset + 7:
        raise RdataTooShortError()
    priority, weight, port = struct.unpack(">HHH", bytes(payload[rdata_offset:rdata_offset + 6]))
    target, _ = parse_labels(rdata_offset + 6, payload)
    return f"{priority} {weight} {port} {target}"


def parse_ns(rdata_offset: int, payload: bytes) -> str:
    return parse_labels(rdata_offset, payload)[0]


def parse_txt(rdata: bytes) -> str:
    if len(rdata) < 1:
        raise RdataTooShortError()
    length = rdata[0]
    if len(rdata) - 1 < length:
        raise RdataTooShortError()
    return _text(rdata[1:length + 1])


def parse_ptr(rdata_offset: int, payload: bytes) -> str:
    return parse_labels(rdata_offset, payload)[0]