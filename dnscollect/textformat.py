"""Rendering of DNS messages as delimited text lines."""

from __future__ import annotations

import base64
from datetime import datetime
from typing import Callable, Dict, List, Sequence, Tuple

from .message import DnsMessage


class UnsupportedDirectiveError(ValueError):
    """A text format directive, or its argument, is not supported."""


def _flag(value: bool, text: str) -> str:
    return text if value else "-"


def _trunc_div(value: int, divisor: int) -> int:
    quotient = abs(value) // divisor
    return -quotient if value < 0 else quotient


def _localtime(dm: DnsMessage) -> str:
    sec = dm.dnstap.time_sec + dm.dnstap.time_nsec // 1_000_000_000
    nsec = dm.dnstap.time_nsec % 1_000_000_000
    text = datetime.fromtimestamp(sec).strftime("%Y-%m-%d %H:%M:%S")
    fraction = f"{nsec:09d}".rstrip("0")
    return f"{text}.{fraction}" if fraction else text


def _first_answer(dm: DnsMessage, attribute: str) -> str:
    answers = dm.dns.rrs.answers
    return str(getattr(answers[0], attribute)) if answers else "-"


def _csubnet(dm: DnsMessage) -> str:
    options = dm.edns.options
    if not options:
        return "-"
    return next((opt.data for opt in options if opt.name == "CSUBNET"), "")


_SIMPLE: Dict[str, Callable[[DnsMessage], str]] = {
    "ttl": lambda dm: _first_answer(dm, "ttl"),
    "answer": lambda dm: _first_answer(dm, "rdata"),
    "edns-csubnet": _csubnet,
    "answercount": lambda dm: str(len(dm.dns.rrs.answers)),
    "id": lambda dm: str(dm.dns.id),
    "timestamp-rfc3339ns": lambda dm: dm.dnstap.timestamp_rfc3339,
    "timestamp": lambda dm: dm.dnstap.timestamp_rfc3339,
    "timestamp-unixms": lambda dm: str(_trunc_div(dm.dnstap.timestamp, 1_000_000)),
    "timestamp-unixus": lambda dm: str(_trunc_div(dm.dnstap.timestamp, 1_000)),
    "timestamp-unixns": lambda dm: str(dm.dnstap.timestamp),
    "localtime": _localtime,
    "identity": lambda dm: dm.dnstap.identity,
    "version": lambda dm: dm.dnstap.version,
    "operation": lambda dm: dm.dnstap.operation,
    "rcode": lambda dm: dm.dns.rcode,
    "queryip": lambda dm: dm.network_info.query_ip,
    "queryport": lambda dm: dm.network_info.query_port,
    "responseip": lambda dm: dm.network_info.response_ip,
    "responseport": lambda dm: dm.network_info.response_port,
    "family": lambda dm: dm.network_info.family,
    "protocol": lambda dm: dm.network_info.protocol,
    "length": lambda dm: f"{dm.dns.length}b",
    "qtype": lambda dm: dm.dns.qtype,
    "latency": lambda dm: dm.dnstap.latency_sec,
    "malformed": lambda dm: _flag(dm.dns.malformed_packet, "PKTERR"),
    "qr": lambda dm: dm.dns.type,
    "opcode": lambda dm: str(dm.dns.opcode),
    "tr": lambda dm: _flag(dm.network_info.tcp_reassembled, "TR"),
    "df": lambda dm: _flag(dm.network_info.ip_defragmented, "DF"),
    "tc": lambda dm: _flag(dm.dns.flags.tc, "TC"),
    "aa": lambda dm: _flag(dm.dns.flags.aa, "AA"),
    "ra": lambda dm: _flag(dm.dns.flags.ra, "RA"),
    "ad": lambda dm: _flag(dm.dns.flags.ad, "AD"),
}


def _pdns(dm: DnsMessage, directives: List[str]) -> str:
    pdns = dm.powerdns
    if pdns is None:
        return "-"
    directive = directives[0]
    if directive == "powerdns-tags":
        if not pdns.tags:
            return "-"
        if len(directives) == 2:
            try:
                index = int(directives[1])
            except ValueError:
                raise UnsupportedDirectiveError(
                    f"unsupport tag index provided (integer expected): {directives[1]}"
                ) from None
            if index < 0:
                raise UnsupportedDirectiveError(f"unsupport tag index provided: {directives[1]}")
            return pdns.tags[index] if index < len(pdns.tags) else "-"
        return ",".join(pdns.tags)
    if directive == "powerdns-applied-policy":
        return pdns.applied_policy or "-"
    if directive == "powerdns-original-request-subnet":
        return pdns.original_request_subnet or "-"
    if directive == "powerdns-metadata":
        if not pdns.metadata or len(directives) != 2:
            return "-"
        value = pdns.metadata.get(directives[1], "")
        return value.replace(" ", "_") if value else "-"
    return ""


def _reducer(dm: DnsMessage, directives: List[str]) -> str:
    if dm.reducer is None:
        return "-"
    if directives[0] == "reducer-occurences":
        return str(dm.reducer.occurences)
    return ""


def _geo(dm: DnsMessage, directives: List[str]) -> str:
    geo = dm.geo
    if geo is None:
        return "-"
    fields = {
        "geoip-continent": geo.continent,
        "geoip-country": geo.country_iso_code,
        "geoip-city": geo.city,
        "geoip-as-number": geo.autonomous_system_number,
        "geoip-as-owner": geo.autonomous_system_org,
    }
    return fields.get(directives[0], "")


def _suspicious(dm: DnsMessage, directives: List[str]) -> str:
    if dm.suspicious is None:
        return "-"
    if directives[0] == "suspicious-score":
        return str(int(dm.suspicious.score))
    return ""


def _public_suffix(dm: DnsMessage, directives: List[str]) -> str:
    suffix = dm.public_suffix
    if suffix is None:
        return "-"
    if directives[0] == "publixsuffix-tld":
        return suffix.qname_public_suffix
    if directives[0] == "publixsuffix-etld+1":
        return suffix.qname_effective_tld_plus_one
    return ""


def _extracted(dm: DnsMessage, directives: List[str]) -> str:
    if dm.extracted is None:
        return "-"
    if directives[0] == "extracted-dns-payload":
        payload = dm.dns.payload
        return base64.b64encode(bytes(payload)).decode("ascii") if payload else "-"
    return ""


_PREFIXED: Tuple[Tuple[str, Callable[[DnsMessage, List[str]], str]], ...] = (
    ("powerdns", _pdns),
    ("reducer", _reducer),
    ("geoip", _geo),
    ("suspicious", _suspicious),
    ("publixsuffix", _public_suffix),
    ("extracted", _extracted),
)


def _qname(dm: DnsMessage, field_delimiter: str, field_boundary: str) -> str:
    qname = dm.dns.qname
    if field_delimiter not in qname:
        return qname
    if field_boundary in qname:
        qname = qname.replace(field_boundary, "\\" + field_boundary)
    return f"{field_boundary}{qname}{field_boundary}"


def _render(dm: DnsMessage, word: str, field_delimiter: str, field_boundary: str) -> str:
    directives = word.split(":", 1)
    directive = directives[0]
    if directive == "qname":
        return _qname(dm, field_delimiter, field_boundary)
    simple = _SIMPLE.get(directive)
    if simple is not None:
        return simple(dm)
    for prefix, handler in _PREFIXED:
        if directive.startswith(prefix):
            return handler(dm, directives)
    raise UnsupportedDirectiveError(f"unsupport directive for text format: {word}")


def to_text(dm: DnsMessage, fmt: Sequence[str], field_delimiter: str, field_boundary: str) -> str:
    """Render the message as one text line following the directives in ``fmt``."""
    return field_delimiter.join(_render(dm, word, field_delimiter, field_boundary) for word in fmt)


def to_bytes(dm: DnsMessage, fmt: Sequence[str], field_delimiter: str, field_boundary: str) -> bytes:
    """Render the message like :func:`to_text`, encoded as UTF-8."""
    return to_text(dm, fmt, field_delimiter, field_boundary).encode("utf-8")