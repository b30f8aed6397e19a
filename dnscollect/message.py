"""The DNS message record passed between collectors and loggers."""

from __future__ import annotations

import base64
import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .dns import DnsAnswer
from .edns import DnsExtended, DnsOption

DNS_QUERY = "QUERY"
DNS_REPLY = "REPLY"

_INT_RE = re.compile(r"[+-]?\d+")


@dataclass
class DnsFlags:
    qr: bool = False
    tc: bool = False
    aa: bool = False
    ra: bool = False
    ad: bool = False


@dataclass
class DnsNetInfo:
    family: str = ""
    protocol: str = ""
    query_ip: str = ""
    query_port: str = ""
    response_ip: str = ""
    response_port: str = ""
    ip_defragmented: bool = False
    tcp_reassembled: bool = False


@dataclass
class DnsRRs:
    answers: List[DnsAnswer] = field(default_factory=list)
    nameservers: List[DnsAnswer] = field(default_factory=list)
    records: List[DnsAnswer] = field(default_factory=list)


@dataclass
class Dns:
    type: str = ""
    payload: bytes = b""
    length: int = 0
    id: int = 0
    opcode: int = 0
    rcode: str = ""
    qname: str = ""
    qtype: str = ""
    flags: DnsFlags = field(default_factory=DnsFlags)
    rrs: DnsRRs = field(default_factory=DnsRRs)
    malformed_packet: bool = False


@dataclass
class DnsTap:
    operation: str = ""
    identity: str = ""
    version: str = ""
    timestamp_rfc3339: str = ""
    timestamp: int = 0
    time_sec: int = 0
    time_nsec: int = 0
    latency: float = 0.0
    latency_sec: str = ""
    payload: bytes = b""


@dataclass
class PowerDns:
    tags: Optional[List[str]] = None
    original_request_subnet: str = ""
    applied_policy: str = ""
    metadata: Optional[Dict[str, str]] = None


@dataclass
class TransformDnsGeo:
    city: str = ""
    continent: str = ""
    country_iso_code: str = ""
    autonomous_system_number: str = ""
    autonomous_system_org: str = ""


@dataclass
class TransformSuspicious:
    score: float = 0.0
    malformed_packet: bool = False
    large_packet: bool = False
    long_domain: bool = False
    slow_domain: bool = False
    unallowed_chars: bool = False
    uncommon_qtypes: bool = False
    excessive_number_labels: bool = False
    domain: str = ""


@dataclass
class TransformPublicSuffix:
    qname_public_suffix: str = ""
    qname_effective_tld_plus_one: str = ""


@dataclass
class TransformExtracted:
    base64_payload: Optional[bytes] = None


@dataclass
class TransformReducer:
    occurences: int = 0


def _answer_dict(answer: DnsAnswer) -> Dict[str, Any]:
    return {"name": answer.name, "rdatatype": answer.rdatatype, "ttl": answer.ttl, "rdata": answer.rdata}


def _option_dict(option: DnsOption) -> Dict[str, Any]:
    return {"code": option.code, "name": option.name, "data": option.data}


def _flatten_into(out: Dict[str, Any], value: Any, prefix: str) -> None:
    if isinstance(value, dict):
        if not value and prefix:
            out[prefix] = {}
            return
        for key, item in value.items():
            _flatten_into(out, item, f"{prefix}.{key}" if prefix else key)
    elif isinstance(value, list):
        if not value:
            out[prefix] = []
            return
        for index, item in enumerate(value):
            _flatten_into(out, item, f"{prefix}.{index}")
    else:
        out[prefix] = value


@dataclass
class DnsMessage:
    network_info: DnsNetInfo = field(default_factory=DnsNetInfo)
    dns: Dns = field(default_factory=Dns)
    edns: DnsExtended = field(default_factory=DnsExtended)
    dnstap: DnsTap = field(default_factory=DnsTap)
    geo: Optional[TransformDnsGeo] = None
    powerdns: Optional[PowerDns] = None
    suspicious: Optional[TransformSuspicious] = None
    public_suffix: Optional[TransformPublicSuffix] = None
    extracted: Optional[TransformExtracted] = None
    reducer: Optional[TransformReducer] = None

    def init(self) -> None:
        """Reset the core sections to their "-" placeholders."""
        self.network_info = DnsNetInfo(
            family="-",
            protocol="-",
            query_ip="-",
            query_port="-",
            response_ip="-",
            response_port="-",
        )
        self.dnstap = DnsTap(
            operation="-",
            identity="-",
            version="-",
            timestamp_rfc3339="-",
            latency_sec="-",
        )
        self.dns = Dns(type="-", rcode="-", qtype="-", qname="-")
        self.edns = DnsExtended()

    def to_dict(self) -> Dict[str, Any]:
        """Return the JSON-shaped view of the message."""
        net = self.network_info
        dns = self.dns
        tap = self.dnstap
        result: Dict[str, Any] = {
            "network": {
                "family": net.family,
                "protocol": net.protocol,
                "query-ip": net.query_ip,
                "query-port": net.query_port,
                "response-ip": net.response_ip,
                "response-port": net.response_port,
                "ip-defragmented": net.ip_defragmented,
                "tcp-reassembled": net.tcp_reassembled,
            },
            "dns": {
                "length": dns.length,
                "opcode": dns.opcode,
                "rcode": dns.rcode,
                "qname": dns.qname,
                "qtype": dns.qtype,
                "flags": {
                    "qr": dns.flags.qr,
                    "tc": dns.flags.tc,
                    "aa": dns.flags.aa,
                    "ra": dns.flags.ra,
                    "ad": dns.flags.ad,
                },
                "resource-records": {
                    "an": [_answer_dict(a) for a in dns.rrs.answers],
                    "ns": [_answer_dict(a) for a in dns.rrs.nameservers],
                    "ar": [_answer_dict(a) for a in dns.rrs.records],
                },
                "malformed-packet": dns.malformed_packet,
            },
            "edns": {
                "udp-size": self.edns.udp_size,
                "rcode": self.edns.extended_rcode,
                "version": self.edns.version,
                "dnssec-ok": self.edns.do,
                "options": [_option_dict(o) for o in self.edns.options],
            },
            "dnstap": {
                "operation": tap.operation,
                "identity": tap.identity,
                "version": tap.version,
                "timestamp-rfc3339ns": tap.timestamp_rfc3339,
                "latency": tap.latency_sec,
            },
        }
        if self.geo is not None:
            result["geoip"] = {
                "city": self.geo.city,
                "continent": self.geo.continent,
                "country-isocode": self.geo.country_iso_code,
                "as-number": self.geo.autonomous_system_number,
                "as-owner": self.geo.autonomous_system_org,
            }
        if self.powerdns is not None:
            pdns = self.powerdns
            result["powerdns"] = {
                "tags": list(pdns.tags) if pdns.tags is not None else None,
                "original-request-subnet": pdns.original_request_subnet,
                "applied-policy": pdns.applied_policy,
                "metadata": dict(pdns.metadata) if pdns.metadata is not None else None,
            }
        if self.suspicious is not None:
            sus = self.suspicious
            section: Dict[str, Any] = {
                "score": sus.score,
                "malformed-pkt": sus.malformed_packet,
                "large-pkt": sus.large_packet,
                "long-domain": sus.long_domain,
                "slow-domain": sus.slow_domain,
                "unallowed-chars": sus.unallowed_chars,
                "uncommon-qtypes": sus.uncommon_qtypes,
                "excessive-number-labels": sus.excessive_number_labels,
            }
            if sus.domain:
                section["domain"] = sus.domain
            result["suspicious"] = section
        if self.public_suffix is not None:
            result["publicsuffix"] = {
                "tld": self.public_suffix.qname_public_suffix,
                "etld+1": self.public_suffix.qname_effective_tld_plus_one,
            }
        if self.extracted is not None:
            raw = self.extracted.base64_payload
            result["extracted"] = {
                "dns_payload": base64.b64encode(raw).decode("ascii") if raw is not None else None,
            }
        if self.reducer is not None:
            result["reducer"] = {"occurences": self.reducer.occurences}
        return result

    def to_json(self) -> str:
        """Serialize the message as one line of JSON."""
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False) + "\n"

    def flatten(self) -> Dict[str, Any]:
        """Return the JSON view with nested keys joined by dots."""
        out: Dict[str, Any] = {}
        _flatten_into(out, self.to_dict(), "")
        return out

    def to_flatten_json(self) -> str:
        """Serialize the flattened view as one line of JSON with sorted keys."""
        return json.dumps(self.flatten(), separators=(",", ":"), ensure_ascii=False, sort_keys=True) + "\n"


def _atoi(text: str) -> int:
    return int(text) if _INT_RE.fullmatch(text) else 0


def get_ip_port(dm: DnsMessage) -> Tuple[str, int, str, int]:
    """Return (src ip, src port, dst ip, dst port) as seen on the wire."""
    src_ip, src_port = "0.0.0.0", 53
    dst_ip, dst_port = "0.0.0.0", 53
    if dm.network_info.family == "INET6":
        src_ip, dst_ip = "::", "::"

    if dm.network_info.query_ip != "-":
        src_ip = dm.network_info.query_ip
        src_port = _atoi(dm.network_info.query_port)
    if dm.network_info.response_ip != "-":
        dst_ip = dm.network_info.response_ip
        dst_port = _atoi(dm.network_info.response_port)

    if dm.dns.type == DNS_REPLY:
        return dst_ip, dst_port, src_ip, src_port
    return src_ip, src_port, dst_ip, dst_port


def get_fake_dns_message() -> DnsMessage:
    """Return a small, fully initialised query message."""
    dm = DnsMessage()
    dm.init()
    dm.dnstap.identity = "collector"
    dm.dnstap.operation = "CLIENT_QUERY"
    dm.dns.type = DNS_QUERY
    dm.dns.qname = "dns.collector"
    dm.network_info.query_ip = "1.2.3.4"
    dm.network_info.query_port = "1234"
    dm.network_info.response_ip = "4.3.2.1"
    dm.network_info.response_port = "4321"
    dm.dns.rcode = "NOERROR"
    dm.dns.qtype = "A"
    return dm