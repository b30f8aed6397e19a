"""Decoding of a raw DNS payload into the sections of a message."""

from __future__ import annotations

from .dns import (
    AnswerTooShortError,
    DnsDecodeError,
    DnsHeader,
    LabelTooShortError,
    RdataTooShortError,
    decode_answer,
    decode_question,
    rcode_to_string,
    rdatatype_to_string,
)
from .edns import EdnsDataTooShortError, EdnsOptionTooShortError, decode_edns
from .message import DnsMessage

_TRUNCATION_ERRORS = (AnswerTooShortError, RdataTooShortError, LabelTooShortError)
_EDNS_TRUNCATION_ERRORS = _TRUNCATION_ERRORS + (EdnsDataTooShortError, EdnsOptionTooShortError)


class PayloadDecodeError(ValueError):
    """A part of the DNS payload could not be decoded; ``error`` is the cause."""

    def __init__(self, part: str, error: DnsDecodeError):
        super().__init__(f"malformed {part} in DNS packet: {error}")
        self.part = part
        self.error = error


def _fail(dm: DnsMessage, part: str, error: DnsDecodeError) -> PayloadDecodeError:
    dm.dns.malformed_packet = True
    return PayloadDecodeError(part, error)


def decode_payload(dm: DnsMessage, header: DnsHeader) -> None:
    """Fill ``dm`` from ``dm.dns.payload`` according to ``header``.

    A message already marked malformed is left untouched. Truncated replies
    (TC set) that end early are kept and marked malformed; any other decoding
    failure marks the message malformed and raises PayloadDecodeError.
    """
    if dm.dns.malformed_packet:
        return

    dns = dm.dns
    dns.id = header.id
    dns.rcode = rcode_to_string(header.rcode)
    dns.opcode = header.opcode

    if dns.opcode == 5:
        dm.dnstap.operation = "UPDATE_QUERY" if header.qr == 1 else "UPDATE_RESPONSE"

    if header.qr == 1:
        dns.flags.qr = True
    if header.tc == 1:
        dns.flags.tc = True
    if header.aa == 1:
        dns.flags.aa = True
    if header.ra == 1:
        dns.flags.ra = True
    if header.ad == 1:
        dns.flags.ad = True

    payload = dns.payload
    offset = 0

    if header.qdcount > 0:
        try:
            qname, qtype, offset = decode_question(header.qdcount, payload)
        except DnsDecodeError as err:
            raise _fail(dm, "query", err) from err
        dns.qname = qname
        dns.qtype = rdatatype_to_string(qtype)

    sections = (
        (header.ancount, "answer records", "answers"),
        (header.nscount, "authority records", "nameservers"),
    )
    for count, part, attribute in sections:
        if count <= 0:
            continue
        try:
            records, offset = decode_answer(count, offset, payload)
        except DnsDecodeError as err:
            if not (dns.flags.tc and isinstance(err, _TRUNCATION_ERRORS)):
                raise _fail(dm, part, err) from err
            dns.malformed_packet = True
            records, offset = err.partial, err.offset
        setattr(dns.rrs, attribute, records)

    if header.arcount > 0:
        try:
            records, _ = decode_answer(header.arcount, offset, payload)
        except DnsDecodeError as err:
            if not (dns.flags.tc and isinstance(err, _TRUNCATION_ERRORS)):
                raise _fail(dm, "additional records", err) from err
            dns.malformed_packet = True
            records = err.partial
        dns.rrs.records = records

        try:
            edns, _ = decode_edns(header.arcount, offset, payload)
        except DnsDecodeError as err:
            if not (dns.flags.tc and isinstance(err, _EDNS_TRUNCATION_ERRORS)):
                raise _fail(dm, "edns options", err) from err
            dns.malformed_packet = True
            edns = err.partial
        dm.edns = edns