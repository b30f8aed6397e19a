import ipaddress
import struct

import pytest

from dnscollect.dns import (
    AnswerTooShortError,
    DnsAnswer,
    HeaderTooShortError,
    LabelInvalidDataError,
    LabelInvalidOffsetError,
    LabelInvalidPointerError,
    LabelTooLongError,
    LabelTooShortError,
    QtypeTooShortError,
    RdataTooShortError,
    decode_answer,
    decode_dns,
    decode_question,
    parse_aaaa,
    parse_labels,
    parse_rdata,
    rcode_to_string,
    rdatatype_to_string,
)

TEST_QNAME = "dnstapcollector.test."
QNAME_WIRE = b"\x0fdnstapcollector\x04test\x00"


def encode_name(name):
    out = b""
    for label in name.rstrip(".").split("."):
        if label:
            out += bytes([len(label)]) + label.encode()
    return out + b"\x00"


def rr(name, rtype, rdata, ttl=3600):
    return encode_name(name) + struct.pack(">HHIH", rtype, 1, ttl, len(rdata)) + rdata


def build_message(qname, qtype, answers=(), authority=(), flags=0x0100):
    header = struct.pack(">HHHHHH", 0xABCD, flags, 1, len(answers), len(authority), 0)
    question = encode_name(qname) + struct.pack(">HH", qtype, 1)
    return header + question + b"".join(answers) + b"".join(authority)


def single_rr_packet(rtype, rdlength, rdata):
    header = bytes([0x43, 0xAC, 0x01, 0x00, 0x00, 0x01, 0x00, 0x01, 0, 0, 0, 0])
    question = QNAME_WIRE + b"\x00\x01\x00\x01"
    answer = QNAME_WIRE + struct.pack(">HHIH", rtype, 1, 0x0E10, rdlength) + rdata
    return header + question + answer


def decode_first_answer(payload, count=1):
    _, _, offset = decode_question(1, payload)
    answers, _ = decode_answer(count, offset, payload)
    return answers


def test_rcode_valid():
    assert rcode_to_string(0) == "NOERROR"


def test_rcode_invalid():
    assert rcode_to_string(100000) == "UNKNOWN"


def test_rdatatype_valid():
    assert rdatatype_to_string(1) == "A"


def test_rdatatype_invalid():
    assert rdatatype_to_string(100000) == "UNKNOWN"


def test_decode_dns():
    header = decode_dns(build_message(TEST_QNAME, 1))
    assert header.id == 0xABCD
    assert header.qdcount == 1
    assert header.rd == 1
    assert header.qr == 0


def test_decode_dns_header_too_short():
    with pytest.raises(HeaderTooShortError):
        decode_dns(bytes([183, 59]))


def test_decode_question():
    payload = build_message(TEST_QNAME, 1)
    qname, qtype, offset = decode_question(1, payload)
    assert qname + "." == TEST_QNAME
    assert rdatatype_to_string(qtype) == "A"
    assert offset == len(payload)


QUESTIONS_3 = bytes([
    0x9E, 0x84, 0x01, 0x20, 0x00, 0x03, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00,
    0x01, 0x61, 0x00, 0x00, 0x01, 0x00, 0x01,
    0x01, 0x62, 0x00, 0x00, 0x01, 0x00, 0x01,
    0x01, 0x63, 0x00, 0x00, 0x1C, 0x00, 0x01,
])


def test_decode_question_multiple():
    qname, qtype, offset = decode_question(3, QUESTIONS_3)
    assert qname == "c"
    assert rdatatype_to_string(qtype) == "AAAA"
    assert offset == 33


def test_decode_question_multiple_invalid_count():
    with pytest.raises(LabelTooShortError):
        decode_question(4, QUESTIONS_3)


def test_decode_answer_ns():
    payload = build_message(
        TEST_QNAME,
        1,
        answers=[rr(TEST_QNAME, 1, bytes([127, 0, 0, 1]))],
        authority=[rr("root-servers.net", 2, encode_name("c.root-servers.net"))],
        flags=0x8500,
    )
    _, _, offset = decode_question(1, payload)
    answers, offset = decode_answer(1, offset, payload)
    ns, end = decode_answer(1, offset, payload)
    assert answers[0].rdata == "127.0.0.1"
    assert len(ns) == 1
    assert ns[0].name == "root-servers.net"
    assert ns[0].rdata == "c.root-servers.net"
    assert end == len(payload)


def test_decode_answer_two_records():
    payload = build_message(
        TEST_QNAME,
        1,
        answers=[rr(TEST_QNAME, 1, bytes([127, 0, 0, 1])), rr(TEST_QNAME, 1, bytes([127, 0, 0, 2]))],
    )
    answers = decode_first_answer(payload, 2)
    assert [a.rdata for a in answers] == ["127.0.0.1", "127.0.0.2"]
    assert answers[0] == DnsAnswer(
        name="dnstapcollector.test", rdatatype="A", rclass=1, ttl=3600, rdata="127.0.0.1"
    )


def test_decode_answer_qname_minimized():
    payload = bytes([
        0x8d, 0xda, 0x81, 0x80, 0x00, 0x01, 0x00, 0x04, 0x00, 0x00, 0x00, 0x01, 0x05, 0x74,
        0x65, 0x61, 0x6d, 0x73, 0x09, 0x6d, 0x69, 0x63, 0x72, 0x6f, 0x73, 0x6f, 0x66, 0x74,
        0x03, 0x63, 0x6f, 0x6d, 0x00, 0x00, 0x01, 0x00, 0x01, 0xc0, 0x0c, 0x00, 0x05, 0x00,
        0x01, 0x00, 0x00, 0x50, 0xa8, 0x00, 0x0f, 0x05, 0x74, 0x65, 0x61, 0x6d, 0x73, 0x06,
        0x6f, 0x66, 0x66, 0x69, 0x63, 0x65, 0xc0, 0x1c, 0xc0, 0x31, 0x00, 0x05, 0x00, 0x01,
        0x00, 0x00, 0x00, 0x3e, 0x00, 0x26, 0x10, 0x74, 0x65, 0x61, 0x6d, 0x73, 0x2d, 0x6f, 0x66,
        0x66, 0x69, 0x63, 0x65, 0x2d, 0x63, 0x6f, 0x6d, 0x06, 0x73, 0x2d, 0x30, 0x30, 0x30, 0x35,
        0x08, 0x73, 0x2d, 0x6d, 0x73, 0x65, 0x64, 0x67, 0x65, 0x03, 0x6e, 0x65, 0x74, 0x00, 0xc0,
        0x4c, 0x00, 0x05, 0x00, 0x01, 0x00, 0x00, 0x00, 0x7a, 0x00, 0x13, 0x06, 0x73, 0x2d, 0x30,
        0x30, 0x30, 0x35, 0x09, 0x64, 0x63, 0x2d, 0x6d, 0x73, 0x65, 0x64, 0x67, 0x65, 0xc0, 0x6d,
        0xc0, 0x7e, 0x00, 0x01, 0x00, 0x01, 0x00, 0x00, 0x00, 0x09, 0x00, 0x04, 0x34, 0x71, 0xc3,
        0x84, 0x00, 0x00, 0x29, 0x02, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00,
    ])
    answers = decode_first_answer(payload, 4)
    assert len(answers) == 4
    assert answers[0].rdata == "teams.office.com"
    assert answers[3].rdata == "52.113.195.132"


@pytest.mark.parametrize(
    "rtype, rdata, expected",
    [
        (1, bytes([127, 0, 0, 1]), "127.0.0.1"),
        (28, ipaddress.IPv6Address("fe8::2").packed, "fe8::2"),
        (5, encode_name("test.collector.org"), "test.collector.org"),
        (15, struct.pack(">H", 5) + encode_name("gmail-smtp-in.l.google.com"), "5 gmail-smtp-in.l.google.com"),
        (33, struct.pack(">HHH", 20, 0, 5222) + encode_name("alt2.xmpp.l.google.com"),
         "20 0 5222 alt2.xmpp.l.google.com"),
        (2, encode_name("ns1.dnscollector"), "ns1.dnscollector"),
        (16, bytes([11]) + b"hello world", "hello world"),
        (12, encode_name("one.one.one.one"), "one.one.one.one"),
        (6, encode_name("ns1.google.com") + encode_name("dns-admin.google.com")
         + struct.pack(">IIIII", 412412655, 900, 900, 1800, 60),
         "ns1.google.com dns-admin.google.com 412412655 900 900 1800 60"),
    ],
)
def test_decode_rdata(rtype, rdata, expected):
    payload = build_message(TEST_QNAME, 1, answers=[rr(TEST_QNAME, rtype, rdata)])
    answers = decode_first_answer(payload)
    assert answers[0].rdata == expected


@pytest.mark.parametrize(
    "rtype, rdlength, rdata",
    [
        (1, 3, bytes([0x7F, 0, 0])),
        (28, 12, bytes([0xFE, 0x80]) + bytes(11)),
        (15, 1, bytes([0])),
        (33, 4, bytes([0x00, 0x14, 0x00, 0x00])),
        (16, 0, b""),
        (16, 10, bytes([0x0B]) + b"hello wor"),
        (6, 54, encode_name("ns1.google.com") + encode_name("dns-admin.google.com")
         + bytes([0x18, 0x94, 0xEA, 0xEF, 0, 0, 3, 0x84, 0, 0, 3, 0x84, 0, 0, 7, 8])),
    ],
)
def test_decode_rdata_too_short(rtype, rdlength, rdata):
    payload = single_rr_packet(rtype, rdlength, rdata)
    _, _, offset = decode_question(1, payload)
    with pytest.raises(RdataTooShortError) as info:
        decode_answer(1, offset, payload)
    assert info.value.partial == []
    assert info.value.offset == offset


def test_decode_rdata_mx_minimal():
    answers = decode_first_answer(single_rr_packet(15, 3, bytes(3)))
    assert answers[0].rdata == "0 "


def test_decode_rdata_srv_minimal():
    payload = single_rr_packet(33, 7, bytes([0x00, 0x14, 0x00, 0x00, 0x00, 0x10, 0x00]))
    assert decode_first_answer(payload)[0].rdata == "20 0 16 "


def test_decode_rdata_txt_no_txt():
    assert decode_first_answer(single_rr_packet(16, 1, bytes([0])))[0].rdata == ""


def test_decode_rdata_soa_minimization():
    payload = bytes([
        164, 66, 129, 128, 0, 1, 0, 0, 0, 1, 0, 0, 8, 102, 114, 101, 115, 104, 114, 115, 115, 4, 109,
        99, 104, 100, 2, 109, 101, 0, 0, 28, 0, 1, 192, 21, 0, 6, 0, 1, 0, 0, 0, 60, 0, 43, 6, 100, 110, 115, 49, 48,
        51, 3, 111, 118, 104, 3, 110, 101, 116, 0, 4, 116, 101, 99, 104, 192, 53,
        120, 119, 219, 34, 0, 1, 81, 128, 0, 0, 14, 16, 0, 54, 238, 128, 0, 0, 0, 60,
    ])
    answers = decode_first_answer(payload)
    assert answers[0].name == "mchd.me"
    assert answers[0].rdatatype == "SOA"
    assert answers[0].rdata.startswith("dns103.ovh.net tech.ovh.net ")


def test_decode_answer_skip_opt():
    header = bytes([0x43, 0xAC, 0x01, 0x00, 0x00, 0x01, 0x00, 0x02, 0, 0, 0, 0])
    payload = (
        header + QNAME_WIRE + b"\x00\x01\x00\x01"
        + QNAME_WIRE + struct.pack(">HHIH", 41, 1, 0x0E10, 1) + b"\x01"
        + QNAME_WIRE + struct.pack(">HHIH", 1, 1, 0x0E10, 4) + bytes([127, 0, 0, 1])
    )
    answers = decode_first_answer(payload, 2)
    assert len(answers) == 1
    assert answers[0].rdatatype == "A"
    assert answers[0].rdata == "127.0.0.1"


def test_decode_question_invalid_offset():
    with pytest.raises(LabelTooShortError):
        decode_question(1, bytes([183, 59, 130, 217, 128, 16, 0, 51, 165, 67, 0, 0]))


def test_decode_question_packet_too_short():
    with pytest.raises(LabelTooShortError):
        decode_question(1, bytes([183, 59, 130, 217, 128, 16, 0, 51, 165, 67, 0, 0, 1, 1, 8, 10, 23]))


def test_decode_question_qtype_missing():
    payload = bytes([88, 27, 1, 0, 0, 1, 0, 0, 0, 0, 0, 0]) + QNAME_WIRE
    with pytest.raises(QtypeTooShortError):
        decode_question(1, payload)


def test_decode_question_invalid_pointer():
    with pytest.raises(LabelTooShortError):
        decode_question(1, bytes([88, 27, 1, 0, 0, 1, 0, 0, 0, 0, 0, 0, 202]))


ANSWER_PREFIX = [
    46, 172, 1, 0, 0, 1, 0, 1, 0, 0, 0, 0, 15, 100, 110, 115, 116, 97, 112, 99, 111, 108, 108, 101, 99, 116,
    111, 114, 4, 116, 101, 115, 116, 0, 0, 1, 0, 1, 15, 100, 110, 115, 116, 97, 112, 99, 111, 108, 108, 101, 99, 116,
    111, 114, 4, 116, 101, 115, 116, 0, 0, 1, 0, 1, 0, 0, 14, 16,
]


def test_decode_answer_packet_too_short():
    payload = bytes(ANSWER_PREFIX + [0])
    _, _, offset = decode_question(1, payload)
    with pytest.raises(AnswerTooShortError):
        decode_answer(1, offset, payload)


def test_decode_answer_rdata_too_short():
    payload = bytes(ANSWER_PREFIX + [0, 4, 127, 0])
    _, _, offset = decode_question(1, payload)
    with pytest.raises(RdataTooShortError):
        decode_answer(1, offset, payload)


def test_decode_answer_pathological_packet():
    decoded = bytearray(65500)
    decoded[:12] = bytes([88, 27, 1, 0, 0, 1, 0, 0, 0, 0, 0, 0])
    i = 12
    while True:
        if 16384 - i < 384:
            decoded[i] = 0
            break
        for _ in range(96):
            decoded[i] = 191
            i += 2
        for _ in range(95):
            off = i - 192 + 2
            decoded[i] = 0xC0 | (off >> 8)
            decoded[i + 1] = off & 0xFF
            i += 2
        off = i + 2
        decoded[i] = 0xC0 | (off >> 8)
        decoded[i + 1] = off & 0xFF
        i += 2
    decoded[i:i + 4] = bytes([0, 5, 0, 1])
    i += 4
    ancount = 0
    j = i
    while j + 13 <= len(decoded):
        decoded[j:j + 13] = bytes([0, 0, 5, 0, 0, 0, 0, 0, 1, 0, 2, 192, 12])
        ancount += 1
        j += 13
    decoded[6] = ancount >> 8
    decoded[7] = ancount & 0xFF
    with pytest.raises(LabelInvalidDataError):
        decode_answer(ancount, i, bytes(decoded))


INVALID_PTR_PREFIX = [128, 177, 129, 160, 0, 1, 0, 1, 0, 0, 0, 1, 5, 104, 101, 108, 108, 111, 4,
                      109, 99, 104, 100, 2, 109, 101, 0, 0, 1, 0, 1]
RR_TAIL = [0, 1, 0, 1, 0, 0, 14, 16, 0, 4, 83, 112, 146, 176]


@pytest.mark.parametrize(
    "payload",
    [
        bytes(INVALID_PTR_PREFIX + [192, 254] + RR_TAIL),
        bytes(INVALID_PTR_PREFIX + [192, 31] + RR_TAIL),
        bytes(INVALID_PTR_PREFIX[:7] + [2] + INVALID_PTR_PREFIX[8:] + [192, 47] + RR_TAIL + [192, 31] + RR_TAIL),
    ],
)
def test_decode_answer_invalid_pointer(payload):
    _, _, offset = decode_question(1, payload)
    with pytest.raises(LabelInvalidPointerError):
        decode_answer(1, offset, payload)


def test_label_negative_offset():
    with pytest.raises(LabelInvalidOffsetError):
        parse_labels(-1, bytes([0x01, 0x61, 0x00]))


@pytest.mark.parametrize(
    "offset, payload",
    [
        (4, bytes([0x01, 0x61, 0x00])),
        (0, bytes([0x01, 0x61])),
        (0, bytes([0x01, 0x61, 0xC0])),
        (0, bytes([0x01])),
    ],
)
def test_label_too_short(offset, payload):
    with pytest.raises(LabelTooShortError):
        parse_labels(offset, payload)


def test_label_no_extra_dot_after_pointer():
    label, _ = parse_labels(1, bytes([0x00, 0x01, 0x61, 0xC0, 0x00]))
    assert label == "a"


@pytest.mark.parametrize("payload", [bytes([0x40]), bytes([0x80])])
def test_label_invalid_length_byte(payload):
    with pytest.raises(LabelInvalidDataError):
        parse_labels(0, payload)


def _label(size):
    return bytes([size]) + b"a" * size


def test_label_valid_total_length():
    payload = _label(63) * 3 + _label(61) + b"\x00"
    label, end = parse_labels(0, payload)
    assert label == ".".join(["a" * 63] * 3 + ["a" * 61])
    assert end == len(payload)


def test_label_invalid_total_length_without_pointer():
    with pytest.raises(LabelTooLongError):
        parse_labels(0, _label(63) * 3 + _label(62) + b"\x00")


def test_label_invalid_total_length_with_pointer():
    payload = _label(63) * 3 + b"\x3c" + b"a" * 61 + b"\x00\x01a\xc0\x00"
    with pytest.raises(LabelTooLongError):
        parse_labels(255, payload)


@pytest.mark.parametrize(
    "offset, payload",
    [
        (0, bytes([0x01, 0x61, 0xC0, 0x00])),
        (0, bytes([0xC0, 0x02, 0x00])),
        (0, bytes([0x01, 0x02, 0xC0, 0x01, 0x00])),
        (2, bytes([0x01, 0x61, 0x01, 0x61, 0xC0, 0x00])),
        (1, bytes([0x01, 0x01, 0x00, 0xC0, 0x00])),
        (3, bytes([0x00, 0x00, 0xC0, 0x01, 0x00, 0xC0, 0x02])),
    ],
)
def test_label_invalid_pointer(offset, payload):
    with pytest.raises(LabelInvalidPointerError):
        parse_labels(offset, payload)


def test_label_end_offset_without_pointer():
    assert parse_labels(0, bytes([0x02, 0x61, 0x61, 0x00])) == ("aa", 4)


def test_label_end_offset_with_pointer():
    assert parse_labels(3, bytes([0x01, 0x61, 0x00, 0x02, 0x61, 0x61, 0xC0, 0x00])) == ("aa.a", 8)


def test_parse_rdata_unsupported_type():
    assert parse_rdata("HINFO", b"\x01\x02", b"", 0) == "-"


def test_parse_aaaa_ipv4_mapped():
    raw = bytes(10) + b"\xff\xff" + bytes([1, 2, 3, 4])
    assert parse_aaaa(raw) == "1.2.3.4"