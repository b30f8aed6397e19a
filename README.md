# dnscollect

A small library with no dependencies. It decodes DNS messages in wire format
into plain Python records. It can then render them as JSON, as a flattened
JSON object, or as a configurable line of text.

## Modules

- `dnscollect.dns` decodes the 12-byte header (`decode_dns`) and the
  question section (`decode_question`). It also decodes resource records
  (`decode_answer`) and compressed domain names (`parse_labels`). Compression
  pointers must point to earlier data, and a name may be at most 254 bytes.
  For A, AAAA, CNAME, MX, SRV, NS, TXT, PTR and SOA records the rdata is
  rendered as text (`parse_rdata` and the `parse_*` helpers). Other record
  types render as `"-"`. OPT records are skipped by `decode_answer`.
- `dnscollect.edns` decodes the OPT record (`decode_edns`) into a
  `DnsExtended` holding the UDP size, the extended rcode, the version, the DO
  bit, Z and a list of `DnsOption`. The Client Subnet option
  (`parse_csubnet`) and the Extended DNS Error option (`parse_errors`) are
  rendered as text. Other options render as `"-"`.
- `dnscollect.message` holds the `DnsMessage` dataclass and its parts
  (`Dns`, `DnsFlags`, `DnsRRs`, `DnsNetInfo`, `DnsTap`). It also holds the
  optional enrichment records `PowerDns`, `TransformDnsGeo`,
  `TransformSuspicious`, `TransformPublicSuffix`, `TransformExtracted` and
  `TransformReducer`. It has the helpers `get_ip_port` and
  `get_fake_dns_message`.
- `dnscollect.payload` provides `decode_payload(dm, header)`. It fills a
  `DnsMessage` from its raw payload.
- `dnscollect.textformat` provides `to_text` and `to_bytes`, which render a
  message as one delimited line.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Decoding a packet

```python
from dnscollect.dns import decode_dns
from dnscollect.message import DnsMessage
from dnscollect.payload import decode_payload

raw = bytes.fromhex(
    "9e84 0120 0001 0000 0000 0001"          # header
    "0b73656e736f72666c656574 03636f6d 00"   # sensorfleet.com
    "0001 0001"                              # type A, class IN
    "00 0029 1000 00008000 0000"             # OPT, udp size 4096, DO
)

dm = DnsMessage()
dm.init()
dm.dns.payload = raw
dm.dns.length = len(raw)

header = decode_dns(raw)
decode_payload(dm, header)

print(dm.dns.qname, dm.dns.qtype)  # sensorfleet.com A
print(dm.edns.udp_size, dm.edns.do)  # 4096 1
```

## Errors

Every decoding failure raises a subclass of `dnscollect.dns.DnsDecodeError`,
which is itself a `ValueError`. The subclasses are:

- `HeaderTooShortError`
- `LabelTooLongError`, `LabelInvalidDataError`, `LabelInvalidOffsetError`,
  `LabelInvalidPointerError`, `LabelTooShortError`
- `QtypeTooShortError`, `AnswerTooShortError`, `RdataTooShortError`
- `EdnsBadRootDomainError`, `EdnsDataTooShortError`,
  `EdnsOptionTooShortError`, `EdnsCsubnetBadFamilyError`,
  `EdnsTooManyOptsError` (all in `dnscollect.edns`)

When `decode_answer` or `decode_edns` fails, the error carries what was
decoded so far in `partial`. It also carries the last good offset in
`offset`.

`decode_payload` marks the message as malformed and raises
`PayloadDecodeError`. The error names the failing part in `part` and holds
the cause in `error`. There is one exception. If the TC flag is set and a
section ends early, the records decoded so far are kept. The message is then
marked as malformed and no error is raised. A message that is already marked
as malformed is left untouched.

## Output formats

```python
from dnscollect.message import get_fake_dns_message
from dnscollect.textformat import to_text

dm = get_fake_dns_message()
print(dm.to_json(), end="")
print(dm.flatten()["dns.qname"])                           # dns.collector
print(to_text(dm, ["qr", "qname", "qtype", "rcode"], " ", '"'))
# QUERY dns.collector A NOERROR
```

`to_dict` returns the JSON-shaped dictionary. Enrichment sections appear in
it only when they are set. `to_json` serializes that dictionary on a single
line. `flatten` joins nested keys with dots. `to_flatten_json` serializes the
flattened view with sorted keys.

Text directives:

- `timestamp`, `timestamp-rfc3339ns`, `timestamp-unixns`, `timestamp-unixus`,
  `timestamp-unixms`, `localtime` (in the local time zone)
- `identity`, `version`, `operation`
- `queryip`, `queryport`, `responseip`, `responseport`, `family`, `protocol`
- `qname`, `qtype`, `qr`, `opcode`, `rcode`, `id`, `length`
- `answer`, `answercount`, `ttl`, `latency`, `edns-csubnet`
- `malformed`, `tc`, `aa`, `ra`, `ad`, `df`, `tr`

If the qname contains the field delimiter, it is wrapped in the field
boundary. Any boundary characters inside it are escaped with a backslash.

Directives that start with `powerdns`, `geoip`, `suspicious`,
`publixsuffix`, `extracted` or `reducer` read from the matching enrichment
record. They render `"-"` when that record is not set. A directive may take
an argument after a colon:

- `powerdns-tags:1` selects the tag at index 1
- `powerdns-metadata:key` selects the metadata value for `key`

An unknown directive raises `UnsupportedDirectiveError`. A tag index that is
not an integer, or is negative, also raises it.

## What this package does not do

It only decodes and renders messages that are already in memory. These are
outside it:

- capturing traffic
- listening for or receiving dnstap streams
- encoding messages as dnstap protobuf
- sending them to remote loggers

There is no command-line tool and no configuration file. The enrichment
records (PowerDNS, GeoIP, suspicious-score, public-suffix, reducer) are only
containers. Nothing in the package computes their contents.