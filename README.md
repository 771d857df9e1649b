# hycore

`hycore` holds the core pieces of a QUIC-based proxy protocol. It has no
dependencies outside the standard library.

## What is in it

- `hycore.protocol` encodes and decodes the protocol's messages:
  - authentication headers: `AuthRequest`, `AuthResponse` and
    `auth_request_from_header`, `auth_request_to_header`,
    `auth_response_from_header`, `auth_response_to_header`. These work on any
    mutable mapping of header names to strings and match names without regard
    to case. The `*_to_header` functions also add a random `Hysteria-Padding`
    header.
  - TCP frames: `write_tcp_request`, `read_tcp_request`, `write_tcp_response`
    and `read_tcp_response` on binary streams. `read_tcp_request` expects the
    frame type to have been read already.
  - UDP datagrams: `UDPMessage` (with `header_size()`, `size()` and
    `serialize()`) and `parse_udp_message`.
  - QUIC variable-length integers: `varint_encode`, `varint_len`, `read_varint`.
  - `Padding`, whose `generate()` returns a random alphanumeric string.
- `hycore.frag` splits a `UDPMessage` that is too large (`frag_udp_message`)
  and joins the fragments again (`Defragger.feed`). A `Defragger` tracks one
  packet ID at a time. A fragment of another packet discards what was
  collected for the previous one.
- `hycore.utils` provides `AtomicTime`, a lock-protected `datetime` holder,
  and `path_mtu_discovery_disabled(platform=None)`. That function returns
  `False` only on Linux, Windows and macOS. `DISABLE_PATH_MTU_DISCOVERY`
  holds its result for the running platform.
- `hycore.congestion` holds the congestion control building blocks:
  - `common`: `Pacer`, a token-bucket pacer, and the `AckedPacketInfo` and
    `LostPacketInfo` records.
  - `brutal`: `BrutalSender`, which sends at a fixed rate and raises that rate
    to make up for the observed loss. The ack rate it uses is clamped to
    [0.8, 1].
  - `bandwidth`: `bandwidth_from_delta` and `DefaultClock`.
  - `windowed_filter`: `WindowedFilter`, with `max_filter` and `min_filter`
    comparators.
  - `ringbuffer`: `RingBuffer`.
  - `packet_queue`: `PacketNumberIndexedQueue`.
  - `sampler_state`: the records behind the sampler, plus
    `MaxAckHeightTracker` and `RecentAckPoints`.
  - `bandwidth_sampler`: `BandwidthSampler`, which produces a bandwidth
    sample for every acknowledged packet.

In the congestion modules, times are integer nanoseconds and bandwidth is
bits per second. The exceptions are `Pacer` and `BrutalSender`, whose rates
are bytes per second.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Examples

Fragmenting and reassembling a datagram:

```python
from hycore.protocol import UDPMessage, parse_udp_message
from hycore.frag import frag_udp_message, Defragger

message = UDPMessage(session_id=1, packet_id=7, frag_id=0, frag_count=1,
                     addr="example.com:53", data=b"x" * 3000)
defragger = Defragger()
result = None
for piece in frag_udp_message(message, 1200):
    result = defragger.feed(parse_udp_message(piece.serialize())) or result
assert result.data == message.data
```

Writing and reading a TCP request frame:

```python
import io
from hycore.protocol import write_tcp_request, read_tcp_request, read_varint

buffer = io.BytesIO()
write_tcp_request(buffer, "example.com:443")
buffer.seek(0)
read_varint(buffer)               # frame type, 0x401
print(read_tcp_request(buffer))   # example.com:443
```

A fixed-rate sender needs an object that reports RTTs in nanoseconds:

```python
from hycore.congestion.brutal import BrutalSender

class Stats:
    def min_rtt(self):
        return 0
    def smoothed_rtt(self):
        return 50_000_000   # 50 ms

sender = BrutalSender(1_250_000)   # bytes per second
sender.set_rtt_stats_provider(Stats())
print(sender.get_congestion_window())   # 125000
```

Protocol violations raise `hycore.protocol.ProtocolError`. A stream that ends
too early raises `EOFError`.

Setting the environment variable `HYSTERIA_BRUTAL_DEBUG` to a true value makes
`BrutalSender` print its ack rate to standard output.

## What it does not do

This package has no client, no server and no command-line program. It does no
QUIC transport or TLS, and it does not open sockets. The congestion modules
provide a pacer, the fixed-rate sender and the BBR bandwidth sampling
machinery. They do not include a complete BBR sender, and they do not connect
to any QUIC implementation.