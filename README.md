# toxiproxy

Building blocks for simulating unreliable networks in tests. Data passes
through a chain of *toxics*, each of which can delay, throttle, slice,
truncate or drop it, or close the stream.

## Installation

```
pip install toxiproxy
```

To run the test suite:

```
pip install "toxiproxy[test]"
pytest
```

## Modules

- `toxiproxy.direction`: `Direction` (`UPSTREAM`, `DOWNSTREAM`, and
  `NUM_DIRECTIONS` as the count) and `parse_direction`, which accepts
  `"upstream"` or `"downstream"` in any case and raises
  `InvalidDirectionError` otherwise.
- `toxiproxy.io_chan`: `Channel`, a closable channel between threads with
  `send`, `receive` and `close` (capacity 0 hands each item over directly;
  receiving from a closed, drained channel gives `None`); the function
  `select`, which waits on several receive or send cases at once;
  `StreamChunk`, a piece of data with its timestamp; and `ChanWriter` and
  `ChanReader`, which turn a channel of chunks into a byte stream. A blocking
  read can be cut short through the reader's interrupt channel
  (`set_interrupt`), raising `ReadInterrupted`.
- `toxiproxy.toxic`: the `Toxic` base class, `NoopToxic`, the `ToxicWrapper`
  that carries a toxic's name, type, stream, toxicity and place in a chain,
  and the `ToxicStub` that a toxic pipes data through (`run`,
  `write_output`, `interrupt_toxic`, `close`). Toxic types are added with
  `register`, counted with `count` and created with `new_toxic`.
- `toxiproxy.toxics`: the built-in toxics, registered under these type names:

  | type         | class            | attributes                                   |
  |--------------|------------------|----------------------------------------------|
  | `bandwidth`  | `BandwidthToxic` | `rate` (KB/s)                                |
  | `latency`    | `LatencyToxic`   | `latency`, `jitter` (ms)                     |
  | `limit_data` | `LimitDataToxic` | `bytes`                                      |
  | `reset_peer` | `ResetToxic`     | `timeout` (ms)                               |
  | `slicer`     | `SlicerToxic`    | `average_size`, `size_variation`, `delay` (µs) |
  | `slow_close` | `SlowCloseToxic` | `delay` (ms)                                 |
  | `timeout`    | `TimeoutToxic`   | `timeout` (ms, 0 never closes)               |

- `toxiproxy.toxic_collection`: `ToxicCollection`, the ordered toxic chains
  for both directions of one proxy, managed through JSON documents.
- `toxiproxy.proxy_collection`: `ProxyCollection`, a set of proxies keyed by
  unique name.
- `toxiproxy.testhelper`: `TCPServer`, `new_tcp_server` and
  `with_tcp_server` (a server that reads one client to its end and reports
  the bytes), `Upstream` (a listener that hands out or drains one
  connection) and `timeout_after`, which raises `TimeoutAfterError` when a
  function does not finish in time.

## Running a toxic

```python
import threading

from toxiproxy.io_chan import Channel, StreamChunk
from toxiproxy.toxic import ToxicStub
from toxiproxy.toxics import LimitDataToxic

toxic = LimitDataToxic(bytes=5)
source, sink = Channel(), Channel(capacity=10)
stub = ToxicStub(source, sink)
stub.state = toxic.new_state()

threading.Thread(target=source.send, args=(StreamChunk(b"hello world"),)).start()
toxic.pipe(stub)

sink.receive().data  # b"hello"
sink.receive()       # None: the limit was reached and the stream closed
```

## Managing toxics

```python
from toxiproxy.toxic_collection import ToxicCollection

collection = ToxicCollection("db")
wrapper = collection.add_toxic_json(
    '{"name": "slow", "type": "latency", "stream": "upstream",'
    ' "attributes": {"latency": 100, "jitter": 10}}'
)
collection.update_toxic_json("slow", '{"toxicity": 0.5}')
[t.as_dict() for t in collection.get_toxic_array()]
collection.remove_toxic("slow")
```

When `stream` is omitted the toxic acts downstream; when `toxicity` is
omitted it applies to every connection; when `name` is omitted it becomes
`<type>_<stream>`. Malformed bodies raise `BadRequestBody`; an unknown stream,
an unknown type, a duplicate name or a missing toxic raise `InvalidStream`,
`InvalidToxicType`, `ToxicAlreadyExists` and `ToxicNotFound`.

Objects registered with `add_link` (anything with a `direction` and
`add_toxic`, `update_toxic` and `remove_toxic` methods) are told about every
change to their direction's chain.

## Managing proxies

`ProxyCollection` holds any objects with `name`, `listen`, `upstream` and
`enabled` attributes and `start()` and `stop()` methods. `add` raises
`ProxyAlreadyExists` for a taken name; `get` and `remove` raise
`ProxyNotFound`. `populate_json(factory, data)` reads a JSON array of
proxies, checks every entry for a `name` and `upstream` (raising
`MissingField`), then builds each one with `factory(name, listen, upstream)`
and adds or replaces it, starting it unless `"enabled": false`.

## What this package does not do

It has no TCP proxy of its own that accepts clients and forwards them
upstream, no HTTP API and no command-line program. The proxy objects given to
`ProxyCollection`, and the links given to `ToxicCollection`, come from the
code that uses the package.