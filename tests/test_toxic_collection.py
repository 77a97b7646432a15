import io

import pytest

from toxiproxy.direction import Direction
from toxiproxy.toxic_collection import (
    BadRequestBody,
    InvalidStream,
    InvalidToxicType,
    ToxicAlreadyExists,
    ToxicCollection,
    ToxicNotFound,
)
from toxiproxy.toxics import LatencyToxic, TimeoutToxic


class FakeLink:
    def __init__(self, direction):
        self.direction = direction
        self.added = []
        self.updated = []
        self.removed = []

    def add_toxic(self, toxic):
        self.added.append(toxic.name)

    def update_toxic(self, toxic):
        self.updated.append(toxic.name)

    def remove_toxic(self, toxic):
        self.removed.append(toxic.name)


def test_add_toxic_uses_defaults():
    collection = ToxicCollection("test")
    wrapper = collection.add_toxic_json('{"type": "latency", "attributes": {"latency": 100}}')
    assert wrapper.name == "latency_downstream"
    assert wrapper.stream == "downstream"
    assert wrapper.direction is Direction.DOWNSTREAM
    assert wrapper.toxicity == 1.0
    assert wrapper.toxic == LatencyToxic(latency=100)
    assert wrapper.buffer_size == 1024
    assert collection.get_toxic("latency_downstream") is wrapper


def test_add_toxic_with_name_and_stream():
    collection = ToxicCollection()
    wrapper = collection.add_toxic_json(
        b'{"name": "t1", "type": "timeout", "stream": "UpStream", '
        b'"toxicity": 0.5, "attributes": {"timeout": 10}}'
    )
    assert wrapper.name == "t1"
    assert wrapper.direction is Direction.UPSTREAM
    assert wrapper.toxicity == 0.5
    assert wrapper.toxic == TimeoutToxic(timeout=10)


def test_add_toxic_from_stream():
    collection = ToxicCollection()
    wrapper = collection.add_toxic_json(io.BytesIO(b'{"name": "n", "type": "noop"}'))
    assert [t.name for t in collection.get_toxic_array()] == ["n"]
    assert wrapper.type == "noop"


def test_duplicate_name_is_rejected():
    collection = ToxicCollection()
    collection.add_toxic_json('{"name": "dup", "type": "latency"}')
    with pytest.raises(ToxicAlreadyExists):
        collection.add_toxic_json('{"name": "dup", "type": "timeout", "stream": "upstream"}')
    assert len(collection.get_toxic_array()) == 1


@pytest.mark.parametrize("stream", ["", "sideways"])
def test_invalid_stream(stream):
    collection = ToxicCollection()
    with pytest.raises(InvalidStream):
        collection.add_toxic_json(f'{{"type": "latency", "stream": "{stream}"}}')


def test_invalid_toxic_type():
    collection = ToxicCollection()
    with pytest.raises(InvalidToxicType):
        collection.add_toxic_json('{"type": "nonexistent"}')
    assert collection.get_toxic_array() == []


@pytest.mark.parametrize(
    "body",
    [
        "",
        "{",
        "[1]",
        '{"type": "latency", "attributes": 5}',
        '{"type": "latency", "attributes": {"latency": "slow"}}',
        '{"type": 3}',
        '{"type": "latency", "toxicity": "high"}',
    ],
)
def test_bad_request_body(body):
    collection = ToxicCollection()
    with pytest.raises(BadRequestBody):
        collection.add_toxic_json(body)
    assert collection.get_toxic_array() == []


def test_get_toxic_array_order_and_missing():
    collection = ToxicCollection()
    collection.add_toxic_json('{"name": "down", "type": "latency"}')
    collection.add_toxic_json('{"name": "up1", "type": "latency", "stream": "upstream"}')
    collection.add_toxic_json('{"name": "up2", "type": "latency", "stream": "upstream"}')
    assert [t.name for t in collection.get_toxic_array()] == ["up1", "up2", "down"]
    assert collection.get_toxic("missing") is None


def test_links_notified_for_matching_direction():
    collection = ToxicCollection()
    up = FakeLink(Direction.UPSTREAM)
    down = FakeLink(Direction.DOWNSTREAM)
    collection.add_link("up", up)
    collection.add_link("down", down)
    collection.add_toxic_json('{"name": "a", "type": "latency", "stream": "upstream"}')
    assert up.added == ["a"]
    assert down.added == []


def test_remove_toxic_reindexes_chain():
    collection = ToxicCollection()
    link = FakeLink(Direction.UPSTREAM)
    collection.add_link("l", link)
    first = collection.add_toxic_json('{"name": "a", "type": "latency", "stream": "upstream"}')
    second = collection.add_toxic_json('{"name": "b", "type": "latency", "stream": "upstream"}')
    assert second.index == first.index + 1
    old_index = first.index
    collection.remove_toxic("a")
    assert first.index == -1
    assert second.index == old_index
    assert link.removed == ["a"]
    assert collection.get_toxic("a") is None


def test_remove_missing_toxic():
    collection = ToxicCollection()
    with pytest.raises(ToxicNotFound):
        collection.remove_toxic("nothing")


def test_update_toxic():
    collection = ToxicCollection()
    link = FakeLink(Direction.DOWNSTREAM)
    collection.add_link("l", link)
    collection.add_toxic_json('{"name": "lat", "type": "latency", "attributes": {"latency": 100}}')
    updated = collection.update_toxic_json("lat", '{"attributes": {"jitter": 5}, "toxicity": 0.25}')
    assert updated.toxic == LatencyToxic(latency=100, jitter=5)
    assert updated.toxicity == 0.25
    again = collection.update_toxic_json("lat", '{"attributes": {"latency": 7}}')
    assert again.toxicity == 0.25
    assert again.toxic.latency == 7
    assert link.updated == ["lat", "lat"]


def test_update_missing_toxic():
    collection = ToxicCollection()
    with pytest.raises(ToxicNotFound):
        collection.update_toxic_json("nope", "{}")


def test_update_rejects_bad_attribute_without_change():
    collection = ToxicCollection()
    collection.add_toxic_json('{"name": "lat", "type": "latency", "attributes": {"latency": 100}}')
    with pytest.raises(BadRequestBody):
        collection.update_toxic_json("lat", '{"attributes": {"latency": 1.5}}')
    assert collection.get_toxic("lat").toxic.latency == 100


def test_reset_toxics():
    collection = ToxicCollection()
    up = FakeLink(Direction.UPSTREAM)
    collection.add_link("up", up)
    collection.add_toxic_json('{"name": "a", "type": "noop", "stream": "upstream"}')
    collection.add_toxic_json('{"name": "b", "type": "noop"}')
    collection.reset_toxics()
    assert collection.get_toxic_array() == []
    assert up.removed == ["a"]
    again = collection.add_toxic_json('{"name": "a", "type": "noop", "stream": "upstream"}')
    assert collection.get_toxic_array() == [again]


def test_removed_link_is_not_notified():
    collection = ToxicCollection()
    link = FakeLink(Direction.DOWNSTREAM)
    collection.add_link("l", link)
    collection.remove_link("l")
    collection.add_toxic_json('{"name": "a", "type": "noop"}')
    assert link.added == []