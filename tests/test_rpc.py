from __future__ import annotations

import requests

from conftest import FakeResponse, FakeSession
from monadoring.rpc import BLOCK_NUMBER_REQUEST, RpcProbe, _hex_to_dec

URL = "https://rpc.example"


def _probe(response) -> RpcProbe:
    return RpcProbe(timeout=3, session=FakeSession({URL: response}))


def test_hex_to_dec():
    assert _hex_to_dec("0x1b4") == 436
    assert _hex_to_dec("ff") == 255


def test_block_height_parses_result():
    probe = _probe(FakeResponse(200, {"jsonrpc": "2.0", "id": 1, "result": "0x2a"}))
    assert probe.block_height(URL) == 42

    call = probe.session.calls[0]
    assert call["json"] == BLOCK_NUMBER_REQUEST
    assert call["timeout"] == 3


def test_failures_read_as_zero():
    cases = [
        requests.ConnectionError("refused"),
        requests.Timeout("slow"),
        FakeResponse(502, {"result": "0x10"}),
        FakeResponse(200, ValueError("not json")),
        FakeResponse(200, {"error": {"code": -32000, "message": "boom"}}),
        FakeResponse(200, {"result": None}),
        FakeResponse(200, {"result": "0xzz"}),
        FakeResponse(200, ["0x10"]),
    ]
    for response in cases:
        assert _probe(response).block_height(URL) == 0


def test_probe_many_returns_every_url():
    session = FakeSession(
        {
            "https://a": FakeResponse(200, {"result": "0x64"}),
            "https://b": requests.ConnectionError("down"),
            "https://c": FakeResponse(200, {"result": "0x65"}),
        }
    )
    probe = RpcProbe(session=session)
    assert probe.probe_many(["https://a", "https://b", "https://c"]) == {
        "https://a": 100,
        "https://b": 0,
        "https://c": 101,
    }
    assert probe.probe_many([]) == {}
