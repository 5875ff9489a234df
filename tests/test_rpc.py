from __future__ import annotations

import json

from gwbridge import rpc
from gwbridge.models import RpcEvent, RpcRequest, RpcResponse


def test_build_request_assigns_fresh_ids() -> None:
    a = rpc.build_request("chat.history", {"limit": 1})
    b = rpc.build_request("chat.history", {"limit": 1})
    assert a.id != b.id
    assert rpc.build_request("x", request_id="fixed").id == "fixed"


def test_encode_request_frame() -> None:
    frame = json.loads(rpc.encode(rpc.build_request("health", {}, request_id="r1")))
    assert frame == {"type": "req", "id": "r1", "method": "health", "params": {}}


def test_parse_response_frames() -> None:
    ok = rpc.parse_frame('{"type":"res","id":"r1","ok":true,"payload":{"a":1}}')
    assert isinstance(ok, RpcResponse)
    assert ok.ok is True and ok.payload == {"a": 1}

    err = rpc.parse_frame(b'{"type":"res","id":"r2","ok":false,"error":{"code":"E","message":"m"}}')
    assert isinstance(err, RpcResponse)
    assert err.error is not None and err.error.message == "m"


def test_parse_response_with_non_object_error() -> None:
    bare = rpc.parse_frame('{"type":"res","id":"r3","ok":false,"error":"hash mismatch"}')
    assert isinstance(bare, RpcResponse)
    assert bare.error is not None and bare.error.message == "hash mismatch"

    odd = rpc.parse_frame('{"type":"res","id":"r4","ok":false,"error":{"code":[1],"message":7}}')
    assert isinstance(odd, RpcResponse)
    assert odd.error is not None
    assert odd.error.message == "7"
    assert odd.error.code == "[1]"


def test_parse_other_frames() -> None:
    assert isinstance(rpc.parse_frame('{"type":"event","event":"tick"}'), RpcEvent)
    assert isinstance(rpc.parse_frame('{"type":"req","id":"1","method":"m"}'), RpcRequest)


def test_parse_rejects_malformed() -> None:
    assert rpc.parse_frame("nope") is None
    assert rpc.parse_frame("[1, 2]") is None
    assert rpc.parse_frame('{"type":"res","ok":true}') is None
    assert rpc.parse_frame('{"type":"res","id":"","ok":true}') is None
    assert rpc.parse_frame('{"type":"mystery","id":"1"}') is None
    assert rpc.parse_frame('{"type":"req","id":"1"}') is None
    assert rpc.parse_frame(b"\xff\xfe") is None
