import json

import pytest

from chatlogkit import jsonrpc
from chatlogkit.jsonrpc import Notification, Request, Response, RpcError


def test_error_str_is_code_and_message():
    err = RpcError(-32601, "Method not found")
    assert str(err) == "-32601: Method not found"


@pytest.mark.parametrize(
    "err, expected",
    [
        (jsonrpc.ERR_PARSE_ERROR, {"code": -32700, "message": "Parse error"}),
        (jsonrpc.ERR_INVALID_REQUEST, {"code": -32600, "message": "Invalid Request"}),
        (jsonrpc.ERR_TOO_MANY_REQUESTS, {"code": 429, "message": "Too many requests"}),
    ],
)
def test_standard_error_codes(err, expected):
    assert err.to_dict() == expected
    assert err.json_rpc().to_dict()["error"] == expected


def test_error_to_dict_omits_missing_data():
    assert RpcError(1, "m").to_dict() == {"code": 1, "message": "m"}
    assert RpcError(1, "m", data={"k": 2}).to_dict() == {"code": 1, "message": "m", "data": {"k": 2}}


def test_json_rpc_wraps_error_without_id():
    resp = jsonrpc.ERR_INVALID_REQUEST.json_rpc()
    assert resp.to_dict() == {
        "jsonrpc": "2.0",
        "id": None,
        "error": {"code": -32600, "message": "Invalid Request"},
    }


def test_new_response_serialises_like_the_wire_format():
    resp = jsonrpc.new_response(3, {"prompts": []})
    wire = json.dumps(resp.to_dict(), separators=(",", ":"))
    assert wire == '{"jsonrpc":"2.0","id":3,"result":{"prompts":[]}}'


def test_new_error_response():
    resp = jsonrpc.new_error_response("abc", 500, ValueError("boom"))
    assert resp.id == "abc"
    assert resp.result is None
    assert resp.error.to_dict() == {"code": 500, "message": "boom"}
    assert "result" not in resp.to_dict()


def test_request_round_trip():
    raw = {"method": "prompts/list", "params": {}, "jsonrpc": "2.0", "id": 3}
    req = Request.from_dict(raw)
    assert req.method == "prompts/list"
    assert req.id == 3
    assert req.params == {}
    assert Request.from_dict(req.to_dict()) == req


def test_request_missing_fields_default_empty():
    req = Request.from_dict({"id": 1})
    assert req.method == ""
    assert req.jsonrpc == ""
    assert "params" not in req.to_dict()


@pytest.mark.parametrize("raw", [[1, 2], "text", {"method": 5}, {"jsonrpc": 2.0}])
def test_request_rejects_malformed_input(raw):
    with pytest.raises(RpcError) as info:
        Request.from_dict(raw)
    assert info.value.to_dict()["code"] == -32600


def test_notification_to_dict():
    note = Notification(method="notifications/resources/updated")
    assert note.to_dict() == {"jsonrpc": "2.0", "method": "notifications/resources/updated"}
    note = Notification(method="m", params={"uri": "x"})
    assert note.to_dict()["params"] == {"uri": "x"}


def test_response_defaults_to_version():
    resp = Response(id=7, result=True)
    assert resp.to_dict() == {"jsonrpc": jsonrpc.JSONRPC_VERSION, "id": 7, "result": True}