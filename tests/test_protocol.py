import pytest
from pydantic import ValidationError

from fractal.errors import MalformedEnvelopeError, UnknownMethodError
from fractal.rpc.protocol import (
    RemoteCallEnvelope,
    RemoteResultEnvelope,
    RpcMethod,
    SendMessageArgs,
    parse_request,
)


def test_method_names_match_the_wire() -> None:
    assert {method.value for method in RpcMethod} == {
        "createConversation",
        "listConversations",
        "loadConversation",
        "deleteConversation",
        "sendMessage",
        "saveTranscript",
        "saveUIState",
        "loadUIState",
    }


def test_parse_request_accepts_known_methods() -> None:
    envelope = parse_request({"type": "rpc-request", "id": "rpc-0", "method": "sendMessage", "args": {"x": 1}})

    assert envelope.method is RpcMethod.SEND_MESSAGE
    assert envelope.args == {"x": 1}


@pytest.mark.parametrize("method", ["dropTables", None, 42, ["sendMessage"]])
def test_parse_request_rejects_unknown_methods(method: object) -> None:
    with pytest.raises(UnknownMethodError, match="Unknown method"):
        parse_request({"type": "rpc-request", "id": "rpc-0", "method": method})


def test_parse_request_rejects_malformed_envelopes() -> None:
    with pytest.raises(MalformedEnvelopeError, match="Malformed request"):
        parse_request({"type": "rpc-request", "id": "rpc-0", "method": "sendMessage", "args": "nope"})


def test_result_envelope_carries_result_or_error() -> None:
    assert RemoteResultEnvelope(id="a", result=None).to_message() == {"type": "rpc-response", "id": "a", "result": None}
    assert RemoteResultEnvelope(id="a", error="bad").to_message() == {"type": "rpc-response", "id": "a", "error": "bad"}
    with pytest.raises(ValidationError):
        RemoteResultEnvelope(id="a", result=1, error="bad")


def test_call_envelope_serializes_method_value() -> None:
    message = RemoteCallEnvelope(id="rpc-1", method=RpcMethod.LOAD_UI_STATE).to_message()
    assert message == {"type": "rpc-request", "id": "rpc-1", "method": "loadUIState", "args": {}}


def test_send_message_args_use_camel_case() -> None:
    args = SendMessageArgs.model_validate({"conversationId": "abc", "message": "hi"})
    assert args.conversation_id == "abc"
    with pytest.raises(ValidationError):
        SendMessageArgs.model_validate({"conversationId": "abc", "message": ""})
