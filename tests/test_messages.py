import json

from wanzhi.messages import LLMReply, Message, ToolCall, ToolDefinition


def test_plain_message_dict():
    msg = Message(role="user", content="hi")
    assert msg.to_dict() == {"role": "user", "content": "hi"}


def test_tool_calls_are_included_with_decoded_args():
    msg = Message(
        role="assistant",
        tool_calls=[ToolCall(id="1", name="search_api", args='{"query":"login"}')],
    )
    assert msg.to_dict()["tool_calls"] == [
        {"id": "1", "name": "search_api", "args": {"query": "login"}}
    ]


def test_tool_call_id_included_only_when_set():
    with_id = Message(role="tool", content="{}", tool_call_id="call_1").to_dict()
    without_id = Message(role="tool", content="{}").to_dict()
    assert with_id["tool_call_id"] == "call_1"
    assert "tool_call_id" not in without_id


def test_bytes_and_mapping_args_serialise_alike():
    a = Message(role="assistant", tool_calls=[ToolCall(id="1", name="t", args=b'{"k":1}')])
    b = Message(role="assistant", tool_calls=[ToolCall(id="1", name="t", args={"k": 1})])
    assert json.dumps(a.to_dict()) == json.dumps(b.to_dict())


def test_empty_args_become_null():
    msg = Message(role="assistant", tool_calls=[ToolCall(id="1", name="t", args="")])
    assert msg.to_dict()["tool_calls"][0]["args"] is None


def test_client_protocol_usable_with_stub():
    class EchoClient:
        def next(self, messages, tools):
            return LLMReply(content=messages[-1].content, prompt_tokens=len(tools or []))

    reply = EchoClient().next(
        [Message(role="user", content="q")], [ToolDefinition(name="search_api")]
    )
    assert reply.content == "q"
    assert reply.prompt_tokens == 1
    assert reply.tool_calls == []