import pytest

from eppsched.errors import BAD_REQUEST, SchedulingError
from eppsched.request import (
    REQUEST_ID_HEADER_KEY,
    construct_chat_message,
    extract_header_value,
    extract_metadata_values,
    extract_prompt_from_request_body,
)


@pytest.mark.parametrize(
    "body, expected",
    [
        (
            {
                "model": "test",
                "messages": [
                    {"role": "system", "content": "this is a system message"},
                    {"role": "user", "content": "hello"},
                    {"role": "assistant", "content": "hi, what can I do for you?"},
                ],
            },
            "<|im_start|>system\nthis is a system message<|im_end|>\n"
            "<|im_start|>user\nhello<|im_end|>\n"
            "<|im_start|>assistant\nhi, what can I do for you?<|im_end|>\n",
        ),
        ({"model": "test", "prompt": "test prompt"}, "test prompt"),
        ({"prompt": "test prompt"}, "test prompt"),
        (
            {
                "messages": [
                    {"role": "user", "content": "test1"},
                    {"role": "assistant", "content": "test2"},
                ]
            },
            "<|im_start|>user\ntest1<|im_end|>\n<|im_start|>assistant\ntest2<|im_end|>\n",
        ),
    ],
)
def test_extract_prompt_valid(body, expected):
    assert extract_prompt_from_request_body(body) == expected


@pytest.mark.parametrize(
    "body",
    [
        {
            "model": "test",
            "prompt": [
                {"role": "system", "content": "this is a system message"},
                {"role": "user", "content": "hello"},
                {"role": "assistant", "content": "hi, what can I"},
            ],
        },
        {"model": "test", "messages": {"role": "system", "content": "this is a system message"}},
        {"model": "test"},
        {},
        {"prompt": 123},
        {"messages": "invalid"},
        {"messages": []},
    ],
)
def test_extract_prompt_invalid(body):
    with pytest.raises(SchedulingError) as info:
        extract_prompt_from_request_body(body)
    assert info.value.code == BAD_REQUEST


def test_malformed_messages_are_skipped():
    body = {
        "messages": [
            "not a dict",
            {"role": "user"},
            {"role": 1, "content": "x"},
            {"role": "user", "content": "hello"},
        ]
    }
    assert extract_prompt_from_request_body(body) == "<|im_start|>user\nhello<|im_end|>\n"


@pytest.mark.parametrize(
    "role, content, expected",
    [
        ("user", "hello", "<|im_start|>user\nhello<|im_end|>\n"),
        ("assistant", "hi", "<|im_start|>assistant\nhi<|im_end|>\n"),
    ],
)
def test_construct_chat_message(role, content, expected):
    assert construct_chat_message(role, content) == expected


@pytest.mark.parametrize(
    "headers, key, expected",
    [
        ([("x-request-id", b"123")], "x-request-id", "123"),
        ([("X-Request-ID", b"456")], "x-request-id", "456"),
        ([("other-header", b"abc")], "x-request-id", ""),
    ],
)
def test_extract_header_value(headers, key, expected):
    assert extract_header_value(headers, key) == expected


def test_extract_header_value_from_mapping_and_none():
    assert extract_header_value({"X-Request-ID": "456"}, REQUEST_ID_HEADER_KEY) == "456"
    assert extract_header_value(None, REQUEST_ID_HEADER_KEY) == ""


def test_extract_metadata_values():
    metadata = {"key-1": {"hello": "world", "random-key": ("hello", "world")}}
    result = extract_metadata_values(metadata)
    assert result == {"key-1": {"hello": "world", "random-key": ["hello", "world"]}}


def test_extract_metadata_values_empty():
    assert extract_metadata_values(None) == {}