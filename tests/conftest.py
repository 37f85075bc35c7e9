"""Shared pytest fixtures for all tests."""

import json

import httpx
import pytest

from perplexity_client.clients.perplexity import PerplexityClient
from perplexity_client.streaming.normalizer import MESSAGE_PREFIX


def encode_frame(payload) -> bytes:
    """Encode one `message` event the way the search endpoint sends it."""
    data = payload if isinstance(payload, str) else json.dumps(payload)
    return (MESSAGE_PREFIX + data + "\r\n\r\n").encode("utf-8")


async def aiter_pieces(pieces):
    for piece in pieces:
        yield piece


@pytest.fixture
def sse_frame():
    """Return a function encoding a payload as an SSE message frame."""
    return encode_frame


@pytest.fixture
def byte_stream():
    """Return a function turning a list of byte pieces into an async byte stream."""
    return aiter_pieces


@pytest.fixture
def answer_payloads():
    """Chunks of a typical answer: plan, two ask_text fragments, web results, final."""
    return [
        {
            "backend_uuid": "b-1",
            "context_uuid": "c-1",
            "blocks": [
                {
                    "intended_usage": "plan",
                    "plan_block": {"progress": "done", "goals": [{"id": "g1", "description": "Search"}]},
                }
            ],
        },
        {
            "backend_uuid": "b-1",
            "text": "[\"Rust is \"]",
            "blocks": [
                {
                    "intended_usage": "ask_text",
                    "markdown_block": {"progress": "in_progress", "chunks": ["Rust is "]},
                }
            ],
        },
        {
            "backend_uuid": "b-1",
            "blocks": [
                {
                    "intended_usage": "web_results",
                    "web_result_block": {
                        "progress": "done",
                        "web_results": [{"name": "Rust", "url": "https://rust-lang.org", "snippet": "A language"}],
                    },
                }
            ],
        },
        {
            "backend_uuid": "b-1",
            "text": ["a language."],
            "display_model": "pplx_pro",
            "blocks": [
                {
                    "intended_usage": "ask_text",
                    "markdown_block": {"progress": "in_progress", "chunks": ["a language."]},
                }
            ],
        },
        {"backend_uuid": "b-1", "final_sse_message": True, "status": "COMPLETED"},
    ]


@pytest.fixture
def answer_body(answer_payloads):
    """The full SSE body for answer_payloads."""
    return b"".join(encode_frame(p) for p in answer_payloads)


@pytest.fixture
def request_log():
    """List collecting every request seen by a mock transport."""
    return []


@pytest.fixture
def make_client(request_log):
    """
    Return a factory building a PerplexityClient on an httpx.MockTransport.

    The handler receives each request and returns an httpx.Response; every
    request is also appended to request_log.
    """
    def factory(handler, cookies=None, **kwargs):
        def recording_handler(request: httpx.Request) -> httpx.Response:
            request_log.append(request)
            return handler(request)

        return PerplexityClient(
            cookies,
            base_url="https://www.perplexity.ai",
            transport=httpx.MockTransport(recording_handler),
            **kwargs,
        )

    return factory
