"""
HTTP config proposer unit tests.
"""
import json

import httpx
import pytest

from sandbox_runner.domain.ports import ConfigProposalRequest
from sandbox_runner.infrastructure.llm import HttpConfigProposer, extract_json_object
from sandbox_runner.shared.errors import ConfigurationError, ProposerError

REQUEST = ConfigProposalRequest(code="IO.puts 1", language="elixir", detected_packages=[])


def completion(content):
    return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": content}}]})


def make_proposer(handler, **kwargs):
    return HttpConfigProposer(
        base_url="http://llm.test/v1/",
        model="test-model",
        api_key="sk-test",
        base_retry_delay=0,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestExtractJsonObject:
    def test_fenced_block(self):
        reply = 'Here you go:\n```json\n{"baseImage": "elixir:1.16"}\n```\nEnjoy.'

        assert extract_json_object(reply) == {"baseImage": "elixir:1.16"}

    def test_bare_object_in_prose(self):
        reply = 'Sure. {"baseImage": "elixir:1.16", "runCommand": ["elixir"]} Done.'

        assert extract_json_object(reply)["runCommand"] == ["elixir"]

    @pytest.mark.parametrize("reply", ["no json at all", "[1, 2, 3]", "{broken"])
    def test_nothing_usable(self, reply):
        with pytest.raises(ConfigurationError):
            extract_json_object(reply)


class TestPropose:
    async def test_sends_prompt_and_parses_reply(self):
        seen = []

        def handler(request):
            seen.append(request)
            return completion('{"baseImage": "elixir:1.16-alpine", "runCommand": ["elixir", "/app/code.elixir"]}')

        proposer = make_proposer(handler)
        proposal = await proposer.propose(REQUEST)
        await proposer.close()

        assert proposal["baseImage"] == "elixir:1.16-alpine"
        request = seen[0]
        assert str(request.url) == "http://llm.test/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test"
        body = json.loads(request.content)
        assert body["model"] == "test-model"
        assert body["temperature"] == 0
        assert "IO.puts 1" in body["messages"][0]["content"]

    async def test_retries_server_errors(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(503, text="overloaded")
            return completion('{"baseImage": "x"}')

        proposal = await make_proposer(handler).propose(REQUEST)

        assert proposal == {"baseImage": "x"}
        assert len(calls) == 3

    async def test_gives_up_after_max_retries(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(ProposerError, match="after 2 attempts"):
            await make_proposer(handler, max_retries=2).propose(REQUEST)

    async def test_client_error_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(401, text="bad key")

        with pytest.raises(ProposerError, match="401"):
            await make_proposer(handler).propose(REQUEST)

        assert len(calls) == 1

    async def test_malformed_completion(self):
        with pytest.raises(ConfigurationError, match="Malformed"):
            await make_proposer(lambda request: httpx.Response(200, json={"id": "x"})).propose(REQUEST)

    async def test_reply_without_json(self):
        with pytest.raises(ConfigurationError):
            await make_proposer(lambda request: completion("I cannot help with that.")).propose(REQUEST)
