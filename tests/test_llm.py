"""Tests for oracle backends and JSON reply parsing."""

import logging
from unittest.mock import Mock, patch

import pytest
import requests

from pycodeframe.config import LLMConfig
from pycodeframe.llm import OllamaBackend, parse_json_response
from pycodeframe.llm.base import JSON_ONLY_INSTRUCTION, BaseLLM, json_system_prompt


class EchoLLM(BaseLLM):
    """Backend returning a fixed reply."""

    def __init__(self, reply):
        self.reply = reply
        self.calls = []

    def generate(self, prompt, system=None, temperature=None, max_tokens=None):
        self.calls.append({"prompt": prompt, "system": system})
        return self.reply

    @property
    def model_name(self):
        return "echo"


class TestParseJsonResponse:
    """Tests for extracting JSON from model output."""

    def test_plain(self):
        assert parse_json_response('{"codeframe": []}') == {"codeframe": []}

    def test_code_block(self):
        text = 'Here you go:\n```json\n{"codedResponses": [1]}\n```\nThanks'
        assert parse_json_response(text) == {"codedResponses": [1]}

    def test_embedded_object(self):
        assert parse_json_response('Sure! {"a": {"b": 2}} done') == {"a": {"b": 2}}

    def test_array(self):
        assert parse_json_response("result: [1, 2]") == [1, 2]

    @pytest.mark.parametrize("text", ["no json here", "{broken", None])
    def test_unparseable(self, text):
        with pytest.raises(ValueError):
            parse_json_response(text)


class TestBaseLLM:
    def test_generate_json_adds_instruction(self):
        llm = EchoLLM('{"ok": true}')

        assert llm.generate_json("prompt", system="Be a coder.") == {"ok": True}
        assert llm.calls[0]["system"] == f"Be a coder.\n\n{JSON_ONLY_INSTRUCTION}"

    def test_instruction_without_system(self):
        assert json_system_prompt(None) == JSON_ONLY_INSTRUCTION

    def test_available_by_default(self):
        assert EchoLLM("").is_available()
        assert repr(EchoLLM("")) == "EchoLLM(model=echo)"


class TestOllamaBackend:
    """Tests for the Ollama HTTP backend."""

    def make_response(self, content):
        response = Mock()
        response.json.return_value = {"message": {"content": content}}
        response.raise_for_status.return_value = None
        return response

    def test_generate_json_payload(self):
        llm = OllamaBackend(model="test-model", base_url="http://ollama:11434/", temperature=0.2)

        with patch("pycodeframe.llm.ollama.requests.post") as post:
            post.return_value = self.make_response('{"codeframe": [], "codedResponses": []}')
            reply = llm.generate_json("Code these", system="System")

        assert reply == {"codeframe": [], "codedResponses": []}
        url = post.call_args.args[0]
        payload = post.call_args.kwargs["json"]
        assert url == "http://ollama:11434/api/chat"
        assert payload["model"] == "test-model"
        assert payload["format"] == "json"
        assert payload["stream"] is False
        assert payload["options"]["temperature"] == 0.2
        assert payload["messages"][0]["role"] == "system"
        assert payload["messages"][1] == {"role": "user", "content": "Code these"}

    def test_overrides(self):
        llm = OllamaBackend(max_tokens=100)

        with patch("pycodeframe.llm.ollama.requests.post") as post:
            post.return_value = self.make_response("hello")
            text = llm.generate("Hi", temperature=0.0, max_tokens=50)

        payload = post.call_args.kwargs["json"]
        assert text == "hello"
        assert "format" not in payload
        assert payload["options"] == {"temperature": 0.0, "num_predict": 50}
        assert len(payload["messages"]) == 1

    def test_debug_logs_exchange(self, caplog):
        llm = OllamaBackend(model="test-model", debug=True)

        with patch("pycodeframe.llm.ollama.requests.post") as post:
            post.return_value = self.make_response("hello")
            with caplog.at_level(logging.DEBUG, logger="pycodeframe.llm"):
                llm.generate("Hi", system="Be brief")

        assert "ORACLE REQUEST (OllamaBackend, test-model)" in caplog.text
        assert "SYSTEM:\nBe brief" in caplog.text
        assert "RESPONSE:\nhello" in caplog.text

    def test_no_debug_logs_by_default(self, caplog):
        llm = OllamaBackend()

        with patch("pycodeframe.llm.ollama.requests.post") as post:
            post.return_value = self.make_response("hello")
            with caplog.at_level(logging.DEBUG, logger="pycodeframe.llm"):
                llm.generate("Hi")

        assert "ORACLE REQUEST" not in caplog.text

    def test_http_error_propagates(self):
        llm = OllamaBackend()

        with patch("pycodeframe.llm.ollama.requests.post") as post:
            post.return_value.raise_for_status.side_effect = requests.HTTPError("500")
            with pytest.raises(requests.HTTPError):
                llm.generate("Hi")

    def test_is_available(self):
        llm = OllamaBackend()

        with patch("pycodeframe.llm.ollama.requests.get") as get:
            get.return_value.status_code = 200
            assert llm.is_available()

            get.side_effect = requests.ConnectionError("refused")
            assert not llm.is_available()

    def test_from_config(self):
        config = LLMConfig(model="m", base_url="http://x:1", timeout=9)

        llm = config.create_backend()

        assert isinstance(llm, OllamaBackend)
        assert llm.model_name == "m"
        assert llm.timeout == 9

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            LLMConfig(backend="nope").create_backend()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
