"""Ollama oracle backend using the HTTP chat API."""

import logging
from typing import Optional

import requests

from pycodeframe.config import LLMConfig
from pycodeframe.llm.base import BaseLLM, json_system_prompt, parse_json_response

logger = logging.getLogger(__name__)


class OllamaBackend(BaseLLM):
    """
    Ollama backend using direct HTTP requests.

    Talks to a locally running Ollama server. JSON replies use Ollama's
    ``format: "json"`` mode, which constrains decoding to valid JSON.

    Example:
        >>> llm = OllamaBackend(model="qwen3:30b-a3b-instruct-2507-q4_K_M")
        >>> reply = llm.generate_json(prompt, system=system_prompt_for("miscellaneous"))
        >>> sorted(reply)
        ['codedResponses', 'codeframe']
    """

    def __init__(
        self,
        model: str = "qwen3:30b-a3b-instruct-2507-q4_K_M",
        base_url: str = "http://localhost:11434",
        temperature: float = 0.3,
        max_tokens: int = 4096,
        timeout: int = 180,
        debug: bool = False,
    ):
        """
        Initialize the Ollama backend.

        Args:
            model: The Ollama model name to use.
            base_url: Base URL for the Ollama API.
            temperature: Default sampling temperature.
            max_tokens: Default maximum tokens to generate.
            timeout: Request timeout in seconds.
            debug: If True, log all prompts and responses.
        """
        self._model = model
        self.base_url = base_url.rstrip("/")
        self.default_temperature = temperature
        self.default_max_tokens = max_tokens
        self.timeout = timeout
        self.debug = debug

    @classmethod
    def from_config(cls, config: LLMConfig) -> "OllamaBackend":
        """Create an OllamaBackend from a configuration object."""
        return cls(
            model=config.model,
            base_url=config.base_url,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            timeout=config.timeout,
            debug=config.debug,
        )

    @property
    def model_name(self) -> str:
        """Return the model name."""
        return self._model

    def _chat(
        self,
        prompt: str,
        system: Optional[str],
        temperature: Optional[float],
        max_tokens: Optional[int],
        json_mode: bool = False,
    ) -> str:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        payload = {
            "model": self._model,
            "messages": messages,
            "stream": False,
            "options": {
                "temperature": self.default_temperature if temperature is None else temperature,
                "num_predict": max_tokens or self.default_max_tokens,
            },
        }
        if json_mode:
            payload["format"] = "json"

        self._log_request(prompt, system)

        response = requests.post(f"{self.base_url}/api/chat", json=payload, timeout=self.timeout)
        response.raise_for_status()
        response_text = response.json().get("message", {}).get("content", "")

        self._log_response(response_text)
        return response_text

    def generate(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """
        Generate text from a prompt.

        Raises:
            requests.RequestException: If the API request fails.
        """
        return self._chat(prompt, system, temperature, max_tokens)

    def generate_json(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> dict:
        """
        Generate and parse a JSON response using Ollama's JSON mode.

        Raises:
            requests.RequestException: If the API request fails.
            ValueError: If the response cannot be parsed as JSON.
        """
        response = self._chat(
            prompt, json_system_prompt(system), temperature, max_tokens, json_mode=True
        )
        return parse_json_response(response)

    def is_available(self) -> bool:
        """
        Check if the Ollama server is available.

        Returns:
            True if the server is reachable, False otherwise.
        """
        try:
            response = requests.get(f"{self.base_url}/api/tags", timeout=5)
            return response.status_code == 200
        except requests.RequestException as e:
            logger.debug(f"Ollama server not reachable at {self.base_url}: {e}")
            return False
