"""Cerebras oracle backend using the Cerebras Cloud SDK."""

import logging
import os
import time
from typing import Optional

from pycodeframe.llm.base import BaseLLM, json_system_prompt, parse_json_response

logger = logging.getLogger(__name__)


class CerebrasBackend(BaseLLM):
    """
    Cerebras backend using the Cerebras Cloud SDK.

    Example:
        >>> llm = CerebrasBackend(model="llama-3.3-70b")
        >>> orchestrator = GenerationOrchestrator(llm)

    Note:
        Requires the cerebras-cloud-sdk package: pip install pycodeframe[cerebras]
        Set CEREBRAS_API_KEY environment variable or pass api_key directly.
    """

    def __init__(
        self,
        model: str = "llama-3.3-70b",
        api_key: Optional[str] = None,
        temperature: float = 0.3,
        max_tokens: int = 4096,
        timeout: int = 180,
        debug: bool = False,
        rate_limit_delay: float = 0.1,
    ):
        """
        Initialize the Cerebras backend.

        Args:
            model: The Cerebras model name to use.
            api_key: Cerebras API key. If None, reads from CEREBRAS_API_KEY env var.
            temperature: Default sampling temperature.
            max_tokens: Default maximum tokens to generate.
            timeout: Request timeout in seconds.
            debug: If True, log all prompts and responses.
            rate_limit_delay: Seconds to wait after each API call.
        """
        try:
            from cerebras.cloud.sdk import Cerebras
        except ImportError:
            raise ImportError(
                "cerebras-cloud-sdk is required for CerebrasBackend. "
                "Install it with: pip install cerebras-cloud-sdk"
            )

        self._model = model
        self.default_temperature = temperature
        self.default_max_tokens = max_tokens
        self.timeout = timeout
        self.debug = debug
        self.rate_limit_delay = rate_limit_delay

        resolved_api_key = api_key or os.environ.get("CEREBRAS_API_KEY")
        if not resolved_api_key:
            raise ValueError(
                "Cerebras API key is required. Set CEREBRAS_API_KEY environment variable "
                "or pass api_key directly."
            )

        self.client = Cerebras(api_key=resolved_api_key, timeout=timeout)

    @classmethod
    def from_config(cls, config) -> "CerebrasBackend":
        """Create a CerebrasBackend from a configuration object."""
        return cls(
            model=config.model,
            api_key=config.api_key,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            timeout=config.timeout,
            debug=config.debug,
            rate_limit_delay=config.rate_limit_delay,
        )

    @property
    def model_name(self) -> str:
        """Return the model name."""
        return self._model

    def _complete(
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

        self._log_request(prompt, system)

        kwargs = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        chat_completion = self.client.chat.completions.create(
            messages=messages,
            model=self._model,
            temperature=self.default_temperature if temperature is None else temperature,
            max_tokens=max_tokens or self.default_max_tokens,
            **kwargs,
        )
        response_text = chat_completion.choices[0].message.content
        self._log_response(response_text)

        # Free tier allows 30 requests per minute
        if self.rate_limit_delay > 0:
            logger.debug(f"Rate limit delay: {self.rate_limit_delay} seconds")
            time.sleep(self.rate_limit_delay)

        return response_text

    def generate(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Generate text from a prompt."""
        return self._complete(prompt, system, temperature, max_tokens)

    def generate_json(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> dict:
        """
        Generate and parse a JSON response using the API's JSON object mode.

        Raises:
            ValueError: If the response cannot be parsed as JSON.
        """
        response = self._complete(
            prompt, json_system_prompt(system), temperature, max_tokens, json_mode=True
        )
        return parse_json_response(response)

    def is_available(self) -> bool:
        """
        Check if the Cerebras API is reachable with the configured key.

        Returns:
            True if a minimal completion succeeds, False otherwise.
        """
        try:
            self.client.chat.completions.create(
                messages=[{"role": "user", "content": "test"}],
                model=self._model,
                max_tokens=1,
            )
            return True
        except Exception as e:
            logger.debug(f"Cerebras availability check failed: {e}")
            return False
