"""Abstract base class for classification oracle backends."""

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Optional

logger = logging.getLogger(__name__)

JSON_ONLY_INSTRUCTION = "You must respond with valid JSON only. No additional text or explanation."


class BaseLLM(ABC):
    """
    Abstract base class for oracle backends.

    Implementations provide :meth:`generate`; JSON replies are produced by
    :meth:`generate_json`, which backends may override to use a native
    JSON mode. Any exception raised by either method is treated by the
    orchestrator as a transport failure of the current question group.
    """

    @abstractmethod
    def generate(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """
        Generate text from a prompt.

        Args:
            prompt: The user prompt to send to the model.
            system: Optional system prompt.
            temperature: Optional sampling temperature (overrides default).
            max_tokens: Optional maximum tokens to generate (overrides default).

        Returns:
            The generated text response.
        """
        pass

    def generate_json(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> dict:
        """
        Generate and parse a JSON response.

        Args:
            prompt: The user prompt to send to the model.
            system: Optional system prompt.
            temperature: Optional sampling temperature (overrides default).
            max_tokens: Optional maximum tokens to generate (overrides default).

        Returns:
            Parsed JSON response.

        Raises:
            ValueError: If the response cannot be parsed as JSON.
        """
        response = self.generate(
            prompt=prompt,
            system=json_system_prompt(system),
            temperature=temperature,
            max_tokens=max_tokens,
        )
        return parse_json_response(response)

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Return the model name."""
        pass

    def is_available(self) -> bool:
        """Return True if the backend can be reached. Backends override this."""
        return True

    def _log_request(self, prompt: str, system: Optional[str]) -> None:
        """Log an outgoing oracle request when the backend runs in debug mode."""
        if not getattr(self, "debug", False):
            return
        logger.debug("=" * 60)
        logger.debug(f"ORACLE REQUEST ({self.__class__.__name__}, {self.model_name})")
        logger.debug("=" * 60)
        if system:
            logger.debug(f"SYSTEM:\n{system}")
        logger.debug(f"PROMPT:\n{prompt}")
        logger.debug("-" * 60)

    def _log_response(self, response_text: str) -> None:
        if getattr(self, "debug", False):
            logger.debug(f"RESPONSE:\n{response_text}")
            logger.debug("=" * 60)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(model={self.model_name})"


def json_system_prompt(system: Optional[str]) -> str:
    """Append the JSON-only instruction to a system prompt."""
    if system:
        return f"{system}\n\n{JSON_ONLY_INSTRUCTION}"
    return JSON_ONLY_INSTRUCTION


def parse_json_response(response: str):
    """
    Parse JSON from a model response.

    Tries the whole response first, then markdown code blocks, then the
    longest object or array found in the text.

    Args:
        response: The raw response string.

    Returns:
        The parsed JSON value.

    Raises:
        ValueError: If JSON cannot be extracted or parsed.
    """
    if response is None:
        raise ValueError("Empty response from model")

    try:
        return json.loads(response.strip())
    except json.JSONDecodeError:
        pass

    for block in re.findall(r"```(?:json)?\s*([\s\S]*?)```", response):
        try:
            return json.loads(block.strip())
        except json.JSONDecodeError:
            continue

    for pattern in (r"(\{[\s\S]*\})", r"(\[[\s\S]*\])"):
        for match in sorted(re.findall(pattern, response), key=len, reverse=True):
            try:
                return json.loads(match)
            except json.JSONDecodeError:
                continue

    logger.debug(f"Unparseable response: {response[:200]}")
    raise ValueError(f"Could not parse JSON from response: {response[:500]}...")
