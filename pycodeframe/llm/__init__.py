"""Classification oracle backends."""

from pycodeframe.llm.base import BaseLLM, parse_json_response
from pycodeframe.llm.ollama import OllamaBackend

# CerebrasBackend is imported lazily to avoid requiring cerebras-cloud-sdk
# unless it's actually used
def __getattr__(name):
    if name == "CerebrasBackend":
        from pycodeframe.llm.cerebras import CerebrasBackend
        return CerebrasBackend
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

__all__ = ["BaseLLM", "OllamaBackend", "CerebrasBackend", "parse_json_response"]
