"""Codeframe application modules."""

from pycodeframe.application.matcher import CodeMatcher, CodeMatch, MatchRule

__all__ = [
    "CodeMatcher",
    "CodeMatch",
    "MatchRule",
]
