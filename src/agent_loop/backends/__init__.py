"""Pluggable model backends."""

from __future__ import annotations

from .base import ModelBackend
from .mock import MockBackend
from .openai_chat import OpenAIBackend, build_openai_tools, to_openai_messages
from .scripted import ScriptedBackend

__all__ = [
    "MockBackend",
    "ModelBackend",
    "OpenAIBackend",
    "ScriptedBackend",
    "build_openai_tools",
    "to_openai_messages",
]
