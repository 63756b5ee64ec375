"""Model provider access: LiteLLM client and reply parsing."""

from __future__ import annotations

from visa_audit.providers.client import ImageInput, LLMClient, StreamDelta
from visa_audit.providers.json_parser import extract_json, extract_json_object

__all__ = [
    "ImageInput",
    "LLMClient",
    "StreamDelta",
    "extract_json",
    "extract_json_object",
]
