"""
Provider Adapter - Endpoint URLs.

Chat-completions URL rules for OpenAI-compatible bases:
- trailing slashes stripped
- base ending in /chat/completions used verbatim
- base ending in a version segment (/v1, /v1beta, ...) gets
  /chat/completions appended
- anything else gets /v1/chat/completions appended
"""

import re
from urllib.parse import quote


_VERSION_SEGMENT = re.compile(r"/v\d[^/]*$", re.IGNORECASE)
_CHAT_COMPLETIONS = re.compile(r"/chat/completions$", re.IGNORECASE)


def normalize_base(api_base: str) -> str:
    return api_base.strip().rstrip("/")


def build_chat_completions_url(api_base: str) -> str:
    normalized = normalize_base(api_base)

    if _CHAT_COMPLETIONS.search(normalized):
        return normalized

    if _VERSION_SEGMENT.search(normalized):
        return f"{normalized}/chat/completions"

    return f"{normalized}/v1/chat/completions"


def build_chat_completions_url_without_version(api_base: str) -> str:
    """Same base with any trailing version segment removed."""
    normalized = normalize_base(api_base)

    if _CHAT_COMPLETIONS.search(normalized):
        return normalized

    without_version = _VERSION_SEGMENT.sub("", normalized)
    base = normalize_base(without_version) if without_version else normalized
    return f"{base}/chat/completions"


def build_gemini_url(api_base: str, model: str) -> str:
    return f"{normalize_base(api_base)}/models/{quote(model, safe='')}:generateContent"


def build_anthropic_url(api_base: str) -> str:
    return f"{normalize_base(api_base)}/v1/messages"
