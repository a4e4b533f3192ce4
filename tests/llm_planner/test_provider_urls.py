"""
Tests for provider endpoint URL construction.
"""

import pytest

from llm_planner.adapters.urls import (
    build_anthropic_url,
    build_chat_completions_url,
    build_chat_completions_url_without_version,
    build_gemini_url,
)


class TestChatCompletionsUrl:
    """Tests for OpenAI-compatible URLs."""

    @pytest.mark.parametrize("base,expected", [
        ("https://api.openai.com", "https://api.openai.com/v1/chat/completions"),
        ("https://api.openai.com/", "https://api.openai.com/v1/chat/completions"),
        ("https://api.openai.com/v1", "https://api.openai.com/v1/chat/completions"),
        ("https://api.groq.com/openai/v1/", "https://api.groq.com/openai/v1/chat/completions"),
        ("https://example.com/v1beta", "https://example.com/v1beta/chat/completions"),
        ("http://localhost:1234/v1/chat/completions", "http://localhost:1234/v1/chat/completions"),
    ])
    def test_versioned(self, base, expected):
        assert build_chat_completions_url(base) == expected

    @pytest.mark.parametrize("base,expected", [
        ("http://localhost:11434", "http://localhost:11434/chat/completions"),
        ("http://localhost:11434/v1", "http://localhost:11434/chat/completions"),
        ("https://api.groq.com/openai/v1", "https://api.groq.com/openai/chat/completions"),
    ])
    def test_without_version(self, base, expected):
        assert build_chat_completions_url_without_version(base) == expected


class TestOtherFamilies:
    """Tests for Gemini and Anthropic URLs."""

    def test_gemini_url_quotes_model(self):
        url = build_gemini_url("https://generativelanguage.googleapis.com/v1beta/", "gemini-1.5-pro")
        assert url == "https://generativelanguage.googleapis.com/v1beta/models/gemini-1.5-pro:generateContent"

    def test_gemini_url_escapes_slashes(self):
        url = build_gemini_url("https://host/v1", "tuned/model")
        assert url == "https://host/v1/models/tuned%2Fmodel:generateContent"

    def test_anthropic_url(self):
        assert build_anthropic_url("https://api.anthropic.com/") == "https://api.anthropic.com/v1/messages"
