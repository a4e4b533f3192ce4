"""
Tests for provider log masking.

Credentials must never reach a log line.
"""

from llm_planner.adapters.logging_utils import mask_headers, mask_url, preview, summarize_body


class TestMasking:
    """Tests for header and URL masking."""

    def test_sensitive_headers_masked(self):
        masked = mask_headers({
            "Authorization": "Bearer sk-very-secret",
            "x-goog-api-key": "AIza-secret",
            "Content-Type": "application/json",
        })

        assert masked == {
            "Authorization": "Bearer ***",
            "x-goog-api-key": "***",
            "Content-Type": "application/json",
        }
        assert "secret" not in str(masked)

    def test_empty_headers(self):
        assert mask_headers(None) == {}

    def test_url_key_masked(self):
        assert mask_url("https://g.example/v1beta/models/m:generateContent?key=abc&alt=json") == (
            "https://g.example/v1beta/models/m:generateContent?key=***&alt=json"
        )


class TestSummaries:
    """Tests for body summaries and previews."""

    def test_body_summary_hides_prompt(self):
        summary = summarize_body({"model": "m", "messages": [{"role": "user", "content": "cash 100000"}]})

        assert summary.startswith("keys=['messages', 'model'] messages=1 ")
        assert "100000" not in summary

    def test_preview_flattens_and_truncates(self):
        assert preview("a\n  b") == "a b"
        assert preview("x" * 10, limit=4) == "xxxx..."
        assert preview(None) == ""
