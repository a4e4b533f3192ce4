"""
Provider Adapter - Secure Logging Utilities.

============================================================
PURPOSE
============================================================
Secure logging for LLM provider calls:
- Credential masking (API keys in headers and URLs)
- Body summaries instead of full prompts
- Response previews truncated

============================================================
SECURITY REQUIREMENTS
============================================================
1. NEVER log raw API keys
2. Mask sensitive headers (Authorization, x-api-key, x-goog-api-key)
3. Never log full prompts; they embed the whole portfolio

============================================================
"""

import hashlib
import json
import re
from typing import Any, Dict, Optional


# ============================================================
# SENSITIVE DATA PATTERNS
# ============================================================

# Header names that should be masked
SENSITIVE_HEADERS = {
    "authorization",
    "x-api-key",
    "x-goog-api-key",
    "api-key",
}

# Query parameters that should be masked
SENSITIVE_PARAMS = {
    "key",
    "api_key",
    "apikey",
    "token",
    "access_token",
}


# ============================================================
# MASKING FUNCTIONS
# ============================================================

def mask_headers(headers: Optional[Dict[str, str]]) -> Dict[str, str]:
    """Headers with sensitive values masked; an auth scheme such as Bearer stays visible."""
    if not headers:
        return {}

    masked = {}
    for key, value in headers.items():
        if key.lower() not in SENSITIVE_HEADERS:
            masked[key] = value
            continue
        scheme, _, secret = str(value).partition(" ")
        masked[key] = f"{scheme} ***" if secret else "***"
    return masked


def mask_url(url: str) -> str:
    """URL with sensitive query parameters masked."""
    if not url:
        return url

    for param in SENSITIVE_PARAMS:
        pattern = re.compile(f"([?&]{param}=)([^&]+)", re.IGNORECASE)
        url = pattern.sub(lambda m: f"{m.group(1)}***", url)
    return url


def summarize_body(body: Dict[str, Any]) -> str:
    """
    Short description of a request body.

    Shows top-level keys, message count and a content hash so
    two log lines can be matched without printing the prompt.
    """
    encoded = json.dumps(body, sort_keys=True, default=str).encode("utf-8")
    digest = hashlib.sha256(encoded).hexdigest()[:12]
    messages = body.get("messages") or body.get("contents") or []
    return f"keys={sorted(body.keys())} messages={len(messages)} bytes={len(encoded)} sha={digest}"


def preview(text: Optional[str], limit: int = 200) -> str:
    """Single-line truncated preview."""
    if not text:
        return ""
    flat = " ".join(text.split())
    return flat if len(flat) <= limit else f"{flat[:limit]}..."
