"""
AI-completion collaborator.

Speaks the chat-completions JSON protocol over client.http_client:

    complete(prompt)  system + user message in, first choice's text out
    probe()           smallest possible request, raw response body out

The API key only ever leaves this module as a key_excerpt().
"""

import json
import logging
from typing import Optional

from ..config import GatewayConfig
from ..core.errors import CompletionFormatError, MissingCredential
from ..core.outgoing import OutgoingHandler
from .http_client import http_post


logger = logging.getLogger(__name__)


def key_excerpt(key: Optional[str]) -> str:
    """
    A recognisable but non-reconstructible fragment of an API key.

    Example:
        >>> key_excerpt("sk-abcdef1234567890wxyz")
        'sk-abc...wxyz'
        >>> key_excerpt("short")
        '*****'
    """
    if not key:
        return "(none)"
    if len(key) <= 12:
        return "*" * len(key)
    return f"{key[:6]}...{key[-4:]}"


def _require_key(config: GatewayConfig) -> str:
    if not config.openai_api_key:
        raise MissingCredential("OPENAI_API_KEY")
    return config.openai_api_key


def complete(prompt: str, config: GatewayConfig, handler: Optional[OutgoingHandler] = None) -> str:
    """
    Ask the completion endpoint to answer `prompt`.

    Raises:
        MissingCredential: No API key configured.
        CompletionFormatError: The response was not a chat completion.
        HttpStatusError / TransportError / ResponseTimeout: From the exchange.
    """
    key = _require_key(config)
    payload = {
        "model": config.llm_model,
        "messages": [
            {"role": "system", "content": config.system_prompt},
            {"role": "user", "content": prompt},
        ],
        "max_tokens": config.completion_max_tokens,
    }

    raw = http_post(
        config.openai_url,
        json.dumps(payload).encode("utf-8"),
        api_key=key,
        timeout=config.http_timeout,
        handler=handler,
    )

    try:
        content = json.loads(raw)["choices"][0]["message"]["content"]
    except (ValueError, KeyError, IndexError, TypeError) as e:
        raise CompletionFormatError(f"{type(e).__name__}: {e}") from e

    if not isinstance(content, str):
        raise CompletionFormatError("message content is not text")
    return content.strip()


def probe(config: GatewayConfig, handler: Optional[OutgoingHandler] = None) -> str:
    """
    Send a minimal completion request and return the raw response body.

    Raises:
        MissingCredential: No API key configured.
    """
    key = _require_key(config)
    payload = {
        "model": config.llm_model,
        "messages": [{"role": "user", "content": "ping"}],
        "max_tokens": 5,
    }
    logger.info(f"Probing {config.openai_url} with model {config.llm_model} (key {key_excerpt(key)})")
    return http_post(
        config.openai_url,
        json.dumps(payload).encode("utf-8"),
        api_key=key,
        timeout=config.http_timeout,
        handler=handler,
    )
