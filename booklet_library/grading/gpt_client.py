"""
Shared OpenAI helper for the grading adapter.

Used by:
  - marker.mark()   (score a student response)
  - marker.solve()  (extract question text + solution from page images)

Model: gpt-4o-mini  (override with GPT_MODEL env var, e.g. "gpt-4o")
"""

import os
from typing import List, Optional

from openai import AsyncOpenAI

from booklet_library.config import GPT_MODEL

# Lazy singleton
_client: Optional[AsyncOpenAI] = None


def _get_client() -> AsyncOpenAI:
    global _client
    if _client is None:
        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise RuntimeError(
                "OPENAI_API_KEY is not set. Add it to your .env file."
            )
        _client = AsyncOpenAI(api_key=api_key)
    return _client


async def call_gpt(
    prompt: str,
    system: str = "You are a careful school examiner. Output only what is asked.",
    images: Optional[List[str]] = None,
    temperature: float = 0.2,
    max_tokens: int = 1024,
) -> str:
    """
    Call OpenAI Chat Completions and return the assistant message text.

    Args:
        prompt:      User-turn message
        system:      System prompt
        images:      Optional image URLs or data URLs sent with the prompt
        temperature: Sampling temperature (lower = more deterministic)
        max_tokens:  Max response tokens
    """
    content = prompt
    if images:
        content = [{"type": "text", "text": prompt}] + [
            {"type": "image_url", "image_url": {"url": url}} for url in images
        ]
    client = _get_client()
    response = await client.chat.completions.create(
        model=GPT_MODEL,
        messages=[
            {"role": "system", "content": system},
            {"role": "user", "content": content},
        ],
        temperature=temperature,
        max_tokens=max_tokens,
    )
    return response.choices[0].message.content or ""
