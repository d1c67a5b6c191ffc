import logging
import re
from typing import Any, Optional
from urllib.parse import quote

import httpx

from lifegrass.errors import UpstreamUnavailable
from lifegrass.services.reflections import fallback_comment, fallback_recommendation

logger = logging.getLogger(__name__)

MAX_JOURNAL_CHARS = 1500

CHAT = "chat"
RESPONSES = "responses"
OLLAMA = "ollama"

COMMENT_TEMPLATE = (
    "You are reading a weekly journal entry from {when}. Read through the person's week and write a warm, "
    "emotional one-line summary or reflection. It should capture the feelings, mood, and essence of this week. "
    "Be empathetic, personal, and emotionally resonant, like a friend who truly understands what this week "
    "meant to them. Keep it to ONE SENTENCE ONLY.\n\n"
    "{context}\n\n"
    "Reply with only the one-line summary about this week, no extra text."
)

RECOMMEND_TEMPLATE = (
    "You are a warm, caring friend reading a weekly journal. Based on this week's journal, suggest ONE concrete "
    "action or challenge for NEXT WEEK. Be warm, personal, and specific.\n\n"
    "{context}\n\n"
    "Reply with only ONE recommendation for next week, one line, no extra text."
)


#----------response decoding---------------

def decode_completion(kind: str, data: Any) -> Optional[str]:
    """Pull the generated text out of an upstream response.

    Each endpoint kind has exactly one expected shape:

    - ``chat``: ``{"choices": [{"message": {"content": str}}]}``
    - ``responses``: ``{"output": [{"type": "message", "content": [{"type": "output_text", "text": str}]}]}``
    - ``ollama``: ``{"response": str}``

    Anything else decodes to ``None`` and the caller falls back.
    """
    if not isinstance(data, dict):
        return None
    out: Any = None
    if kind == CHAT:
        choices = data.get("choices")
        if isinstance(choices, list) and choices and isinstance(choices[0], dict):
            message = choices[0].get("message")
            if isinstance(message, dict):
                out = message.get("content")
    elif kind == RESPONSES:
        for item in data.get("output") or []:
            if not (isinstance(item, dict) and item.get("type") == "message"):
                continue
            for part in item.get("content") or []:
                if isinstance(part, dict) and part.get("type") == "output_text":
                    out = part.get("text")
                    break
            break
    elif kind == OLLAMA:
        out = data.get("response")
    if not isinstance(out, str):
        return None
    return first_line(out) or None


def first_line(out: str) -> str:
    """First non-empty line, without code fences or wrapping quotes."""
    s = (out or "").strip()
    m = re.search(r"```(?:\w+)?\s*([\s\S]*?)```", s)
    if m and m.group(1).strip():
        s = m.group(1).strip()
    line = next((ln.strip() for ln in s.splitlines() if ln.strip()), "")
    if len(line) > 1 and line[0] == line[-1] and line[0] in "\"'":
        line = line[1:-1].strip()
    elif line.startswith("“") and line.endswith("”"):
        line = line[1:-1].strip()
    return line


def _context(keywords: str, text: str) -> str:
    parts = []
    if keywords:
        parts.append(f"Keywords: {keywords}")
    if text:
        parts.append(f"Journal entry: {text}")
    return "\n\n".join(parts)


class TextServiceClient:
    """Journal text in, one short sentence out; falls back locally on any upstream trouble."""

    def __init__(self, settings, *, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.transport = transport

    @property
    def kind(self) -> Optional[str]:
        provider = self.settings.AI_PROVIDER
        if provider == "ollama":
            return OLLAMA
        if provider == "azure" and self.settings.AZURE_OPENAI_API_KEY and self.settings.AZURE_OPENAI_ENDPOINT:
            return RESPONSES if "/responses" in self.settings.AZURE_OPENAI_ENDPOINT else CHAT
        return None

    def _azure_url(self) -> str:
        url = self.settings.AZURE_OPENAI_ENDPOINT.strip()
        if "/chat/completions" in url or "/responses" in url:
            return url
        base = url.rstrip("/")
        model = quote(self.settings.AZURE_OPENAI_MODEL, safe="")
        return (
            f"{base}/openai/deployments/{model}/chat/completions"
            f"?api-version={self.settings.AZURE_OPENAI_API_VERSION}"
        )

    def _request(self, kind: str, prompt: str, max_tokens: int) -> tuple[str, dict, dict]:
        if kind == OLLAMA:
            payload = {
                "model": self.settings.OLLAMA_MODEL,
                "prompt": prompt,
                "stream": False,
                "options": {"temperature": 0.7, "num_predict": max_tokens},
            }
            return f"{self.settings.OLLAMA_BASE_URL.rstrip('/')}/api/generate", {}, payload
        headers = {"api-key": self.settings.AZURE_OPENAI_API_KEY}
        if kind == RESPONSES:
            return self._azure_url(), headers, {"model": self.settings.AZURE_OPENAI_MODEL, "input": prompt}
        payload = {
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": max_tokens,
            "temperature": 0.7,
        }
        return self._azure_url(), headers, payload

    async def complete(self, prompt: str, *, max_tokens: int = 200) -> str:
        kind = self.kind
        if kind is None:
            raise UpstreamUnavailable("AI service not configured")
        url, headers, payload = self._request(kind, prompt, max_tokens)
        try:
            async with httpx.AsyncClient(timeout=self.settings.AI_TIMEOUT_SECONDS, transport=self.transport) as client:
                r = await client.post(url, json=payload, headers=headers)
                r.raise_for_status()
                data = r.json()
        except (httpx.HTTPError, ValueError) as e:
            raise UpstreamUnavailable(f"AI request failed: {e}") from e
        out = decode_completion(kind, data)
        if not out:
            raise UpstreamUnavailable("Unexpected AI response shape")
        return out

    async def comment(self, keywords: str = "", text: str = "",
                      year: Optional[int] = None, week: Optional[int] = None) -> tuple[str, str]:
        """``(comment, source)`` where source is ``"ai"`` or ``"fallback"``."""
        keywords = (keywords or "").strip()
        text = (text or "").strip()[:MAX_JOURNAL_CHARS]
        if not keywords and not text:
            return fallback_comment(), "fallback"
        when = f"Week {week}, {year}" if year is not None and week is not None else "this week"
        prompt = COMMENT_TEMPLATE.format(when=when, context=_context(keywords, text))
        try:
            return await self.complete(prompt, max_tokens=200), "ai"
        except UpstreamUnavailable as e:
            if self.kind is not None:
                logger.warning("AI comment unavailable, using fallback: %s", e)
            return fallback_comment(keywords, text), "fallback"

    async def recommend(self, keywords: str = "", text: str = "") -> tuple[str, str]:
        keywords = (keywords or "").strip()
        text = (text or "").strip()[:MAX_JOURNAL_CHARS]
        if not keywords and not text:
            return fallback_recommendation(), "fallback"
        prompt = RECOMMEND_TEMPLATE.format(context=_context(keywords, text))
        try:
            return await self.complete(prompt, max_tokens=300), "ai"
        except UpstreamUnavailable as e:
            if self.kind is not None:
                logger.warning("AI recommendation unavailable, using fallback: %s", e)
            return fallback_recommendation(keywords, text), "fallback"
