"""
Generative text provider backed by an OpenAI-compatible chat completions API.

The pipeline depends only on GenerativeProvider.generate(), which returns the
completion text plus any web citations the endpoint attached. Citation
metadata comes in several shapes depending on the backend (grounding chunks,
plain citation lists, url_citation annotations); extract_citations() reads
all of them and never raises.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

import httpx
import openai
from openai import AsyncOpenAI

from newscast.config import (
    SMART_MODEL, SMART_BASE_URL, SMART_API_KEY,
    FAST_MODEL, FAST_BASE_URL, FAST_API_KEY,
    GROUNDED_MODEL, GROUNDED_BASE_URL, GROUNDED_API_KEY,
    SMART_WEB_SEARCH, LLM_TIMEOUT,
)
from newscast.errors import ProviderFailure
from newscast.utils import dedupe, strip_think_blocks

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    """Text returned by a generation call, with web citations if any."""
    text: str
    citations: List[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Citation extraction
# ---------------------------------------------------------------------------
def _as_dict(raw: Any) -> dict:
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return raw
    if hasattr(raw, "model_dump"):
        dumped = raw.model_dump()
        return dumped if isinstance(dumped, dict) else {}
    return {}


def _urls_from_list(items) -> List[str]:
    """Read URLs from a list of strings or {uri|url} dicts."""
    urls = []
    if not isinstance(items, list):
        return urls
    for item in items:
        if isinstance(item, str):
            urls.append(item)
        elif isinstance(item, dict):
            url = item.get("uri") or item.get("url")
            if isinstance(url, str):
                urls.append(url)
    return urls


def _urls_from_grounding(container: dict) -> List[str]:
    """Read grounding_chunks[].web.uri (snake or camel case)."""
    urls = []
    meta = container.get("grounding_metadata") or container.get("groundingMetadata")
    if not isinstance(meta, dict):
        return urls
    chunks = meta.get("grounding_chunks") or meta.get("groundingChunks") or []
    for chunk in chunks:
        if not isinstance(chunk, dict):
            continue
        web = chunk.get("web") or {}
        uri = web.get("uri") if isinstance(web, dict) else None
        if isinstance(uri, str):
            urls.append(uri)
    return urls


def _urls_from_citation_metadata(container: dict) -> List[str]:
    meta = container.get("citation_metadata") or container.get("citationMetadata")
    if isinstance(meta, dict):
        return _urls_from_list(meta.get("citations") or meta.get("citation_sources"))
    return []


def extract_citations(raw: Any) -> List[str]:
    """Collect citation URLs from a provider response.

    Understands:
    - structured grounding: grounding_metadata.grounding_chunks[].web.uri
      (top level, per choice or per candidate)
    - legacy lists: citations / citation_sources as strings or {uri|url} dicts
    - citation_metadata.citations[].uri
    - search_results[].url
    - message.annotations[].url_citation.url

    Returns an empty list when nothing is present or the shape is unknown.
    """
    urls: List[str] = []
    try:
        data = _as_dict(raw)
        urls += _urls_from_list(data.get("citations"))
        urls += _urls_from_list(data.get("citation_sources"))
        urls += _urls_from_list(data.get("search_results"))
        urls += _urls_from_grounding(data)
        urls += _urls_from_citation_metadata(data)

        for container in (data.get("choices") or []) + (data.get("candidates") or []):
            if not isinstance(container, dict):
                continue
            urls += _urls_from_grounding(container)
            urls += _urls_from_citation_metadata(container)
            message = container.get("message") or {}
            if not isinstance(message, dict):
                continue
            urls += _urls_from_list(message.get("citations"))
            for ann in message.get("annotations") or []:
                if isinstance(ann, dict) and isinstance(ann.get("url_citation"), dict):
                    url = ann["url_citation"].get("url")
                    if isinstance(url, str):
                        urls.append(url)
    except Exception as e:
        logger.debug(f"Citation extraction skipped: {e}")
    return dedupe(urls)


# ---------------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------------
class GenerativeProvider:
    """Prompt-in, text-out wrapper around one chat completions model.

    Attributes:
        client: AsyncOpenAI (or compatible) client
        model: Model name sent with every request
        name: Label used in logs and ProviderFailure
        web_search_supported: Whether web_search=True should send web_search_options
    """

    def __init__(self, client, model: str, name: str = "smart",
                 web_search_supported: bool = False, timeout: float = LLM_TIMEOUT):
        self.client = client
        self.model = model
        self.name = name
        self.web_search_supported = web_search_supported
        self.timeout = timeout

    async def generate(
        self,
        prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        web_search: bool = False,
        system_prompt: Optional[str] = None,
    ) -> GenerationResult:
        """Run one completion.

        Raises:
            ProviderFailure: On transport, HTTP, quota or timeout errors, or an empty completion.
        """
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        kwargs = {
            "model": self.model,
            "messages": messages,
            "max_tokens": max_tokens,
            "timeout": self.timeout,
        }
        if web_search and self.web_search_supported:
            # search-enabled models reject sampling parameters
            kwargs["web_search_options"] = {}
        else:
            kwargs["temperature"] = temperature

        logger.debug("[%s] prompt (%d chars): %.500s", self.name, len(prompt), prompt)
        try:
            resp = await self.client.chat.completions.create(**kwargs)
        except (openai.APIError, httpx.HTTPError, asyncio.TimeoutError) as e:
            raise ProviderFailure(f"{type(e).__name__}: {e}", provider=self.name) from e

        if not resp.choices or resp.choices[0].message.content is None:
            raise ProviderFailure("empty completion", provider=self.name)

        text = strip_think_blocks(resp.choices[0].message.content)
        citations = extract_citations(resp)
        logger.debug("[%s] response (%d chars, %d citations): %.500s",
                     self.name, len(text), len(citations), text)
        return GenerationResult(text=text, citations=citations)


def make_smart_provider() -> GenerativeProvider:
    client = AsyncOpenAI(base_url=SMART_BASE_URL, api_key=SMART_API_KEY)
    return GenerativeProvider(client, SMART_MODEL, name="smart",
                              web_search_supported=SMART_WEB_SEARCH)


def make_fast_provider() -> GenerativeProvider:
    """Fast model for cheap calls; falls back to the smart model when not configured."""
    if not (FAST_MODEL and FAST_BASE_URL):
        logger.info("Fast model not configured, using smart model for fast calls")
        return make_smart_provider()
    client = AsyncOpenAI(base_url=FAST_BASE_URL, api_key=FAST_API_KEY)
    return GenerativeProvider(client, FAST_MODEL, name="fast")


def make_grounded_provider() -> Optional[GenerativeProvider]:
    """Search-grounded model for hybrid discovery, or None when not configured."""
    if not (GROUNDED_MODEL and GROUNDED_BASE_URL):
        return None
    client = AsyncOpenAI(base_url=GROUNDED_BASE_URL, api_key=GROUNDED_API_KEY)
    return GenerativeProvider(client, GROUNDED_MODEL, name="grounded")
