"""
Unit tests for providers/generative.py: GenerativeProvider and citation extraction.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from newscast.errors import ProviderFailure
from newscast.providers.generative import GenerativeProvider, extract_citations


def _provider(response=None, side_effect=None, web_search_supported=False):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=response, side_effect=side_effect)
    return GenerativeProvider(client, "test-model", name="smart",
                              web_search_supported=web_search_supported), client


# ---------------------------------------------------------------------------
# Citation extraction
# ---------------------------------------------------------------------------
class TestExtractCitations:

    def test_plain_and_dict_citations(self):
        raw = {"citations": ["https://a.example", {"url": "https://b.example"}],
               "citation_sources": [{"uri": "https://c.example"}]}
        assert extract_citations(raw) == ["https://a.example", "https://b.example", "https://c.example"]

    def test_grounding_chunks_per_candidate(self):
        raw = {"candidates": [{"grounding_metadata": {"grounding_chunks": [
            {"web": {"uri": "https://g1.example", "title": "G1"}},
            {"web": {"uri": "https://g2.example"}},
            {"retrieved_context": {}},
        ]}}]}
        assert extract_citations(raw) == ["https://g1.example", "https://g2.example"]

    def test_camel_case_grounding(self):
        raw = {"groundingMetadata": {"groundingChunks": [{"web": {"uri": "https://g.example"}}]}}
        assert extract_citations(raw) == ["https://g.example"]

    def test_url_citation_annotations(self):
        raw = {"choices": [{"message": {"content": "x", "annotations": [
            {"type": "url_citation", "url_citation": {"url": "https://ann.example", "title": "A"}},
        ]}}]}
        assert extract_citations(raw) == ["https://ann.example"]

    def test_search_results(self):
        raw = {"search_results": [{"url": "https://s.example", "title": "S"}]}
        assert extract_citations(raw) == ["https://s.example"]

    def test_deduplicates(self):
        raw = {"citations": ["https://a.example"],
               "search_results": [{"url": "https://a.example"}]}
        assert extract_citations(raw) == ["https://a.example"]

    def test_unknown_shapes_are_empty(self):
        assert extract_citations(None) == []
        assert extract_citations("not a response") == []
        assert extract_citations({"citations": "https://single.example"}) == []
        assert extract_citations({"choices": ["odd", {"message": "also odd"}]}) == []

    def test_model_dump_objects(self, mock_llm_response):
        resp = mock_llm_response("text", raw={"citations": ["https://dump.example"]})
        assert extract_citations(resp) == ["https://dump.example"]


# ---------------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------------
class TestGenerativeProvider:

    def test_returns_text_and_citations(self, mock_llm_response):
        resp = mock_llm_response("<think>hmm</think>The answer.",
                                 raw={"citations": ["https://src.example"]})
        provider, client = _provider(resp)
        result = asyncio.run(provider.generate("question", temperature=0.3, max_tokens=50))
        assert result.text == "The answer."
        assert result.citations == ["https://src.example"]
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["temperature"] == 0.3
        assert kwargs["max_tokens"] == 50
        assert kwargs["messages"] == [{"role": "user", "content": "question"}]

    def test_system_prompt(self, mock_llm_response):
        provider, client = _provider(mock_llm_response("ok"))
        asyncio.run(provider.generate("q", system_prompt="be brief"))
        messages = client.chat.completions.create.call_args.kwargs["messages"]
        assert messages[0] == {"role": "system", "content": "be brief"}

    def test_web_search_when_supported(self, mock_llm_response):
        provider, client = _provider(mock_llm_response("ok"), web_search_supported=True)
        asyncio.run(provider.generate("q", web_search=True))
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["web_search_options"] == {}
        assert "temperature" not in kwargs

    def test_web_search_ignored_when_unsupported(self, mock_llm_response):
        provider, client = _provider(mock_llm_response("ok"))
        asyncio.run(provider.generate("q", web_search=True))
        kwargs = client.chat.completions.create.call_args.kwargs
        assert "web_search_options" not in kwargs
        assert "temperature" in kwargs

    @pytest.mark.parametrize("error", [
        httpx.ConnectError("connection refused"),
        asyncio.TimeoutError(),
        openai.APIConnectionError(request=httpx.Request("POST", "http://localhost:9999/v1")),
    ])
    def test_transport_errors_become_provider_failure(self, error):
        provider, _ = _provider(side_effect=error)
        with pytest.raises(ProviderFailure) as exc:
            asyncio.run(provider.generate("q"))
        assert exc.value.provider == "smart"

    def test_empty_completion(self, mock_llm_response):
        provider, _ = _provider(mock_llm_response(None))
        with pytest.raises(ProviderFailure, match="empty completion"):
            asyncio.run(provider.generate("q"))
