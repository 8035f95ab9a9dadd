"""Shared utility functions for the newscast pipeline."""
import re
from typing import Iterable, List

from bs4 import BeautifulSoup


def strip_think_blocks(text: str) -> str:
    """Remove <think>...</think> blocks from LLM output (reasoning-model safety net)."""
    return re.sub(r"<think>.*?</think>", "", text, flags=re.DOTALL).strip()


def extract_content_from_html(soup: BeautifulSoup, max_chars: int = 8000) -> str:
    """Extract meaningful text content from parsed HTML.

    Uses a priority-based extraction strategy:
    1. <main> tag
    2. <article> tag
    3. <div> with content-related classes
    4. <body> tag (fallback)

    Removes script, style, nav, footer, header, aside, iframe tags first.

    Args:
        soup: BeautifulSoup parsed HTML (will be modified in-place by decompose).
        max_chars: Maximum characters to return.

    Returns:
        Extracted and cleaned text content, truncated to max_chars.
    """
    for tag in soup.find_all(["script", "style", "nav", "footer", "header", "aside", "iframe"]):
        tag.decompose()

    content_element = (
        soup.find("main")
        or soup.find("article")
        or soup.find("div", class_=re.compile(r"content|main-content|post-content|article-content", re.I))
        or soup.find("body")
    )

    if content_element:
        text = content_element.get_text(separator=" ", strip=True)
    else:
        text = soup.get_text(separator=" ", strip=True)

    text = re.sub(r"\s+", " ", text).strip()

    return text[:max_chars] if text else ""


def safe_int(v):
    """Safely convert value to int, returning None on failure."""
    if v is None or v == "null":
        return None
    try:
        return int(float(v))
    except (ValueError, TypeError):
        return None


def safe_str(v):
    """Safely convert value to string, returning None for empty/null."""
    if v is None or v == "null" or v == "":
        return None
    return str(v).strip() or None


def clamp_score(v, low: int, high: int, default: int) -> int:
    """Coerce a model-reported score into [low, high], using default if unparseable."""
    n = safe_int(v)
    if n is None:
        return default
    return max(low, min(high, n))


def safe_str_list(v) -> List[str]:
    """Coerce a model-reported list into a list of non-empty strings."""
    if isinstance(v, str):
        v = [v]
    if not isinstance(v, list):
        return []
    out = []
    for item in v:
        s = safe_str(item)
        if s:
            out.append(s)
    return out


def dedupe(items: Iterable[str]) -> List[str]:
    """Drop duplicates and blanks, keeping first-seen order."""
    seen = set()
    out = []
    for item in items:
        if item and item not in seen:
            seen.add(item)
            out.append(item)
    return out


def count_words(text: str) -> int:
    return len(text.split())


def strip_markdown(text: str) -> str:
    """Remove markdown residue that a script must not contain."""
    text = re.sub(r"^\s{0,3}#{1,6}\s*", "", text, flags=re.MULTILINE)
    text = re.sub(r"\*\*(.+?)\*\*", r"\1", text)
    text = re.sub(r"(?<!\w)[*_](\S(?:.*?\S)?)[*_](?!\w)", r"\1", text)
    text = re.sub(r"^\s*[-*+]\s+", "", text, flags=re.MULTILINE)
    text = re.sub(r"`+", "", text)
    return text.strip()


def truncate_at_boundary(text: str, max_chars: int, suffix: str = "") -> str:
    """Truncate text at the last word boundary before max_chars."""
    if len(text) <= max_chars:
        return text
    cut = text[:max_chars - len(suffix)]
    space = cut.rfind(" ")
    if space > 0:
        cut = cut[:space]
    return cut.rstrip(" ,;:-") + suffix
