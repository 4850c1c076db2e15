"""
Vietnamese text helpers
Tone stripping, slugs and tone-insensitive relevance scoring for search
"""

from __future__ import annotations
import re
import unicodedata
from difflib import SequenceMatcher
from typing import Callable, Iterable, List, Sequence


def remove_accents(text: str) -> str:
    """Strip Vietnamese tones and map 'đ' to 'd'; result is lower case"""
    if not text:
        return ""
    text = text.replace("đ", "d").replace("Đ", "D")
    decomposed = unicodedata.normalize('NFD', text)
    return ''.join(c for c in decomposed if unicodedata.category(c) != 'Mn').lower()


def norm_text(text: str) -> str:
    text = remove_accents((text or "").strip())
    return re.sub(r"\s+", " ", text)


def slugify(text: str, fallback: str = "item") -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", remove_accents(text or "")).strip("-")
    return slug or fallback


def unique_slug(base: str, exists: Callable[[str], bool]) -> str:
    """Append -1, -2, ... until `exists` says the slug is free"""
    slug = base
    counter = 1
    while exists(slug):
        slug = f"{base}-{counter}"
        counter += 1
    return slug


def relevance_score(values: Iterable[str], query: str) -> float:
    """
    Best score of the query against any of the values:
    exact 1.0, prefix 0.95, substring 0.9, all words 0.85,
    some words 0.6 * ratio, otherwise similarity * 0.5 above 50%
    """
    normalized_query = norm_text(query)
    words = normalized_query.split()
    if not words:
        return 1.0

    best = 0.0
    for value in values:
        if not value:
            continue
        normalized = norm_text(str(value))
        if normalized == normalized_query:
            score = 1.0
        elif normalized.startswith(normalized_query):
            score = 0.95
        elif normalized_query in normalized:
            score = 0.9
        else:
            matching = [w for w in words if w in normalized]
            if len(matching) == len(words):
                score = 0.85
            elif matching:
                score = 0.6 * len(matching) / len(words)
            else:
                similarity = SequenceMatcher(None, normalized, normalized_query).ratio()
                score = similarity * 0.5 if similarity > 0.5 else 0.0
        best = max(best, score)
    return best


def rank_by_relevance(items: Sequence[dict], query: str, keys: List[str], threshold: float = 0.3) -> List[dict]:
    """Score items over the given keys, drop weak matches, best first"""
    scored = []
    for item in items:
        score = relevance_score((item.get(key) or '' for key in keys), query)
        if score >= threshold:
            scored.append((score, item))
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [item for _, item in scored]
