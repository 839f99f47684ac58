"""In-memory full-text index over starred repositories."""

from __future__ import annotations

import fnmatch
import threading
from collections import Counter
from typing import Any, Mapping

from rank_bm25 import BM25Plus

from star_cache.core.errors import IndexQueryError
from star_cache.utils.text import tokenize

WILDCARD_CHARS = frozenset("*?")


class FullTextIndex:
    """Keyed documents with BM25 match queries and wildcard term queries.

    Scores from both query kinds fall in ``[0, 1]``. The index is a derived
    projection of the store and is rebuilt on every process start.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._docs: dict[str, list[str]] = {}
        self._postings: dict[str, set[str]] = {}
        self._model: BM25Plus | None = None
        self._model_keys: list[str] = []

    def upsert(self, key: str, document: Mapping[str, Any]) -> None:
        tokens = _document_tokens(document)
        with self._lock:
            self._drop_postings(key)
            self._docs[key] = tokens
            for token in set(tokens):
                self._postings.setdefault(token, set()).add(key)
            self._model = None

    def delete(self, key: str) -> bool:
        with self._lock:
            if key not in self._docs:
                return False
            self._drop_postings(key)
            del self._docs[key]
            self._model = None
            return True

    def count(self) -> int:
        with self._lock:
            return len(self._docs)

    def clear(self) -> None:
        with self._lock:
            self._docs.clear()
            self._postings.clear()
            self._model = None

    def match_query(self, text: str, max_hits: int) -> list[tuple[str, float]]:
        """BM25 over the analysed query terms, normalised by the best hit."""
        terms = tokenize(text)
        if max_hits <= 0:
            raise IndexQueryError(f"max_hits must be positive, got {max_hits}")
        if not terms:
            return []
        with self._lock:
            candidates: set[str] = set()
            for term in terms:
                candidates.update(self._postings.get(term, ()))
            if not candidates:
                return []
            model = self._ensure_model()
            try:
                raw = model.get_scores(terms)
            except (ValueError, ZeroDivisionError) as exc:
                raise IndexQueryError(f"match query failed: {exc}") from exc
            scored = [
                (key, float(score))
                for key, score in zip(self._model_keys, raw)
                if key in candidates
            ]
        best = max(score for _, score in scored)
        if best <= 0:
            return []
        hits = [(key, score / best) for key, score in scored if score > 0]
        return _top(hits, max_hits)

    def wildcard_query(self, text: str, max_hits: int) -> list[tuple[str, float]]:
        """Match each term as ``*term*`` (or as given when it has wildcards).

        A document scores the mean, over query terms, of how much of its best
        matching token the term covers.
        """
        if max_hits <= 0:
            raise IndexQueryError(f"max_hits must be positive, got {max_hits}")
        patterns = _patterns(text)
        if not patterns:
            return []
        totals: Counter[str] = Counter()
        with self._lock:
            vocabulary = list(self._postings.items())
            for pattern, literal in patterns:
                best: dict[str, float] = {}
                for token, keys in vocabulary:
                    if not fnmatch.fnmatchcase(token, pattern):
                        continue
                    coverage = min(1.0, len(literal) / len(token))
                    for key in keys:
                        if coverage > best.get(key, 0.0):
                            best[key] = coverage
                totals.update(best)
        hits = [(key, total / len(patterns)) for key, total in totals.items()]
        return _top(hits, max_hits)

    def _ensure_model(self) -> BM25Plus:
        if self._model is None:
            self._model_keys = sorted(self._docs)
            self._model = BM25Plus([self._docs[key] or [""] for key in self._model_keys])
        return self._model

    def _drop_postings(self, key: str) -> None:
        for token in set(self._docs.get(key, ())):
            keys = self._postings.get(token)
            if keys is None:
                continue
            keys.discard(key)
            if not keys:
                del self._postings[token]


def _document_tokens(document: Mapping[str, Any]) -> list[str]:
    tokens: list[str] = []
    for value in document.values():
        if isinstance(value, str):
            tokens.extend(tokenize(value))
        elif isinstance(value, (list, tuple, set)):
            for item in value:
                tokens.extend(tokenize(str(item)))
    return tokens


def _patterns(text: str) -> list[tuple[str, str]]:
    """(fnmatch pattern, literal characters) per query term."""
    patterns: list[tuple[str, str]] = []
    for term in text.lower().split():
        if any(char in WILDCARD_CHARS for char in term):
            literal = "".join(tokenize(term))
            if literal:
                patterns.append((term, literal))
            continue
        patterns.extend((f"*{token}*", token) for token in tokenize(term))
    return patterns


def _top(hits: list[tuple[str, float]], max_hits: int) -> list[tuple[str, float]]:
    hits.sort(key=lambda item: (-item[1], item[0]))
    return hits[:max_hits]


__all__ = ["FullTextIndex"]
