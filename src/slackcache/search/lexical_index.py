"""
In-memory lexical index over message fields.

Each indexed field (``text`` and ``user`` by default) gets its own BM25L
model. A query term matches a document when the document contains the term
or a vocabulary word within the fuzzy edit distance of it. With ``AND``
combination a document must match every query term to score at all; field
scores are multiplied by the field boost and summed.

Tokenization handles Latin script words and CJK runs. CJK text has no
spaces between words, so each CJK run is split into overlapping character
bigrams (a lone character stays a unigram).

Example:
    >>> index = LexicalIndex()
    >>> index.build([{"text": "deploy failed", "user": "alice"},
    ...              {"text": "lunch plans", "user": "bob"}])
    >>> scores = index.search("deploy")
    >>> scores[0] > 0 and scores[1] == 0
    True
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

import regex as regex_mod
from rank_bm25 import BM25L
from rapidfuzz import process
from rapidfuzz.distance import Levenshtein

from ..config import LexicalIndexConfig

_CJK_CLASS = r"\p{Han}\p{Hiragana}\p{Katakana}ー"
_TOKEN_RE = regex_mod.compile(
    rf"(?P<cjk>[{_CJK_CLASS}]+)|(?P<word>(?:(?![{_CJK_CLASS}])[\p{{L}}\p{{N}}])+)"
)

# Score multiplier for a fuzzy (non-exact) term match.
FUZZY_MATCH_WEIGHT = 0.45


def tokenize(text: str) -> list[str]:
    """Lower-cased Latin words and CJK character bigrams."""
    if not text:
        return []
    tokens: list[str] = []
    for match in _TOKEN_RE.finditer(text):
        cjk = match.group("cjk")
        if cjk:
            if len(cjk) == 1:
                tokens.append(cjk)
            else:
                tokens.extend(cjk[i : i + 2] for i in range(len(cjk) - 1))
        else:
            tokens.append(match.group("word").casefold())
    return tokens


def max_edit_distance(term: str, fuzzy: float) -> int:
    return int(round(fuzzy * len(term)))


@dataclass
class _FieldIndex:
    model: BM25L | None
    term_counts: list[Counter[str]]
    vocabulary: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.vocabulary_set = frozenset(self.vocabulary)


class LexicalIndex:
    """BM25 index with per-field boosts and fuzzy term expansion."""

    def __init__(self, config: LexicalIndexConfig | None = None):
        self.config = config or LexicalIndexConfig()
        self._fields: dict[str, _FieldIndex] = {}
        self._document_count = 0

    @property
    def document_count(self) -> int:
        return self._document_count

    def build(self, documents: Sequence[Mapping[str, str]]) -> None:
        """Index ``documents``, replacing any previous contents."""
        self._document_count = len(documents)
        self._fields = {}

        for field_name in self.config.fields:
            corpus = [tokenize(str(doc.get(field_name) or "")) for doc in documents]
            term_counts = [Counter(tokens) for tokens in corpus]
            vocabulary = sorted({token for tokens in corpus for token in tokens})
            # BM25 divides by the average document length.
            model = BM25L(corpus) if vocabulary else None
            self._fields[field_name] = _FieldIndex(model, term_counts, vocabulary)

    def _expand(self, term: str, field_index: _FieldIndex) -> list[tuple[str, float]]:
        """Vocabulary words matching ``term`` with their match weight."""
        distance = max_edit_distance(term, self.config.fuzzy)
        if distance == 0:
            return [(term, 1.0)] if term in field_index.vocabulary_set else []

        matches = process.extract(
            term,
            field_index.vocabulary,
            scorer=Levenshtein.distance,
            score_cutoff=distance,
            limit=None,
        )
        return [
            (choice, 1.0 if choice == term else FUZZY_MATCH_WEIGHT)
            for choice, _, _ in matches
        ]

    def search(self, query: str) -> list[float]:
        """Score every indexed document against ``query``; 0 means no match."""
        query_terms = list(dict.fromkeys(tokenize(query)))
        if not query_terms or self._document_count == 0:
            return [0.0] * self._document_count

        totals = [0.0] * self._document_count
        matched_terms: list[set[str]] = [set() for _ in range(self._document_count)]

        for field_name, field_index in self._fields.items():
            if field_index.model is None:
                continue
            boost = self.config.boosts.get(field_name, 1.0)

            for term in query_terms:
                for expansion, weight in self._expand(term, field_index):
                    bm25_scores = field_index.model.get_scores([expansion]).tolist()
                    for doc_id, counts in enumerate(field_index.term_counts):
                        if counts.get(expansion):
                            totals[doc_id] += bm25_scores[doc_id] * boost * weight
                            matched_terms[doc_id].add(term)

        if self.config.combine_with.upper() == "AND":
            required = len(query_terms)
            return [
                score if len(matched_terms[doc_id]) == required else 0.0
                for doc_id, score in enumerate(totals)
            ]
        return totals
