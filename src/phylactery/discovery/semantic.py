"""Lexical similarity between knowledge nodes (TF-IDF + cosine similarity).

IDF is recomputed on every call from exactly the documents passed in: the
target plus every candidate. There is no standing vocabulary, so a score is
always explainable from the inputs of that call.
"""

from __future__ import annotations

import math
import re
from collections import Counter
from typing import Iterable, Iterator, Sequence

from ..config import MIN_TOKEN_LENGTH, SEMANTIC_SIMILARITY_THRESHOLD, STOP_WORDS
from ..models import KnowledgeNode, SemanticSimilarity

# Sparse vector: term -> weight
TermVector = dict[str, float]

_PUNCTUATION = re.compile(r"[^\w\s]")


class SemanticAnalyzer:
    """Find nodes whose text is lexically similar to a target node."""

    def __init__(
        self,
        stop_words: Iterable[str] = STOP_WORDS,
        min_token_length: int = MIN_TOKEN_LENGTH,
    ) -> None:
        self._stop_words = frozenset(stop_words)
        self._min_token_length = min_token_length

    def tokenize(self, text: str) -> list[str]:
        """Lowercase, strip punctuation, split, and drop short and stop-word tokens."""
        cleaned = _PUNCTUATION.sub(" ", text.lower())
        return [
            term
            for term in cleaned.split()
            if len(term) >= self._min_token_length and term not in self._stop_words
        ]

    @staticmethod
    def calculate_term_frequency(tokens: Sequence[str]) -> TermVector:
        """Token counts normalized by document length."""
        total = len(tokens)
        if total == 0:
            return {}
        return {term: count / total for term, count in Counter(tokens).items()}

    @staticmethod
    def calculate_idf(documents: Sequence[Sequence[str]]) -> dict[str, float]:
        """idf(term) = ln(total_docs / docs_containing_term)."""
        total_docs = len(documents)
        doc_frequency: Counter[str] = Counter()
        for tokens in documents:
            doc_frequency.update(set(tokens))
        return {term: math.log(total_docs / freq) for term, freq in doc_frequency.items()}

    @staticmethod
    def create_tfidf_vector(tf: TermVector, idf: dict[str, float]) -> TermVector:
        return {term: weight * idf.get(term, 0.0) for term, weight in tf.items()}

    @staticmethod
    def calculate_cosine_similarity(vector1: TermVector, vector2: TermVector) -> float:
        """Cosine similarity of two sparse vectors; 0.0 if either has zero norm."""
        magnitude1 = math.sqrt(sum(v * v for v in vector1.values()))
        magnitude2 = math.sqrt(sum(v * v for v in vector2.values()))
        if magnitude1 == 0 or magnitude2 == 0:
            return 0.0

        # Terms missing from either side contribute nothing to the dot product
        if len(vector1) > len(vector2):
            vector1, vector2 = vector2, vector1
        dot_product = sum(weight * vector2.get(term, 0.0) for term, weight in vector1.items())

        # Rounding can push identical vectors a hair above 1.0
        return max(0.0, min(1.0, dot_product / (magnitude1 * magnitude2)))

    def vectorize(self, text: str, idf: dict[str, float]) -> TermVector:
        """TF-IDF vector for a single text against a precomputed IDF table."""
        return self.create_tfidf_vector(self.calculate_term_frequency(self.tokenize(text)), idf)

    def iter_similarities(
        self,
        target_node: KnowledgeNode,
        all_nodes: Sequence[KnowledgeNode],
    ) -> Iterator[SemanticSimilarity]:
        """Yield the similarity of every other node to the target, unfiltered.

        The target itself is excluded. Yields nothing when there are no other
        nodes.
        """
        other_nodes = [node for node in all_nodes if node.id != target_node.id]
        if not other_nodes:
            return

        target_tokens = self.tokenize(target_node.searchable_text)
        other_tokens = [self.tokenize(node.searchable_text) for node in other_nodes]
        idf = self.calculate_idf([target_tokens, *other_tokens])

        target_vector = self.create_tfidf_vector(self.calculate_term_frequency(target_tokens), idf)

        for node, tokens in zip(other_nodes, other_tokens):
            vector = self.create_tfidf_vector(self.calculate_term_frequency(tokens), idf)
            yield SemanticSimilarity(
                node_id=node.id,
                similarity=self.calculate_cosine_similarity(target_vector, vector),
            )

    def find_similar_nodes(
        self,
        target_node: KnowledgeNode,
        all_nodes: Sequence[KnowledgeNode],
        threshold: float = SEMANTIC_SIMILARITY_THRESHOLD,
    ) -> list[SemanticSimilarity]:
        """Nodes whose similarity to the target is at least ``threshold``, best first."""
        similarities = [
            similarity
            for similarity in self.iter_similarities(target_node, all_nodes)
            if similarity.similarity >= threshold
        ]
        similarities.sort(key=lambda s: s.similarity, reverse=True)
        return similarities
