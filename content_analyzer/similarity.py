"""
Content similarity between our text and competitor texts.

Two signals are combined: a TF-IDF cosine over the shared vocabulary and an
embedding cosine over averaged token vectors.
"""

import hashlib
import logging
import re
from functools import lru_cache
from typing import List, Optional, Protocol, Sequence

import numpy as np
from sklearn.metrics.pairwise import cosine_similarity

from content_analyzer import config
from content_analyzer.models import SimilarityResult
from content_analyzer.utils import clamp, round_half_up

logger = logging.getLogger(__name__)

INSUFFICIENT_CONTENT = "Insufficient content for analysis"
VARIATION_THRESHOLD = 0.3

_WHITESPACE = re.compile(r'\s+')
# Anything but letters, digits, whitespace and . , ! ? -
_DISALLOWED_CHARS = re.compile(r'[^\w\s.,!?\-]|_')
_TOKEN_SEPARATORS = re.compile(r'[\s.,!?\-]+')


def clean_text(text: Optional[str]) -> str:
    if not text:
        return ''
    collapsed = _WHITESPACE.sub(' ', text).strip()
    return _DISALLOWED_CHARS.sub('', collapsed)


def tokenize(text: Optional[str]) -> List[str]:
    """Clean, lowercase and split a text; tokens of two characters or fewer are dropped."""
    cleaned = clean_text(text).lower()
    return [token for token in _TOKEN_SEPARATORS.split(cleaned) if len(token) > 2]


class Embedder(Protocol):
    dimension: int

    def embed(self, token: str) -> np.ndarray:
        ...


class PlaceholderEmbedder:
    """
    Deterministic stand-in for a language model.

    Every token maps to a stable pseudo-random vector in [-1, 1) seeded from its
    SHA-256 digest, so equal tokens always embed identically. The most recently
    used ``cache_size`` vectors are kept.
    """

    def __init__(self, dimension: int = config.EMBEDDING_DIMENSION, cache_size: int = config.EMBEDDING_CACHE_SIZE):
        self.dimension = dimension
        self.embed = lru_cache(maxsize=cache_size)(self._compute)

    def _compute(self, token: str) -> np.ndarray:
        seed = int.from_bytes(hashlib.sha256(token.encode('utf-8')).digest()[:8], 'big')
        return np.random.default_rng(seed).uniform(-1.0, 1.0, self.dimension)


class SentenceTransformerEmbedder:
    """Model-backed embedder; needs the ``embeddings`` extra (sentence-transformers)."""

    def __init__(
        self,
        model_name: str = 'sentence-transformers/all-mpnet-base-v2',
        model=None,
        cache_size: int = config.EMBEDDING_CACHE_SIZE
    ):
        if model is None:
            from sentence_transformers import SentenceTransformer
            logger.info(f"Loading embedding model {model_name}")
            model = SentenceTransformer(model_name)
        self.model = model
        self.dimension = model.get_sentence_embedding_dimension()
        self.embed = lru_cache(maxsize=cache_size)(self._compute)

    def _compute(self, token: str) -> np.ndarray:
        return np.asarray(self.model.encode(token), dtype=float)


class SimilarityScorer:
    """Scores how closely a target text matches a set of competitor texts (0-100)."""

    def __init__(self, embedder: Optional[Embedder] = None):
        self.embedder = embedder or PlaceholderEmbedder()

    def compare(self, target_text: str, competitor_texts: Sequence[str]) -> SimilarityResult:
        target_tokens = tokenize(target_text)
        competitor_tokens = [tokens for tokens in map(tokenize, competitor_texts or []) if tokens]

        if not target_tokens or not competitor_tokens:
            logger.info("Similarity skipped: insufficient content")
            return SimilarityResult(score=0, details=[INSUFFICIENT_CONTENT])

        lexical = self.lexical_similarities(target_tokens, competitor_tokens)
        embedding = self.embedding_similarities(target_tokens, competitor_tokens)

        lexical_score = clamp(round_half_up(float(np.mean(lexical)) * 100), 0, 100)
        embedding_score = clamp(round_half_up(float(np.mean(embedding)) * 100), 0, 100)
        score = clamp(round_half_up((lexical_score + embedding_score) / 2), 0, 100)

        details = [
            f"TF-IDF Similarity Score: {lexical_score}%",
            f"Embedding Similarity Score: {embedding_score}%",
        ]
        if float(np.max(embedding) - np.min(embedding)) > VARIATION_THRESHOLD:
            details.append("Significant variation in content similarity across competitors")
        details.extend(self._guidance(score))

        logger.info(f"Similarity computed: {score} (lexical {lexical_score}, embedding {embedding_score})")
        return SimilarityResult(
            score=score,
            lexical_score=lexical_score,
            embedding_score=embedding_score,
            details=details
        )

    def lexical_similarities(self, target_tokens: List[str], competitor_tokens: List[List[str]]) -> np.ndarray:
        """TF-IDF cosine of the target document against each competitor document."""
        documents = [target_tokens, *competitor_tokens]
        vocabulary = {term: index for index, term in enumerate(sorted({t for doc in documents for t in doc}))}

        tf = np.zeros((len(documents), len(vocabulary)))
        for row, tokens in enumerate(documents):
            for token in tokens:
                tf[row, vocabulary[token]] += 1

        document_frequency = np.count_nonzero(tf, axis=0)
        idf = np.log(len(documents) / document_frequency)
        tfidf = tf * idf

        return cosine_similarity(tfidf[:1], tfidf[1:])[0]

    def embedding_similarities(self, target_tokens: List[str], competitor_tokens: List[List[str]]) -> np.ndarray:
        """Cosine of the averaged token embeddings of the target against each competitor."""
        target_vector = self._document_vector(target_tokens)
        competitor_vectors = np.vstack([self._document_vector(tokens) for tokens in competitor_tokens])
        return cosine_similarity(target_vector.reshape(1, -1), competitor_vectors)[0]

    def _document_vector(self, tokens: List[str]) -> np.ndarray:
        return np.mean([self.embedder.embed(token) for token in tokens], axis=0)

    @staticmethod
    def _guidance(score: int) -> List[str]:
        if score < 50:
            return [
                "Content shows significant differences from competitors",
                "Consider incorporating more industry-specific terminology",
            ]
        if score < 75:
            return [
                "Content shows moderate semantic alignment with competitors",
                "Some room for improvement in topic coverage",
            ]
        guidance = ["Strong semantic alignment with competitor content"]
        if score > 90:
            guidance.append("Warning: Content might be too similar to competitors")
        return guidance
