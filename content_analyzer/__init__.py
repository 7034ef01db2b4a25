"""
SEO Content Analyzer
Competitive content analysis of a page against the top organic search results for a keyword.
"""

__version__ = "1.0.0"

from .models import (
    PageContent, ContentAnalysis, KeywordMetric, SimilarityResult,
    ContentBenchmarks, KeywordAnalysisPayload, CacheEntry, SerpResultRow,
    AnalysisStatus, AnalysisRecord
)
from .fetcher import ContentFetcher, FetchError, ProxyStrategy
from .extractor import HtmlExtractor
from .corpus import CorpusBuilder
from .keywords import KeywordStatisticsEngine, KeywordAnalysisError, AnalysisCancelled, CancellationToken
from .similarity import SimilarityScorer, PlaceholderEmbedder, SentenceTransformerEmbedder
from .serp import SerpDifficultyScorer, DataForSeoClient, SerpApiError
from .storage import JsonFileRecordStore
from .cache import AnalysisCache, CacheError
from .analyzer import (
    AnalysisService, AnalysisNotFoundError, build_corpus, compute_keyword_metrics,
    compute_similarity, compute_serp_difficulty
)
