"""
Analysis orchestration: SERP retrieval, corpus building and the cached
keyword/similarity text analysis for a stored analysis record.
"""

import asyncio
import hashlib
import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional, Sequence

from content_analyzer.benchmarking import BenchmarkAnalyzer
from content_analyzer.cache import AnalysisCache
from content_analyzer.corpus import CompetitorInput, CorpusBuilder
from content_analyzer.keywords import CancellationToken, KeywordStatisticsEngine
from content_analyzer.models import (
    OUR_DOMAIN, AnalysisRecord, AnalysisStatus, CacheEntry, ContentAnalysis,
    KeywordAnalysisPayload, KeywordMetric, SerpResultRow, SimilarityResult
)
from content_analyzer.serp import DataForSeoClient, SerpDifficultyScorer
from content_analyzer.similarity import SimilarityScorer
from content_analyzer.storage import RecordStore

logger = logging.getLogger(__name__)


class AnalysisNotFoundError(Exception):
    """Raised when an analysis record does not exist."""
    pass


async def build_corpus(
    our_url: Optional[str],
    competitors: Sequence[CompetitorInput],
    on_progress: Optional[Callable[[str], None]] = None,
    builder: Optional[CorpusBuilder] = None
) -> ContentAnalysis:
    return await (builder or CorpusBuilder()).build(our_url, competitors, on_progress=on_progress)


async def compute_keyword_metrics(
    corpus: ContentAnalysis,
    target_keywords: Iterable[str] = (),
    on_progress: Optional[Callable[[float], None]] = None,
    cancel_token: Optional[CancellationToken] = None
) -> List[KeywordMetric]:
    engine = KeywordStatisticsEngine()
    try:
        return await engine.compute(corpus, target_keywords, on_progress=on_progress, cancel_token=cancel_token)
    finally:
        engine.close()


def compute_similarity(target_text: str, competitor_texts: Sequence[str]) -> SimilarityResult:
    return SimilarityScorer().compare(target_text, competitor_texts)


def compute_serp_difficulty(rows: Sequence[SerpResultRow]) -> int:
    return SerpDifficultyScorer().score(rows)


def analysis_hash(corpus: ContentAnalysis, target_keywords: Sequence[str]) -> str:
    """Content hash of the selected corpus combined with the target keywords."""
    digest = hashlib.sha256(corpus.content_hash().encode('utf-8'))
    for keyword in target_keywords:
        digest.update(b'\x00' + keyword.encode('utf-8'))
    return digest.hexdigest()


class AnalysisService:
    """
    Runs the analysis stages for stored records.

    Every stage reads the record from the store, does its work and writes its
    result back; the keyword analysis additionally goes through the cache.
    """

    def __init__(
        self,
        store: RecordStore,
        serp_client: Optional[DataForSeoClient] = None,
        corpus_builder: Optional[CorpusBuilder] = None,
        keyword_engine: Optional[KeywordStatisticsEngine] = None,
        similarity_scorer: Optional[SimilarityScorer] = None,
        difficulty_scorer: Optional[SerpDifficultyScorer] = None,
        cache: Optional[AnalysisCache] = None
    ):
        self.store = store
        self.serp_client = serp_client or DataForSeoClient()
        self.corpus_builder = corpus_builder or CorpusBuilder()
        self.keyword_engine = keyword_engine or KeywordStatisticsEngine()
        self.similarity_scorer = similarity_scorer or SimilarityScorer()
        self.difficulty_scorer = difficulty_scorer or SerpDifficultyScorer()
        self.cache = cache or AnalysisCache(store)

    async def get_record(self, analysis_id: str) -> AnalysisRecord:
        data = await self.store.get(analysis_id)
        if not data:
            raise AnalysisNotFoundError(f"Analysis {analysis_id} not found")
        return AnalysisRecord.model_validate(data)

    async def run_serp_analysis(
        self,
        analysis_id: str,
        keyword: str,
        location_code: Optional[int] = None,
        additional_keywords: Optional[List[str]] = None,
        request_id: str = 'N/A'
    ) -> AnalysisRecord:
        """
        Fetch the SERP for a keyword and store its rows and quick difficulty score.

        The record goes to ``processing`` first, then ``completed``; on failure it
        is marked ``error`` and the exception is re-raised.
        """
        if not keyword or not keyword.strip():
            raise ValueError("Keyword cannot be empty")

        fields = {'keyword': keyword.strip(), 'status': AnalysisStatus.PROCESSING.value}
        if additional_keywords is not None:
            fields['additional_keywords'] = [k.strip() for k in additional_keywords if k and k.strip()]
        await self.store.update(analysis_id, fields)

        try:
            rows = await self.serp_client.fetch_serp(keyword.strip(), location_code, request_id=request_id)
            quick_score = self.difficulty_scorer.score(rows)
            data = await self.store.update(analysis_id, {
                'serp_results': [row.model_dump(mode='json') for row in rows],
                'quick_score': quick_score,
                'status': AnalysisStatus.COMPLETED.value,
            })
        except Exception as e:
            logger.error(f"[{request_id}] SERP analysis failed for {analysis_id}: {e}")
            await self.store.update(analysis_id, {'status': AnalysisStatus.ERROR.value})
            raise

        logger.info(f"[{request_id}] SERP analysis completed for {analysis_id}: {len(rows)} results, score {quick_score}")
        return AnalysisRecord.model_validate(data)

    async def build_content_analysis(
        self,
        analysis_id: str,
        our_url: Optional[str] = None,
        on_progress: Optional[Callable[[str], None]] = None,
        request_id: str = 'N/A'
    ) -> ContentAnalysis:
        """Build the corpus from our URL and the stored SERP results, then persist it."""
        record = await self.get_record(analysis_id)
        our_url = our_url or record.url
        if not record.serp_results:
            raise ValueError("SERP analysis must complete before content analysis")

        corpus = await self.corpus_builder.build(
            our_url, record.serp_results, on_progress=on_progress, request_id=request_id
        )
        await self.store.update(analysis_id, {
            'url': our_url,
            'content_analysis': corpus.model_dump(mode='json'),
        })
        return corpus

    async def update_selected_domains(self, analysis_id: str, domains: Iterable[str]) -> ContentAnalysis:
        record = await self.get_record(analysis_id)
        corpus = record.content_analysis
        if corpus is None:
            raise ValueError("Content analysis has not been run for this analysis")

        known = {OUR_DOMAIN, *(c.domain for c in corpus.competitors if c.domain)}
        selected = set(domains)
        unknown = selected - known
        if unknown:
            raise ValueError(f"Unknown domains: {', '.join(sorted(unknown))}")

        corpus.selected_domains = selected
        await self.store.update(analysis_id, {'content_analysis': corpus.model_dump(mode='json')})
        logger.info(f"Updated selected domains for {analysis_id}: {sorted(selected)}")
        return corpus

    async def analyze_text(
        self,
        analysis_id: str,
        force_refresh: bool = False,
        on_progress: Optional[Callable[[float], None]] = None,
        cancel_token: Optional[CancellationToken] = None,
        request_id: str = 'N/A'
    ) -> CacheEntry:
        """
        Keyword metrics, similarity and benchmarks for the selected corpus.

        A cached result is returned while the corpus and keywords are unchanged
        and the result is under an hour old. ``force_refresh`` drops the cached
        result before recomputing. A failed computation raises and caches nothing.
        """
        record = await self.get_record(analysis_id)
        corpus = record.content_analysis
        if corpus is None:
            raise ValueError("Content analysis has not been run for this analysis")

        target_keywords = [k for k in [record.keyword, *record.additional_keywords] if k]
        content_hash = analysis_hash(corpus, target_keywords)

        if force_refresh:
            logger.info(f"[{request_id}] Force refresh requested, invalidating cache for {analysis_id}")
            await self.cache.invalidate(analysis_id)
        else:
            cached = await self.cache.lookup(analysis_id, content_hash)
            if cached is not None:
                logger.info(f"[{request_id}] Returning cached text analysis for {analysis_id}")
                return cached

        target_text = corpus.our_domain.full_text() if corpus.include_ours() else ''
        competitor_texts = [c.full_text() for c in corpus.selected_competitors()]

        loop = asyncio.get_running_loop()
        keywords, similarity = await asyncio.gather(
            self.keyword_engine.compute(
                corpus, target_keywords, on_progress=on_progress,
                cancel_token=cancel_token, request_id=request_id
            ),
            loop.run_in_executor(None, self.similarity_scorer.compare, target_text, competitor_texts)
        )

        entry = CacheEntry(
            analysis_id=analysis_id,
            payload=KeywordAnalysisPayload(
                keywords=keywords,
                similarity=similarity,
                benchmarks=BenchmarkAnalyzer.calculate_benchmarks(corpus)
            ),
            last_updated=datetime.now(timezone.utc),
            content_hash=content_hash
        )
        await self.cache.set(analysis_id, entry)
        logger.info(f"[{request_id}] Text analysis completed for {analysis_id}")
        return entry

    async def get_cached_text_analysis(self, analysis_id: str) -> Optional[CacheEntry]:
        return await self.cache.get(analysis_id)

    def close(self):
        self.keyword_engine.close()
