"""
Tests for the analysis service and the module-level operations.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from content_analyzer.analyzer import (
    AnalysisNotFoundError, AnalysisService, build_corpus, compute_keyword_metrics,
    compute_serp_difficulty, compute_similarity
)
from content_analyzer.corpus import CorpusBuilder
from content_analyzer.keywords import KeywordAnalysisError, KeywordStatisticsEngine
from content_analyzer.models import AnalysisStatus, KeywordMetric, SerpResultRow
from content_analyzer.serp import DataForSeoClient, SerpApiError
from content_analyzer.storage import JsonFileRecordStore
from tests.conftest import make_corpus

SERP_ROWS = [
    SerpResultRow(url="https://c0.com/page", title="Competitor zero", position=1, domain="c0.com", links_count=800),
    SerpResultRow(url="https://c1.com/page", title="Competitor one", position=2, domain="c1.com", etv=2500),
]

CORPUS = make_corpus(
    "Keyword research tools help content teams plan articles",
    ["Keyword research guides for content marketing teams", "Research tools compared for agencies"]
)


@pytest.fixture
def store(tmp_path):
    return JsonFileRecordStore(str(tmp_path))


@pytest.fixture
def serp_client():
    client = MagicMock(spec=DataForSeoClient)
    client.fetch_serp = AsyncMock(return_value=SERP_ROWS)
    return client


@pytest.fixture
def corpus_builder():
    builder = MagicMock(spec=CorpusBuilder)
    builder.build = AsyncMock(return_value=CORPUS.model_copy(deep=True))
    return builder


@pytest.fixture
def service(store, serp_client, corpus_builder):
    service = AnalysisService(
        store,
        serp_client=serp_client,
        corpus_builder=corpus_builder,
        keyword_engine=KeywordStatisticsEngine(max_workers=2)
    )
    yield service
    service.close()


async def prepare_content(service, analysis_id="analysis-1"):
    await service.run_serp_analysis(analysis_id, "keyword research", additional_keywords=["content teams"])
    await service.build_content_analysis(analysis_id, "https://our.com/page")


@pytest.mark.asyncio
async def test_run_serp_analysis_stores_results(service, store, serp_client):
    record = await service.run_serp_analysis("analysis-1", " keyword research ", location_code=2840)

    assert record.status == AnalysisStatus.COMPLETED
    assert record.keyword == "keyword research"
    assert 0 <= record.quick_score <= 100
    assert [row.url for row in record.serp_results] == ["https://c0.com/page", "https://c1.com/page"]
    serp_client.fetch_serp.assert_awaited_once_with("keyword research", 2840, request_id="N/A")
    assert (await store.get("analysis-1"))["status"] == "completed"


@pytest.mark.asyncio
async def test_run_serp_analysis_marks_record_as_error(service, store, serp_client):
    serp_client.fetch_serp.side_effect = SerpApiError("SERP API rate limit exceeded")

    with pytest.raises(SerpApiError):
        await service.run_serp_analysis("analysis-1", "keyword research")

    assert (await store.get("analysis-1"))["status"] == "error"


@pytest.mark.asyncio
async def test_build_content_analysis_uses_stored_serp(service, corpus_builder):
    await service.run_serp_analysis("analysis-1", "keyword research")

    corpus = await service.build_content_analysis("analysis-1", "https://our.com/page")

    assert corpus.selected_domains == {"our", "c0.com", "c1.com"}
    args = corpus_builder.build.await_args.args
    assert args[0] == "https://our.com/page"
    assert [row.url for row in args[1]] == ["https://c0.com/page", "https://c1.com/page"]
    record = await service.get_record("analysis-1")
    assert record.url == "https://our.com/page"
    assert record.content_analysis == corpus


@pytest.mark.asyncio
async def test_build_content_analysis_requires_serp(service, store):
    await store.update("analysis-1", {"keyword": "keyword research"})

    with pytest.raises(ValueError):
        await service.build_content_analysis("analysis-1", "https://our.com/page")


@pytest.mark.asyncio
async def test_missing_record_raises_not_found(service):
    with pytest.raises(AnalysisNotFoundError):
        await service.analyze_text("does-not-exist")


@pytest.mark.asyncio
async def test_update_selected_domains(service):
    await prepare_content(service)

    corpus = await service.update_selected_domains("analysis-1", ["c0.com"])

    assert corpus.selected_domains == {"c0.com"}
    assert (await service.get_record("analysis-1")).content_analysis.selected_domains == {"c0.com"}
    with pytest.raises(ValueError):
        await service.update_selected_domains("analysis-1", ["unknown.com"])


@pytest.mark.asyncio
async def test_analyze_text_computes_full_payload(service):
    await prepare_content(service)
    progress = []

    entry = await service.analyze_text("analysis-1", on_progress=progress.append)

    keywords = [m.keyword for m in entry.payload.keywords]
    assert keywords[:2] == ["keyword research", "content teams"]
    assert entry.payload.keywords[0].is_target
    assert 0 <= entry.payload.similarity.score <= 100
    assert entry.payload.benchmarks.competitor_count == 2
    assert entry.payload.benchmarks.our_word_count == 8
    assert progress[-1] == 100
    assert (await service.get_cached_text_analysis("analysis-1")) == entry


@pytest.mark.asyncio
async def test_analyze_text_uses_cache_until_refresh(store, serp_client, corpus_builder):
    engine = MagicMock()
    engine.compute = AsyncMock(return_value=[KeywordMetric(keyword="research")])
    service = AnalysisService(store, serp_client=serp_client, corpus_builder=corpus_builder, keyword_engine=engine)
    await prepare_content(service)

    first = await service.analyze_text("analysis-1")
    second = await service.analyze_text("analysis-1")
    assert second == first
    assert engine.compute.await_count == 1

    await service.analyze_text("analysis-1", force_refresh=True)
    assert engine.compute.await_count == 2

    # Changing the selection changes the content hash
    await service.update_selected_domains("analysis-1", ["our", "c0.com"])
    await service.analyze_text("analysis-1")
    assert engine.compute.await_count == 3


@pytest.mark.asyncio
async def test_failed_recompute_keeps_previous_result(store, serp_client, corpus_builder):
    engine = MagicMock()
    engine.compute = AsyncMock(return_value=[KeywordMetric(keyword="research")])
    service = AnalysisService(store, serp_client=serp_client, corpus_builder=corpus_builder, keyword_engine=engine)
    await prepare_content(service)
    first = await service.analyze_text("analysis-1")

    engine.compute.side_effect = KeywordAnalysisError("1 of 3 documents failed keyword analysis")
    await service.update_selected_domains("analysis-1", ["our", "c1.com"])
    with pytest.raises(KeywordAnalysisError):
        await service.analyze_text("analysis-1")

    assert await service.get_cached_text_analysis("analysis-1") == first


@pytest.mark.asyncio
async def test_analyze_text_requires_content_analysis(service):
    await service.run_serp_analysis("analysis-1", "keyword research")

    with pytest.raises(ValueError):
        await service.analyze_text("analysis-1")


@pytest.mark.asyncio
async def test_module_operations():
    builder = MagicMock(spec=CorpusBuilder)
    builder.build = AsyncMock(return_value=CORPUS)

    assert await build_corpus("https://our.com/page", ["https://c0.com/page"], builder=builder) == CORPUS
    metrics = await compute_keyword_metrics(CORPUS, ["keyword research"])
    assert metrics[0].keyword == "keyword research"
    assert compute_similarity("", ["text"]).score == 0
    assert compute_serp_difficulty([]) == 0
