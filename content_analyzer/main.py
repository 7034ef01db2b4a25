"""
FastAPI application for the SEO Content Analyzer.
Exposes SERP analysis, competitor content analysis and keyword/similarity analysis per stored analysis.
"""
import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Header, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from content_analyzer import __version__, config
from content_analyzer.analyzer import AnalysisNotFoundError, AnalysisService
from content_analyzer.cache import CacheError
from content_analyzer.keywords import AnalysisCancelled, KeywordAnalysisError
from content_analyzer.models import (
    ContentAnalysisRequest, DifficultyRequest, SelectedDomainsRequest,
    SerpAnalysisRequest, SimilarityRequest
)
from content_analyzer.serp import SerpApiError
from content_analyzer.storage import JsonFileRecordStore

# Configure logging
logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler()
    ]
)
logger = logging.getLogger(__name__)

service = AnalysisService(JsonFileRecordStore(config.ANALYSIS_STORE_DIR))


@asynccontextmanager
async def lifespan(app: FastAPI):
    service.cache.start_sweeper()
    yield
    await service.cache.stop_sweeper()
    service.close()


# Initialize FastAPI app
app = FastAPI(
    title="SEO Content Analyzer",
    description="""
    Competitive SEO content analysis against the top organic search results.

    ## Features
    * SERP retrieval and keyword difficulty
    * Competitor content extraction
    * Keyword statistics and importance
    * Content similarity and benchmarks
    """,
    version=__version__,
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",        # Local development
        "http://localhost:8000",        # Local development
        "http://127.0.0.1:3000",        # Local development
        "http://127.0.0.1:8000"         # Local development
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=3600
)


def raise_http_error(request_id: str, e: Exception):
    """Map an analysis exception onto the matching HTTPException."""
    if isinstance(e, HTTPException):
        raise e
    if isinstance(e, AnalysisNotFoundError):
        logger.warning(f"[{request_id}] {e}")
        raise HTTPException(status_code=404, detail=str(e))
    if isinstance(e, SerpApiError):
        error_msg = str(e)
        if "rate limit" in error_msg.lower():
            logger.error(f"[{request_id}] SERP API rate limit exceeded: {error_msg}")
            raise HTTPException(status_code=429, detail="SERP API rate limit exceeded. Please try again later.")
        logger.error(f"[{request_id}] SERP API error: {error_msg}")
        raise HTTPException(status_code=503, detail="Error accessing SERP API. Please try again later.")
    if isinstance(e, ValueError):
        logger.error(f"[{request_id}] Invalid input: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    if isinstance(e, AnalysisCancelled):
        logger.info(f"[{request_id}] {e}")
        raise HTTPException(status_code=409, detail=str(e))
    if isinstance(e, (KeywordAnalysisError, CacheError)):
        logger.error(f"[{request_id}] Analysis failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))
    if isinstance(e, httpx.TimeoutException):
        logger.error(f"[{request_id}] Request timed out: {e}")
        raise HTTPException(status_code=503, detail="Analysis timed out. Please try again.")

    logger.error(f"[{request_id}] Unexpected error: {e}", exc_info=True)
    raise HTTPException(status_code=500, detail="An unexpected error occurred. Please try again later.")


@app.post("/analyses/{analysis_id}/serp")
async def run_serp_analysis(
    analysis_id: str,
    request: SerpAnalysisRequest,
    request_id: Optional[str] = Header(None)
):
    """Fetch the top organic results for the keyword and store them with a quick difficulty score."""
    request_id = request_id or str(uuid.uuid4())
    logger.info(f"[{request_id}] SERP analysis requested for {analysis_id}, keyword: {request.keyword}")
    try:
        record = await service.run_serp_analysis(
            analysis_id,
            request.keyword,
            location_code=request.location_code,
            additional_keywords=request.additional_keywords,
            request_id=request_id
        )
        return record.model_dump(mode='json')
    except Exception as e:
        raise_http_error(request_id, e)


@app.post("/analyses/{analysis_id}/content")
async def build_content_analysis(
    analysis_id: str,
    request: ContentAnalysisRequest,
    request_id: Optional[str] = Header(None)
):
    """Fetch and extract our page and every competitor from the stored SERP."""
    request_id = request_id or str(uuid.uuid4())
    try:
        corpus = await service.build_content_analysis(analysis_id, request.url, request_id=request_id)
        return corpus.model_dump(mode='json')
    except Exception as e:
        raise_http_error(request_id, e)


@app.put("/analyses/{analysis_id}/selected-domains")
async def update_selected_domains(
    analysis_id: str,
    request: SelectedDomainsRequest,
    request_id: Optional[str] = Header(None)
):
    request_id = request_id or str(uuid.uuid4())
    try:
        corpus = await service.update_selected_domains(analysis_id, request.domains)
        return corpus.model_dump(mode='json')
    except Exception as e:
        raise_http_error(request_id, e)


@app.post("/analyses/{analysis_id}/text-analysis")
async def analyze_text(
    analysis_id: str,
    request_id: Optional[str] = Header(None),
    force_refresh: bool = Query(False, description="Set to true to bypass cache")
):
    """Keyword metrics, similarity and benchmarks over the selected domains (cached)."""
    request_id = request_id or str(uuid.uuid4())
    logger.info(f"[{request_id}] Text analysis requested for {analysis_id}, force refresh: {force_refresh}")
    try:
        entry = await service.analyze_text(analysis_id, force_refresh=force_refresh, request_id=request_id)
        return entry.model_dump(mode='json')
    except Exception as e:
        raise_http_error(request_id, e)


@app.get("/analyses/{analysis_id}/text-analysis")
async def get_text_analysis(analysis_id: str, request_id: Optional[str] = Header(None)):
    request_id = request_id or str(uuid.uuid4())
    try:
        entry = await service.get_cached_text_analysis(analysis_id)
    except Exception as e:
        raise_http_error(request_id, e)
    if entry is None:
        raise HTTPException(status_code=404, detail=f"No text analysis cached for {analysis_id}")
    return entry.model_dump(mode='json')


@app.post("/similarity")
async def similarity(request: SimilarityRequest):
    """Score a text against competitor texts without a stored analysis."""
    loop = asyncio.get_running_loop()
    result = await loop.run_in_executor(
        None, service.similarity_scorer.compare, request.target_text, request.competitor_texts
    )
    return result.model_dump(mode='json')


@app.post("/difficulty")
async def difficulty(request: DifficultyRequest):
    return {"score": service.difficulty_scorer.score(request.results)}


@app.get("/health")
async def health_check():
    """
    Health check endpoint.

    Returns:
        Dict containing status of the API and its dependencies
    """
    return {
        "status": "healthy",
        "version": __version__,
        "dependencies": {
            "serp_api": bool(config.DATAFORSEO_LOGIN and config.DATAFORSEO_PASSWORD)
        }
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
