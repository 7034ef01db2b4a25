"""
Pydantic models for the SEO Content Analyzer.
Defines the corpus, keyword, similarity, SERP and cache structures plus the API request models.
"""
import hashlib
import json
from datetime import datetime
from enum import Enum
from typing import List, Optional, Dict, Set

from pydantic import BaseModel, Field, computed_field, field_serializer, field_validator

HEADER_LEVELS = ('h1', 'h2', 'h3', 'h4')
OUR_DOMAIN = 'our'


def empty_headers() -> Dict[str, List[str]]:
    return {level: [] for level in HEADER_LEVELS}


# --- Corpus Models ---

class PageContent(BaseModel):
    """Structured content extracted from a single page."""
    url: Optional[str] = None
    domain: Optional[str] = None
    headers: Dict[str, List[str]] = Field(default_factory=empty_headers)
    texts: List[str] = []

    @field_validator('headers', mode='before')
    @classmethod
    def _fill_header_levels(cls, value):
        headers = empty_headers()
        for level, items in (value or {}).items():
            if level in headers:
                headers[level] = list(items or [])
        return headers

    @computed_field
    @property
    def word_count(self) -> int:
        """Token count over every header and text, recomputed on each access."""
        all_text = ' '.join([*self.header_texts(), *self.texts])
        return len(all_text.split())

    def header_texts(self) -> List[str]:
        return [text for level in HEADER_LEVELS for text in self.headers.get(level, [])]

    def header_count(self) -> int:
        return len(self.header_texts())

    def is_empty(self) -> bool:
        return self.word_count == 0 and self.header_count() == 0

    def full_text(self) -> str:
        """Headers followed by paragraph texts, the form consumed by the analyzers."""
        return ' '.join([*self.header_texts(), *self.texts]).strip()


class ContentAnalysis(BaseModel):
    """
    The corpus for one analysis: our page plus the competitor pages.

    selected_domains decides which entries take part in aggregate statistics;
    the sentinel "our" stands for our_domain.
    """
    our_domain: PageContent = Field(default_factory=PageContent)
    competitors: List[PageContent] = []
    selected_domains: Set[str] = Field(default_factory=set)

    @field_serializer('selected_domains')
    def _serialize_selected(self, value: Set[str]) -> List[str]:
        return sorted(value)

    def include_ours(self) -> bool:
        return OUR_DOMAIN in self.selected_domains

    def selected_competitors(self) -> List[PageContent]:
        return [c for c in self.competitors if c.domain and c.domain in self.selected_domains]

    def content_hash(self) -> str:
        """Hash of the content that feeds keyword and similarity analysis."""
        material = {
            'our_domain': self.our_domain.model_dump(mode='json'),
            'competitors': [c.model_dump(mode='json') for c in self.selected_competitors()],
            'selected_domains': sorted(self.selected_domains),
        }
        encoded = json.dumps(material, sort_keys=True, ensure_ascii=False).encode('utf-8')
        return hashlib.sha256(encoded).hexdigest()


# --- Analysis Result Models ---

class KeywordMetric(BaseModel):
    """Keyword statistics for our page compared with the selected competitors."""
    keyword: str
    forms: Set[str] = Field(default_factory=set)
    frequency: int = 0
    density: float = 0.0  # Percentage of our document
    avg_competitor_density: float = 0.0
    density_ratio: float = 0.0
    competitor_count: int = 0
    total_competitor_frequency: int = 0
    importance: float = 0.0
    is_target: bool = False

    @field_validator('importance')
    @classmethod
    def _clamp_importance(cls, value: float) -> float:
        return min(max(value, 0.0), 10.0)

    @field_serializer('forms')
    def _serialize_forms(self, value: Set[str]) -> List[str]:
        return sorted(value)


class SimilarityResult(BaseModel):
    """Combined lexical and embedding similarity of our text against competitors."""
    score: int = 0
    lexical_score: int = 0
    embedding_score: int = 0
    details: List[str] = []


class ContentBenchmarks(BaseModel):
    """Word and header counts of our page against the selected competitors."""
    our_word_count: int = 0
    avg_word_count: int = 0
    max_word_count: int = 0
    our_header_counts: Dict[str, int] = {}
    avg_header_counts: Dict[str, int] = {}
    max_header_counts: Dict[str, int] = {}
    our_readability_grade: Optional[float] = None
    avg_readability_grade: Optional[float] = None
    competitor_count: int = 0


class KeywordAnalysisPayload(BaseModel):
    """Everything the text analysis produces for one corpus."""
    keywords: List[KeywordMetric] = []
    similarity: SimilarityResult = Field(default_factory=SimilarityResult)
    benchmarks: ContentBenchmarks = Field(default_factory=ContentBenchmarks)


class CacheEntry(BaseModel):
    """A cached text analysis together with the content hash it was computed from."""
    analysis_id: str
    payload: KeywordAnalysisPayload
    last_updated: datetime
    content_hash: str = ''


# --- SERP Models ---

class SerpResultRow(BaseModel):
    """
    One organic result from the SERP provider.

    Maps to the items of a DataForSEO organic live/advanced task.
    """
    url: str = Field(..., description="The full URL of the search result")
    title: str = Field('', description="The title of the search result")
    description: str = Field('', description="The snippet shown under the title")
    position: Optional[int] = Field(None, description="Rank position in the SERP (1-based)")
    domain: Optional[str] = Field(None, description="The domain of the result URL")
    links_count: int = 0
    estimated_paid_traffic_cost: float = 0.0
    etv: float = 0.0

    class Config:
        json_schema_extra = {
            "example": {
                "url": "https://example.com/article",
                "title": "Example Article Title",
                "description": "This is an example snippet from the search result...",
                "position": 1,
                "domain": "example.com",
                "links_count": 120,
                "estimated_paid_traffic_cost": 35.5,
                "etv": 1520.0
            }
        }


# --- Persisted Record ---

class AnalysisStatus(str, Enum):
    PENDING = 'pending'
    PROCESSING = 'processing'
    COMPLETED = 'completed'
    ERROR = 'error'


class AnalysisRecord(BaseModel):
    """The persisted shape of one analysis in the record store."""
    id: str
    keyword: str = ''
    url: Optional[str] = None
    quick_score: Optional[int] = Field(None, ge=0, le=100)
    status: AnalysisStatus = AnalysisStatus.PENDING
    serp_results: List[SerpResultRow] = []
    content_analysis: Optional[ContentAnalysis] = None
    keyword_analysis: Optional[CacheEntry] = None
    additional_keywords: List[str] = []
    last_analysis_at: Optional[datetime] = None


# --- API Request Models ---

class SerpAnalysisRequest(BaseModel):
    """Request model for the SERP difficulty step."""
    keyword: str = Field(..., description="The keyword to fetch the SERP for")
    location_code: Optional[int] = Field(None, description="DataForSEO location code (defaults to config)")
    additional_keywords: List[str] = []

    class Config:
        json_schema_extra = {
            "example": {
                "keyword": "seo tools",
                "location_code": 2804,
                "additional_keywords": ["keyword research"]
            }
        }


class ContentAnalysisRequest(BaseModel):
    """Request model for building the content corpus."""
    url: Optional[str] = Field(None, description="Our page URL; omit to analyze competitors only")


class SelectedDomainsRequest(BaseModel):
    domains: List[str]


class SimilarityRequest(BaseModel):
    target_text: str
    competitor_texts: List[str] = []


class DifficultyRequest(BaseModel):
    results: List[SerpResultRow] = []
