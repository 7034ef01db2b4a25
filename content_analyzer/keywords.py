"""
Keyword statistics over a content corpus.

Each document is tokenized and frequency-counted by an independent worker;
the coordinator waits for every worker, then merges the per-document counts
into one metric per keyword.
"""

import asyncio
import logging
import re
import threading
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple

from content_analyzer import config
from content_analyzer.models import OUR_DOMAIN, ContentAnalysis, KeywordMetric
from content_analyzer.stop_words import STOP_WORDS
from content_analyzer.utils import clamp, round_half_up

logger = logging.getLogger(__name__)

MIN_TOKEN_LENGTH = 3
CANCEL_CHECK_INTERVAL = 500
TARGET_KEYWORD_BONUS = 2

# Anything that is not a letter, apostrophe or hyphen separates tokens
_NON_WORD_CHARS = re.compile(r"[^\w'\-]|[\d_]")

ProgressCallback = Callable[[float], None]


class KeywordAnalysisError(Exception):
    """Raised when any document of a keyword computation fails."""
    pass


class AnalysisCancelled(Exception):
    """Raised when a keyword computation was abandoned through its cancellation token."""
    pass


class CancellationToken:
    """Lets a caller abandon a running computation; workers check it while tokenizing."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise AnalysisCancelled("Keyword analysis was cancelled")


@dataclass(frozen=True)
class DocumentTask:
    """Work unit sent to a worker: one document and the target phrases to count in it."""
    document_id: str
    text: str
    phrases: Tuple[Tuple[str, ...], ...] = ()


@dataclass(frozen=True)
class DocumentCounts:
    """Result sent back by a worker for one document."""
    document_id: str
    total_words: int
    frequencies: Dict[str, int] = field(default_factory=dict)
    forms: Dict[str, FrozenSet[str]] = field(default_factory=dict)
    phrase_counts: Dict[str, int] = field(default_factory=dict)

    def frequency(self, keyword: str) -> int:
        if ' ' in keyword:
            return self.phrase_counts.get(keyword, 0)
        return self.frequencies.get(keyword, 0)


def tokenize(text: Optional[str]) -> List[Tuple[str, str]]:
    """
    Split text into (term, surface form) pairs.

    Terms are lowercased; tokens of two characters or fewer and stop words are dropped.
    """
    if not text:
        return []
    tokens = []
    for raw in _NON_WORD_CHARS.sub(' ', text).split():
        surface = raw.strip("'-")
        term = surface.lower()
        if len(term) < MIN_TOKEN_LENGTH or term in STOP_WORDS:
            continue
        tokens.append((term, surface))
    return tokens


def normalize_keyword(keyword: str) -> str:
    """Normalize a caller-supplied keyword with the same pipeline as document text."""
    return ' '.join(term for term, _ in tokenize(keyword))


def count_document(task: DocumentTask, cancel_token: Optional[CancellationToken] = None) -> DocumentCounts:
    """Tokenize and count one document. Runs inside a worker with no shared state."""
    frequencies: Dict[str, int] = {}
    forms: Dict[str, Set[str]] = {}
    terms: List[str] = []

    for index, (term, surface) in enumerate(tokenize(task.text)):
        if cancel_token is not None and index % CANCEL_CHECK_INTERVAL == 0:
            cancel_token.raise_if_cancelled()
        terms.append(term)
        frequencies[term] = frequencies.get(term, 0) + 1
        forms.setdefault(term, set()).add(surface)

    phrase_counts = {}
    for phrase in task.phrases:
        size = len(phrase)
        if size < 2:
            continue
        phrase_counts[' '.join(phrase)] = sum(
            1 for start in range(len(terms) - size + 1)
            if tuple(terms[start:start + size]) == phrase
        )

    return DocumentCounts(
        document_id=task.document_id,
        total_words=len(terms),
        frequencies=frequencies,
        forms={term: frozenset(values) for term, values in forms.items()},
        phrase_counts=phrase_counts
    )


def density_of(frequency: int, total_words: int) -> float:
    """Percentage of a document's words taken by a keyword."""
    return (frequency / total_words * 100) if total_words > 0 else 0.0


def keyword_importance(
    competitor_count: int,
    total_competitors: int,
    avg_competitor_density: float,
    is_target: bool
) -> float:
    """
    Importance of a keyword on a 0-10 scale.

    - competitor presence, 0-5 points
    - average competitor density, 0-3 points
    - 2 bonus points for a caller-supplied target keyword
    """
    presence = 0
    if total_competitors > 0:
        presence = clamp(round_half_up(5 * competitor_count / total_competitors), 0, 5)

    if avg_competitor_density >= 0.5:
        density_score = 3
    elif avg_competitor_density >= 0.2:
        density_score = 2
    elif avg_competitor_density > 0:
        density_score = 1
    else:
        density_score = 0

    bonus = TARGET_KEYWORD_BONUS if is_target else 0
    return float(min(10, presence + density_score + bonus))


class KeywordStatisticsEngine:
    """
    Computes KeywordMetric rows for a corpus on a bounded worker pool.

    Documents wait in the executor's FIFO queue when every worker is busy. A
    failed document fails the whole computation; no partial results are merged.
    """

    def __init__(self, max_workers: int = config.KEYWORD_WORKERS, executor: Optional[Executor] = None):
        self.max_workers = max(1, max_workers)
        self._executor = executor
        self._owns_executor = executor is None

    @property
    def executor(self) -> Executor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix='keyword-worker')
        return self._executor

    def close(self):
        if self._executor is not None and self._owns_executor:
            self._executor.shutdown(wait=False)
            self._executor = None

    def build_tasks(self, corpus: ContentAnalysis, phrases: Sequence[Tuple[str, ...]] = ()) -> Tuple[Optional[str], List[str], List[DocumentTask]]:
        """Split the corpus into one task per participating document."""
        tasks: List[DocumentTask] = []
        our_id = None
        if corpus.include_ours():
            our_id = OUR_DOMAIN
            tasks.append(DocumentTask(our_id, corpus.our_domain.full_text(), tuple(phrases)))

        competitor_ids = []
        for index, competitor in enumerate(corpus.selected_competitors()):
            document_id = f"{index}:{competitor.domain}"
            competitor_ids.append(document_id)
            tasks.append(DocumentTask(document_id, competitor.full_text(), tuple(phrases)))
        return our_id, competitor_ids, tasks

    async def compute(
        self,
        corpus: ContentAnalysis,
        target_keywords: Iterable[str] = (),
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
        request_id: str = 'N/A'
    ) -> List[KeywordMetric]:
        """
        Compute keyword metrics for our page against the selected competitors.

        Args:
            corpus: The content corpus; only selected documents take part
            target_keywords: Caller-supplied keywords, which get the importance bonus
            on_progress: Callback receiving a non-decreasing percentage
            cancel_token: Optional token to abandon the computation
            request_id: Request ID for logging

        Raises:
            KeywordAnalysisError: If any document failed.
            AnalysisCancelled: If the token was cancelled.
        """
        targets = list(dict.fromkeys(k for k in map(normalize_keyword, target_keywords) if k))
        phrases = [tuple(k.split(' ')) for k in targets if ' ' in k]
        our_id, competitor_ids, tasks = self.build_tasks(corpus, phrases)

        logger.info(f"[{request_id}] Starting keyword analysis: {len(tasks)} documents, {len(targets)} target keywords")
        results = await self._run_tasks(tasks, on_progress, cancel_token, request_id)

        metrics = self.merge(
            results.get(our_id) if our_id else None,
            [results[document_id] for document_id in competitor_ids],
            targets
        )
        logger.info(f"[{request_id}] Keyword analysis completed: {len(metrics)} keywords")
        return metrics

    async def _run_tasks(
        self,
        tasks: List[DocumentTask],
        on_progress: Optional[ProgressCallback],
        cancel_token: Optional[CancellationToken],
        request_id: str
    ) -> Dict[str, DocumentCounts]:
        if not tasks:
            if on_progress:
                on_progress(100.0)
            return {}

        loop = asyncio.get_running_loop()
        futures = [loop.run_in_executor(self.executor, count_document, task, cancel_token) for task in tasks]

        results: Dict[str, DocumentCounts] = {}
        errors: List[BaseException] = []
        completed = 0
        for next_done in asyncio.as_completed(futures):
            try:
                counts = await next_done
                results[counts.document_id] = counts
            except AnalysisCancelled as e:
                errors.append(e)
            except Exception as e:
                logger.error(f"[{request_id}] Keyword worker failed: {e}", exc_info=True)
                errors.append(e)
            completed += 1
            if on_progress:
                on_progress(completed / len(tasks) * 100)

        if any(isinstance(e, AnalysisCancelled) for e in errors):
            logger.info(f"[{request_id}] Keyword analysis cancelled")
            raise AnalysisCancelled("Keyword analysis was cancelled")
        if errors:
            raise KeywordAnalysisError(
                f"{len(errors)} of {len(tasks)} documents failed keyword analysis"
            ) from errors[0]
        return results

    def merge(
        self,
        ours: Optional[DocumentCounts],
        competitors: List[DocumentCounts],
        targets: List[str]
    ) -> List[KeywordMetric]:
        """Join complete per-document counts into one metric per keyword."""
        target_set = set(targets)
        keywords = list(targets)
        seen = set(keywords)
        for counts in ([ours] if ours else []) + competitors:
            for term in counts.frequencies:
                if term not in seen:
                    seen.add(term)
                    keywords.append(term)

        total_competitors = len(competitors)
        our_total = ours.total_words if ours else 0
        metrics = []
        for keyword in keywords:
            frequency = ours.frequency(keyword) if ours else 0
            density = density_of(frequency, our_total)

            competitor_frequencies = [c.frequency(keyword) for c in competitors]
            competitor_densities = [density_of(f, c.total_words) for f, c in zip(competitor_frequencies, competitors)]
            avg_density = sum(competitor_densities) / max(1, total_competitors)
            competitor_count = sum(1 for f in competitor_frequencies if f > 0)

            forms: Set[str] = set()
            for counts in ([ours] if ours else []) + competitors:
                forms.update(counts.forms.get(keyword, ()))

            is_target = keyword in target_set
            metrics.append(KeywordMetric(
                keyword=keyword,
                forms=forms or {keyword},
                frequency=frequency,
                density=density,
                avg_competitor_density=avg_density,
                density_ratio=(density / avg_density) if avg_density > 0 else 0.0,
                competitor_count=competitor_count,
                total_competitor_frequency=sum(competitor_frequencies),
                importance=keyword_importance(competitor_count, total_competitors, avg_density, is_target),
                is_target=is_target
            ))

        metrics.sort(key=lambda m: (
            not m.is_target, -m.importance, -m.total_competitor_frequency, -m.frequency, m.keyword
        ))
        return metrics
