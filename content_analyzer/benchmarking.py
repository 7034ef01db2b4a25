from statistics import mean
from typing import Dict, List, Optional

import textstat

from content_analyzer.models import ContentAnalysis, ContentBenchmarks, PageContent
from content_analyzer.utils import round_half_up

BENCHMARK_HEADER_LEVELS = ('h2', 'h3', 'h4')
MIN_READABILITY_WORDS = 100


def readability_grade(page: PageContent) -> Optional[float]:
    """Flesch-Kincaid grade of the page text, or None when there is too little text."""
    if page.word_count <= MIN_READABILITY_WORDS:  # textstat needs sufficient text
        return None
    return round(textstat.flesch_kincaid_grade(page.full_text()), 1)


def _header_counts(page: PageContent) -> Dict[str, int]:
    return {level: len(page.headers.get(level) or []) for level in BENCHMARK_HEADER_LEVELS}


class BenchmarkAnalyzer:
    @staticmethod
    def calculate_benchmarks(corpus: ContentAnalysis) -> ContentBenchmarks:
        """Calculate word count, header count and readability benchmarks over the selected corpus."""
        competitors = corpus.selected_competitors()
        ours = corpus.our_domain if corpus.include_ours() else PageContent()

        benchmarks = ContentBenchmarks(
            our_word_count=ours.word_count,
            our_header_counts=_header_counts(ours),
            our_readability_grade=readability_grade(ours),
            competitor_count=len(competitors)
        )
        if not competitors:
            return benchmarks

        word_counts = [c.word_count for c in competitors]
        header_counts: List[Dict[str, int]] = [_header_counts(c) for c in competitors]
        grades = [grade for grade in map(readability_grade, competitors) if grade is not None]

        benchmarks.avg_word_count = round_half_up(mean(word_counts))
        benchmarks.max_word_count = max(word_counts)
        benchmarks.avg_header_counts = {
            level: round_half_up(mean(counts[level] for counts in header_counts))
            for level in BENCHMARK_HEADER_LEVELS
        }
        benchmarks.max_header_counts = {
            level: max(counts[level] for counts in header_counts)
            for level in BENCHMARK_HEADER_LEVELS
        }
        if grades:
            benchmarks.avg_readability_grade = round(mean(grades), 1)
        return benchmarks
