"""
Shared fixtures for the SEO Content Analyzer test suite.
"""

import os
import sys
import tempfile
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

# Add the project root to the path for imports if running tests from the root directory
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Keep the API module's default store out of the working directory
os.environ.setdefault("ANALYSIS_STORE_DIR", tempfile.mkdtemp(prefix="analysis_store_"))

from content_analyzer.models import ContentAnalysis, PageContent  # noqa: E402

FILLER_PARAGRAPH = (
    "Search engine optimization helps websites reach readers who are looking for answers. "
    "Good pages explain topics clearly, link related resources and load quickly on phones. "
)

VALID_HTML = f"""
<!DOCTYPE html>
<html lang="en">
<head><title>Valid Page</title></head>
<body>
    <h1>Valid Page Heading</h1>
    <p>{FILLER_PARAGRAPH}</p>
    <p>{FILLER_PARAGRAPH}</p>
    <p>{FILLER_PARAGRAPH}</p>
</body>
</html>
"""


def make_response(status_code=200, text=VALID_HTML, json_data=None, raise_error=None):
    """Build a synchronous httpx.Response stand-in."""
    response = MagicMock(spec=httpx.Response)
    response.status_code = status_code
    response.text = text
    response.json = MagicMock(return_value=json_data)
    response.raise_for_status = MagicMock(side_effect=raise_error)
    return response


def make_async_client(get=None, post=None):
    """Mocked httpx.AsyncClient usable as an async context manager."""
    mock_client = AsyncMock(spec=httpx.AsyncClient)
    mock_client.get = get or AsyncMock()
    mock_client.post = post or AsyncMock()
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    return mock_client


def make_corpus(our_text=None, competitor_texts=None, selected=None) -> ContentAnalysis:
    """Corpus with our page and competitors c0.com, c1.com, ... holding one text each."""
    competitors = [
        PageContent(url=f"https://c{i}.com/page", domain=f"c{i}.com", texts=[text])
        for i, text in enumerate(competitor_texts or [])
    ]
    our = PageContent(url="https://our.com/page", domain="our.com", texts=[our_text] if our_text else [])
    if selected is None:
        selected = {"our", *(c.domain for c in competitors)}
    return ContentAnalysis(our_domain=our, competitors=competitors, selected_domains=set(selected))


@pytest.fixture
def valid_html():
    return VALID_HTML


@pytest.fixture
def no_sleep():
    """Replaces asyncio.sleep for components that take an injectable sleep."""
    return AsyncMock()
