"""
Turns raw HTML into structured page content (headers h1-h4 and paragraph texts).
"""

import logging
import re
from typing import Dict, List, Optional
from urllib.parse import urlparse

from lxml_html_clean import Cleaner
from parsel import Selector

from content_analyzer.models import HEADER_LEVELS, PageContent, empty_headers

logger = logging.getLogger(__name__)

MIN_HEADER_LENGTH = 3
MAX_HEADER_LENGTH = 200
MIN_PARAGRAPH_LENGTH = 20
NAVIGATION_PHRASES = ('menu', 'navigation', 'skip', 'main content', 'search')

MENU_LIKE_SELECTOR = (
    'body .menu, body .navigation, body .sidebar, body [role="navigation"]'
)
NESTED_HEADERS_XPATH = './/*[self::h1 or self::h2 or self::h3 or self::h4 or self::h5 or self::h6]'
LEAF_CONTAINERS_XPATH = (
    '//*[self::div or self::article or self::section or self::main]'
    '[not(.//div or .//article or .//section or .//main)]'
)

_WHITESPACE = re.compile(r'\s+')
# Letters and digits of any script plus basic punctuation and quotes
_DISALLOWED_CHARS = re.compile(r"[^\w\s\-.,?!()«»\"“”'‘’]|_")
_HIDDEN_STYLE = re.compile(r'display\s*:\s*none|visibility\s*:\s*hidden', re.IGNORECASE)
_XML_DECLARATION = re.compile(r'^\s*<\?xml[^>]*\?>', re.IGNORECASE)

_cleaner = Cleaner(
    scripts=True,
    javascript=True,
    comments=True,
    style=False,
    inline_style=False,
    links=True,
    meta=True,
    page_structure=False,
    processing_instructions=True,
    embedded=True,
    frames=True,
    forms=False,
    annoying_tags=True,
    remove_unknown_tags=False,
    safe_attrs_only=False,
    kill_tags=['style', 'noscript', 'iframe', 'nav', 'footer', 'aside', 'menu', 'svg'],
)


def normalize_text(text: Optional[str]) -> str:
    """Collapse whitespace and strip everything but letters, digits and basic punctuation."""
    if not text:
        return ''
    text = _WHITESPACE.sub(' ', text)
    text = _DISALLOWED_CHARS.sub('', text)
    return _WHITESPACE.sub(' ', text).strip()


def domain_of(url: Optional[str]) -> Optional[str]:
    """Host part of a URL without a leading www."""
    if not url:
        return None
    netloc = urlparse(url if '//' in url else f'//{url}').netloc.lower()
    if netloc.startswith('www.'):
        netloc = netloc[4:]
    return netloc or None


def is_valid_header(text: str) -> bool:
    if not text or len(text) < MIN_HEADER_LENGTH or len(text) > MAX_HEADER_LENGTH:
        return False
    if not any(ch.isalpha() for ch in text):
        return False
    lowered = text.lower()
    return not any(phrase in lowered for phrase in NAVIGATION_PHRASES)


def _is_hidden(element: Selector) -> bool:
    attrib = element.attrib
    if 'hidden' in attrib or attrib.get('aria-hidden', '').lower() == 'true':
        return True
    return bool(_HIDDEN_STYLE.search(attrib.get('style', '')))


def _element_text(element: Selector) -> str:
    return normalize_text(' '.join(element.xpath('.//text()').getall()))


class HtmlExtractor:
    """
    Extracts headers and paragraph texts from a page.

    Extraction never raises: malformed input degrades to an empty PageContent.
    """

    def extract(self, html: str, url: Optional[str] = None, domain: Optional[str] = None) -> PageContent:
        domain = domain or domain_of(url)
        try:
            selector = self._prepare(html)
            headers = self._extract_headers(selector)
            texts = self._extract_texts(selector)
        except Exception as e:
            logger.error(f"Error extracting content from {url or 'HTML input'}: {e}", exc_info=True)
            return PageContent(url=url, domain=domain)

        content = PageContent(url=url, domain=domain, headers=headers, texts=texts)
        logger.debug(
            f"Extracted {content.header_count()} headers, {len(texts)} texts, "
            f"{content.word_count} words from {url or 'HTML input'}"
        )
        return content

    def _prepare(self, html: str) -> Selector:
        if not html or not html.strip():
            raise ValueError("Empty HTML document")
        cleaned = _cleaner.clean_html(_XML_DECLARATION.sub('', html))
        selector = Selector(text=cleaned)
        for node in selector.css(MENU_LIKE_SELECTOR):
            node.drop()
        return selector

    def _extract_headers(self, selector: Selector) -> Dict[str, List[str]]:
        headers = empty_headers()
        for level in HEADER_LEVELS:
            for element in selector.css(level):
                if _is_hidden(element):
                    continue
                # Nested headers are removed from the document so they are not counted twice
                for nested in element.xpath(NESTED_HEADERS_XPATH):
                    nested.drop()
                text = _element_text(element)
                if is_valid_header(text):
                    headers[level].append(text)
        return headers

    def _extract_texts(self, selector: Selector) -> List[str]:
        texts = [text for text in map(_element_text, selector.css('p')) if len(text) >= MIN_PARAGRAPH_LENGTH]
        if texts:
            return texts

        # No usable paragraphs: fall back to leaf block containers only
        return [
            text for text in map(_element_text, selector.xpath(LEAF_CONTAINERS_XPATH))
            if len(text) >= MIN_PARAGRAPH_LENGTH
        ]
