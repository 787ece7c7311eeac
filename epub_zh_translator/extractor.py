#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Structural text extraction for chapter documents.
Walks a parsed chapter and collects paragraph-level text blocks, remembering
which text nodes each block came from so a translation can be put back later.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from epub_zh_translator.document import NodeKind, node_kind, parse_document
from epub_zh_translator.exceptions import Diagnostic, DiagnosticKind, ParseFailure

logger = logging.getLogger("epub_zh_translator.extractor")

# Elements whose content is never translated
SKIP_TAGS = {'script', 'style', 'meta', 'title', 'nav', 'head', 'noscript'}

# Elements that start and end a paragraph
BLOCK_TAGS = {
    'p', 'div', 'h1', 'h2', 'h3', 'h4', 'h5', 'h6', 'li', 'br', 'section',
    'article', 'blockquote', 'figcaption', 'td', 'th', 'dd', 'dt', 'pre',
    'header', 'footer', 'aside', 'main', 'tr', 'ul', 'ol', 'table', 'figure',
}

LINK_TAGS = {'a'}

# Headings kept on navigation pages
NAVIGATION_HEADINGS = ['h1', 'h2', 'h3']

WHITESPACE = re.compile(r'\s+')

PARAGRAPH_SEPARATOR = "\n\n"


@dataclass
class ExtractionPolicy:
    """Per-chapter extraction rules."""

    exclude_link_text: bool = True
    navigation_headings_only: bool = True
    link_weight: int = 20
    navigation_density: float = 0.5
    navigation_min_links: int = 5

    @classmethod
    def from_config(cls, config):
        """Build a policy from the [extraction] section of a Config."""
        defaults = cls()
        return cls(
            exclude_link_text=config.getboolean(
                "extraction", "exclude_link_text", fallback=defaults.exclude_link_text),
            navigation_headings_only=config.getboolean(
                "extraction", "navigation_headings_only", fallback=defaults.navigation_headings_only),
            link_weight=config.getint(
                "extraction", "link_weight", fallback=defaults.link_weight),
            navigation_density=config.getfloat(
                "extraction", "navigation_density", fallback=defaults.navigation_density),
            navigation_min_links=config.getint(
                "extraction", "navigation_min_links", fallback=defaults.navigation_min_links),
        )


@dataclass(frozen=True)
class TextBlock:
    """A paragraph of extracted text and the arena ids of its text nodes."""

    sequence_index: int
    text: str
    source_nodes: Tuple[int, ...]


@dataclass
class ExtractionResult:
    blocks: List[TextBlock]
    is_navigation_page: bool = False
    failure: Optional[Diagnostic] = None

    def joined_text(self):
        """Blocks joined by blank lines, in reading order."""
        return PARAGRAPH_SEPARATOR.join(block.text for block in self.blocks)


class _ParagraphBuilder:
    """Accumulates text fragments into paragraphs."""

    def __init__(self):
        self.paragraphs = []
        self._text = ""
        self._nodes = []

    def add_fragment(self, raw_text, node_id):
        fragment = WHITESPACE.sub(' ', raw_text).strip()
        if not fragment:
            return
        if self._text and not self._text.endswith(' '):
            self._text += ' ' + fragment
        else:
            self._text += fragment
        self._nodes.append(node_id)

    def break_paragraph(self):
        if self._text.strip():
            self.paragraphs.append((self._text, tuple(self._nodes)))
        self._text = ""
        self._nodes = []

    def build(self):
        self.break_paragraph()
        blocks = []
        for text, nodes in self.paragraphs:
            text = text.strip()
            if text:
                blocks.append(TextBlock(len(blocks), text, nodes))
        return blocks


class StructuralTextExtractor:
    """Extract paragraph blocks from a parsed chapter."""

    def __init__(self, policy=None):
        self.policy = policy or ExtractionPolicy()

    def link_density(self, document):
        """Weighted ratio of links to visible text.

        Returns:
            Tuple of (density, link_count)
        """
        link_count = len(document.root.find_all('a'))
        if link_count == 0:
            return 0.0, 0
        text_length = len(document.root.get_text().strip())
        if text_length == 0:
            return float('inf'), link_count
        return link_count * self.policy.link_weight / text_length, link_count

    def is_navigation_page(self, document):
        density, link_count = self.link_density(document)
        return (density > self.policy.navigation_density and
                link_count > self.policy.navigation_min_links)

    def extract(self, document):
        """Extract text blocks from a ChapterDocument.

        Args:
            document: ChapterDocument to walk

        Returns:
            ExtractionResult
        """
        if self.is_navigation_page(document):
            logger.info("Detected navigation page, keeping headings only")
            blocks = []
            if self.policy.navigation_headings_only:
                blocks = self._extract_headings(document)
            return ExtractionResult(blocks=blocks, is_navigation_page=True)

        builder = _ParagraphBuilder()
        self._walk(document.root, document, builder)
        return ExtractionResult(blocks=builder.build())

    def _extract_headings(self, document):
        builder = _ParagraphBuilder()
        for heading in document.root.find_all(NAVIGATION_HEADINGS):
            if heading.find_parent(NAVIGATION_HEADINGS) is not None:
                continue
            self._walk(heading, document, builder)
            builder.break_paragraph()
        return builder.build()

    def _walk(self, node, document, builder):
        kind = node_kind(node)
        if kind is NodeKind.TEXT:
            node_id = document.node_id(node)
            if node_id is not None:
                builder.add_fragment(str(node), node_id)
            return
        if kind is not NodeKind.ELEMENT:
            return

        name = (node.name or "").lower()
        if name in SKIP_TAGS:
            return
        if name in LINK_TAGS and self.policy.exclude_link_text:
            return

        is_block = name in BLOCK_TAGS
        if is_block:
            builder.break_paragraph()
        for child in node.children:
            self._walk(child, document, builder)
        if is_block:
            builder.break_paragraph()


def extract_text(markup, policy=None):
    """Extract paragraph blocks from chapter markup.

    Never raises: markup that cannot be parsed gives an empty result
    carrying a PARSE_FAILURE diagnostic.

    Args:
        markup: Chapter markup (str or UTF-8 bytes)
        policy: ExtractionPolicy (optional)

    Returns:
        ExtractionResult
    """
    try:
        document = parse_document(markup)
    except ParseFailure as e:
        logger.warning(f"Could not parse chapter, nothing to translate: {e}")
        return ExtractionResult(
            blocks=[],
            failure=Diagnostic.from_exception(DiagnosticKind.PARSE_FAILURE, e)
        )
    return StructuralTextExtractor(policy).extract(document)
