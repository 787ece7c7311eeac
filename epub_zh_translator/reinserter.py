#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Write translated text back into chapter markup.
Re-walks the chapter with the same rules as extraction and swaps the text of
each translated block's nodes, leaving tags, attributes, links and images as
they were. Any failure returns the original markup unchanged.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from epub_zh_translator.aligner import AlignmentResult, distribute_proportionally, normalize_space
from epub_zh_translator.document import parse_document
from epub_zh_translator.exceptions import Diagnostic, DiagnosticKind, ReinsertionFailure
from epub_zh_translator.extractor import ExtractionPolicy, StructuralTextExtractor

logger = logging.getLogger("epub_zh_translator.reinserter")


@dataclass
class ReinsertionResult:
    markup: str
    replaced_nodes: int = 0
    failure: Optional[Diagnostic] = None

    @property
    def ok(self):
        return self.failure is None


def _as_translations(mapping):
    """Accept an AlignmentResult or a plain {block index: text} dict."""
    if mapping is None:
        return {}
    if isinstance(mapping, AlignmentResult):
        return dict(mapping.translations)
    if isinstance(mapping, dict):
        return {int(index): text for index, text in mapping.items()}
    raise ReinsertionFailure(f"Unsupported mapping type: {type(mapping).__name__}")


def _split_padding(text):
    stripped = text.strip()
    if not stripped:
        return text, "", ""
    start = text.index(stripped)
    return text[:start], stripped, text[start + len(stripped):]


class StructuralReinserter:
    """Replace block text in a chapter according to an alignment."""

    def __init__(self, policy=None):
        self.policy = policy or ExtractionPolicy()
        self.extractor = StructuralTextExtractor(self.policy)

    def reinsert(self, markup, mapping):
        """Reinsert translations into markup.

        Args:
            markup: Original chapter markup
            mapping: AlignmentResult or {block index: translated text}

        Returns:
            ReinsertionResult; on failure its markup is the original markup
        """
        try:
            translations = _as_translations(mapping)
            document = parse_document(markup)
            extraction = self.extractor.extract(document)
            blocks = {block.sequence_index: block for block in extraction.blocks}

            unknown = sorted(index for index in translations if index not in blocks)
            if unknown:
                raise ReinsertionFailure(
                    f"Mapping references {len(unknown)} blocks not in the chapter: {unknown[:10]}"
                )

            replaced = 0
            for index in sorted(translations):
                text = translations[index]
                if not text or not text.strip():
                    continue
                replaced += self._replace_block(document, blocks[index], text)

            return ReinsertionResult(markup=document.serialize(), replaced_nodes=replaced)

        except Exception as e:
            logger.error(f"Reinsertion failed, keeping original markup: {e}")
            return ReinsertionResult(
                markup=markup,
                failure=Diagnostic.from_exception(DiagnosticKind.REINSERTION_FAILURE, e)
            )

    def _replace_block(self, document, block, text):
        originals = [document.text_of(node_id) for node_id in block.source_nodes]
        if len(originals) == 1:
            pieces = [normalize_space(text)]
        else:
            # Spread the translation over inline pieces by their original share
            pieces = distribute_proportionally(
                text, [len(original.strip()) for original in originals], fill_empty=False
            )

        for node_id, original, piece in zip(block.source_nodes, originals, pieces):
            leading, _, trailing = _split_padding(original)
            document.replace_text(node_id, f"{leading}{piece}{trailing}")
        return len(originals)


def reinsert_translations(markup, mapping, policy=None):
    """Return markup with translations reinserted, or the original markup on failure."""
    return StructuralReinserter(policy).reinsert(markup, mapping).markup
