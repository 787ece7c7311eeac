#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Paragraph alignment between original blocks and translated text.

Model output rarely keeps the source paragraph boundaries exactly, so the
aligner pairs blocks with translated paragraphs on a best-effort basis:
containment matching with a positional fallback while the counts are close,
and proportional distribution of the whole translation once the model has
clearly merged paragraphs.
"""

import enum
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from epub_zh_translator.chunker import detect_paragraphs, glue_text
from epub_zh_translator.exceptions import Diagnostic, DiagnosticKind

logger = logging.getLogger("epub_zh_translator.aligner")

WHITESPACE = re.compile(r'\s+')

# A cut placed right after one of these reads naturally
BOUNDARY_CHARS = set('。！？；，、：.!?;,: \n')


class AlignmentTier(enum.Enum):
    CONTAINMENT = "containment"
    PROPORTIONAL = "proportional"
    EMPTY = "empty"


@dataclass
class AlignmentResult:
    """Translated text per block sequence index.

    Attributes:
        translations: Block sequence index to translated text
        tier: Strategy that produced the mapping
        matched: Blocks paired by containment
        positional: Blocks paired by position
        repeated: Blocks that reuse the last matched translation
    """

    translations: Dict[int, str] = field(default_factory=dict)
    tier: AlignmentTier = AlignmentTier.EMPTY
    matched: int = 0
    positional: int = 0
    repeated: int = 0

    @property
    def degraded(self):
        return self.tier is AlignmentTier.PROPORTIONAL

    def get(self, index, default=None):
        return self.translations.get(index, default)

    def diagnostic(self) -> Optional[Diagnostic]:
        if not self.degraded:
            return None
        return Diagnostic(
            kind=DiagnosticKind.ALIGNMENT_DEGRADED,
            message="Translated paragraphs were merged, distributed translation by length",
            detail={"blocks": len(self.translations)}
        )


def split_paragraphs(text):
    """Split translated text into trimmed, non-empty paragraphs."""
    return detect_paragraphs(text or "")


def normalize_space(text):
    return WHITESPACE.sub(' ', text).strip()


def _snap_to_boundary(text, position, radius):
    """Move a cut to a nearby punctuation or whitespace boundary, if any."""
    for offset in range(radius + 1):
        for candidate in (position - offset, position + offset):
            if 0 < candidate < len(text) and text[candidate - 1] in BOUNDARY_CHARS:
                return candidate
    return position


def _fill_empty(slices):
    """Give empty slices the nearest earlier (or first later) non-empty text."""
    non_empty = [s for s in slices if s]
    if not non_empty:
        return slices
    filled = []
    previous = non_empty[0]
    for text in slices:
        if text:
            previous = text
        filled.append(text or previous)
    return filled


def distribute_proportionally(text, weights, snap_radius=8, fill_empty=True):
    """Cut text into len(weights) consecutive slices sized by weight.

    Args:
        text: Text to distribute
        weights: Relative size of each slice (e.g. original text lengths)
        snap_radius: How far a cut may move to land on a boundary
        fill_empty: Replace empty slices with a neighbouring slice

    Returns:
        List of whitespace-normalized slices, one per weight
    """
    if not weights:
        return []
    if len(weights) == 1:
        return [normalize_space(text)]

    weights = [max(w, 0) for w in weights]
    total = sum(weights)
    if total == 0:
        weights = [1] * len(weights)
        total = len(weights)

    length = len(text)
    cuts = [0]
    accumulated = 0
    for weight in weights[:-1]:
        accumulated += weight
        target = round(length * accumulated / total)
        cut = _snap_to_boundary(text, target, snap_radius)
        cuts.append(min(max(cut, cuts[-1]), length))
    cuts.append(length)

    slices = [normalize_space(text[start:end]) for start, end in zip(cuts, cuts[1:])]
    if fill_empty:
        slices = _fill_empty(slices)
    return slices


class ParagraphAligner:
    """Map original text blocks onto translated paragraphs."""

    def __init__(self, lookahead=3, min_match_length=3):
        self.lookahead = lookahead
        self.min_match_length = min_match_length

    def align(self, blocks, translated_paragraphs):
        """Align blocks with translated paragraphs.

        Args:
            blocks: Original TextBlocks in document order
            translated_paragraphs: Translated paragraphs in order

        Returns:
            AlignmentResult
        """
        blocks = list(blocks)
        paragraphs = [p.strip() for p in translated_paragraphs if p and p.strip()]

        if not blocks or not paragraphs:
            return AlignmentResult(tier=AlignmentTier.EMPTY)

        if len(paragraphs) < len(blocks) / 2:
            logger.warning(
                f"Only {len(paragraphs)} translated paragraphs for {len(blocks)} blocks, "
                f"distributing translation proportionally"
            )
            return self._align_proportional(blocks, paragraphs)

        result = self._align_containment(blocks, paragraphs)
        logger.debug(
            f"Aligned {len(blocks)} blocks with {len(paragraphs)} paragraphs: "
            f"{result.matched} matched, {result.positional} positional, {result.repeated} repeated"
        )
        return result

    def _find_containing(self, block_text, paragraphs, cursor):
        source = normalize_space(block_text)
        for index in range(cursor, min(len(paragraphs), cursor + self.lookahead)):
            candidate = normalize_space(paragraphs[index])
            if min(len(source), len(candidate)) < self.min_match_length:
                continue
            if source in candidate or candidate in source:
                return index
        return None

    def _align_containment(self, blocks, paragraphs):
        result = AlignmentResult(tier=AlignmentTier.CONTAINMENT)
        translations = result.translations
        cursor = 0
        last_block = None
        last_text = None

        for block in blocks:
            if cursor >= len(paragraphs):
                # Out of paragraphs: a nearby translation beats leaving English
                if last_text is not None:
                    translations[block.sequence_index] = last_text
                    result.repeated += 1
                continue

            hit = self._find_containing(block.text, paragraphs, cursor)
            if hit is None:
                hit = cursor
                result.positional += 1
            else:
                result.matched += 1

            text = paragraphs[hit]
            skipped = paragraphs[cursor:hit]
            if skipped:
                if last_block is not None:
                    for extra in skipped:
                        translations[last_block] = glue_text(translations[last_block], extra)
                else:
                    for extra in reversed(skipped):
                        text = glue_text(extra, text)

            translations[block.sequence_index] = text
            last_block = block.sequence_index
            last_text = text
            cursor = hit + 1

        # Extra paragraphs at the end belong to the last block
        if last_block is not None:
            for extra in paragraphs[cursor:]:
                translations[last_block] = glue_text(translations[last_block], extra)

        return result

    def _align_proportional(self, blocks, paragraphs):
        full_text = "\n".join(paragraphs)
        slices = distribute_proportionally(full_text, [len(block.text) for block in blocks])
        translations = {
            block.sequence_index: text for block, text in zip(blocks, slices)
        }
        return AlignmentResult(translations=translations, tier=AlignmentTier.PROPORTIONAL)


def align_translations(original_blocks, translated_text, aligner=None):
    """Align a chapter's translated text with its original blocks.

    Args:
        original_blocks: TextBlocks from extraction
        translated_text: Reassembled translation, paragraphs separated by blank lines
        aligner: ParagraphAligner to use (optional)

    Returns:
        AlignmentResult
    """
    aligner = aligner or ParagraphAligner()
    return aligner.align(original_blocks, split_paragraphs(translated_text))
