#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Sentence-aware chunking for the translation API.
Splits chapter text into bounded chunks that respect paragraph boundaries
first and sentence boundaries second. Only a sentence longer than the limit
is ever cut mid-way.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Union

import nltk

logger = logging.getLogger("epub_zh_translator.chunker")

DEFAULT_MAX_LENGTH = 1500

PARAGRAPH_SEPARATOR = "\n\n"

PARAGRAPH_BREAK = re.compile(r'\n\s*\n')

# CJK enders end a sentence anywhere; Latin enders only before whitespace.
# Closing quotes and brackets stay with their sentence.
SENTENCE_PATTERN = re.compile(
    r'.+?(?:[。！？]+|[.!?]+(?=[”’"\'」』）)\]]*(?:\s|$))|$)[”’"\'」』）)\]]*',
    re.DOTALL
)

TOKENIZERS = ('regex', 'nltk')


@dataclass(frozen=True)
class Chunk:
    """One unit of work for the translation API.

    Attributes:
        index: 0-based position; results are reassembled by this value
        text: Chunk text, at most max_length characters
        source_blocks: Paragraph indexes that contributed to the chunk
        continues_paragraph: The chunk starts inside a paragraph split by
            sentence or hard cut
        hard_cut: The chunk holds part of a sentence longer than max_length
    """

    index: int
    text: str
    source_blocks: range
    continues_paragraph: bool = False
    hard_cut: bool = False


@dataclass
class Reassembly:
    text: str
    missing: List[int]

    @property
    def complete(self):
        return not self.missing


def split_sentences_regex(text):
    """Split text on CJK and Latin terminal punctuation."""
    sentences = []
    for match in SENTENCE_PATTERN.finditer(text):
        sentence = match.group(0).strip()
        if sentence:
            sentences.append(sentence)
    return sentences


class SentenceAwareChunker:
    """Split text into chunks no longer than max_length characters."""

    def __init__(self, max_length=DEFAULT_MAX_LENGTH, tokenizer="regex"):
        if max_length <= 0:
            raise ValueError(f"max_length must be positive, got {max_length}")
        if tokenizer not in TOKENIZERS:
            raise ValueError(f"Unknown sentence tokenizer: {tokenizer}")
        self.max_length = max_length
        self.use_nltk = False
        if tokenizer == "nltk":
            try:
                nltk.data.find('tokenizers/punkt')
                self.use_nltk = True
            except LookupError:
                logger.warning("NLTK punkt tokenizer not available, using regex-based sentence splitting")

    def split_into_sentences(self, text):
        if not text or not text.strip():
            return []
        if self.use_nltk:
            try:
                sentences = []
                for sentence in nltk.sent_tokenize(text):
                    # punkt does not know CJK enders
                    sentences.extend(split_sentences_regex(sentence))
                return sentences
            except Exception as e:
                logger.warning(f"NLTK sentence tokenization failed: {e}, falling back to regex")
        return split_sentences_regex(text)

    def chunk(self, text):
        """Split text into ordered chunks.

        Args:
            text: Chapter text with paragraphs separated by blank lines

        Returns:
            List of Chunk, ordered by index
        """
        if not text or not text.strip():
            return []

        if len(text) <= self.max_length:
            paragraph_count = len(detect_paragraphs(text)) or 1
            return [Chunk(0, text, range(0, paragraph_count))]

        pieces = []
        # Accumulator: text, first paragraph, last paragraph, starts mid-paragraph
        current = None

        def flush():
            nonlocal current
            if current is not None and current[0].strip():
                text_, first, last, continues = current
                pieces.append((text_.strip(), range(first, last + 1), continues, False))
            current = None

        for paragraph_index, paragraph in enumerate(detect_paragraphs(text)):
            if len(paragraph) > self.max_length:
                flush()
                current = self._split_long_paragraph(paragraph, paragraph_index, pieces)
                continue

            if current is None:
                current = (paragraph, paragraph_index, paragraph_index, False)
            elif len(current[0]) + len(PARAGRAPH_SEPARATOR) + len(paragraph) > self.max_length:
                flush()
                current = (paragraph, paragraph_index, paragraph_index, False)
            else:
                current = (current[0] + PARAGRAPH_SEPARATOR + paragraph,
                           current[1], paragraph_index, current[3])

        flush()

        chunks = [
            Chunk(index, chunk_text_, blocks, continues, hard_cut)
            for index, (chunk_text_, blocks, continues, hard_cut) in enumerate(pieces)
        ]
        logger.debug(f"Split {len(text)} characters into {len(chunks)} chunks (max {self.max_length})")
        return chunks

    def _split_long_paragraph(self, paragraph, paragraph_index, pieces):
        """Emit sentence-level pieces for one oversized paragraph.

        Returns:
            The trailing accumulator, which later paragraphs may extend
        """
        buffer = ""
        continues = False
        for sentence in self.split_into_sentences(paragraph):
            candidate = f"{buffer} {sentence}" if buffer else sentence
            if len(candidate) <= self.max_length:
                buffer = candidate
                continue

            if buffer:
                pieces.append((buffer, range(paragraph_index, paragraph_index + 1), continues, False))
                continues = True
                buffer = ""

            if len(sentence) <= self.max_length:
                buffer = sentence
                continue

            logger.warning(
                f"Sentence of {len(sentence)} characters exceeds chunk limit {self.max_length}, "
                f"cutting at character boundary"
            )
            remainder = sentence
            while len(remainder) > self.max_length:
                pieces.append((remainder[:self.max_length],
                               range(paragraph_index, paragraph_index + 1), continues, True))
                continues = True
                remainder = remainder[self.max_length:]
            # The tail of a cut sentence still belongs to the cut
            pieces.append((remainder, range(paragraph_index, paragraph_index + 1), continues, True))

        if buffer:
            return (buffer, paragraph_index, paragraph_index, continues)
        return None


def detect_paragraphs(text):
    """Split text on blank lines, dropping empty paragraphs."""
    if not text or not text.strip():
        return []
    return [p.strip() for p in PARAGRAPH_BREAK.split(text) if p.strip()]


def chunk_text(text, max_length=DEFAULT_MAX_LENGTH):
    """Split text into sentence-aware chunks of at most max_length characters."""
    return SentenceAwareChunker(max_length).chunk(text)


def has_hard_cut(chunks):
    """True if any chunk holds part of an over-long sentence."""
    return any(chunk.hard_cut for chunk in chunks)


def glue_text(left, right):
    """Join two halves of one paragraph; Latin text keeps a space between words."""
    if left and right and left[-1].isascii() and right[0].isascii() and not left[-1].isspace():
        return f"{left} {right}"
    return left + right


def reassemble(chunks: List[Chunk],
               results: Union[List[Optional[str]], Dict[int, Optional[str]]]) -> Reassembly:
    """Join per-chunk translations strictly in chunk index order.

    Args:
        chunks: Chunks that were translated
        results: Translations as a list aligned with chunk index, or a
            mapping of chunk index to translation, in any order. A missing
            or None entry falls back to the chunk's own text.

    Returns:
        Reassembly with the joined text and the indexes that were missing
    """
    if not isinstance(results, dict):
        results = dict(enumerate(results))

    parts = []
    missing = []
    previous = None
    for chunk in sorted(chunks, key=lambda c: c.index):
        translated = results.get(chunk.index)
        if translated is None or not translated.strip():
            missing.append(chunk.index)
            translated = chunk.text
        if not chunk.hard_cut:
            translated = translated.strip()
        if parts and chunk.continues_paragraph:
            if chunk.hard_cut and previous is not None and previous.hard_cut:
                # Pieces of one cut sentence; whitespace at the cut is content
                parts[-1] += translated
            else:
                parts[-1] = glue_text(parts[-1].rstrip(), translated.strip())
        else:
            parts.append(translated)
        previous = chunk

    if missing:
        logger.warning(f"{len(missing)} of {len(chunks)} chunks have no translation: {missing}")
    return Reassembly(text=PARAGRAPH_SEPARATOR.join(part.strip() for part in parts), missing=missing)
