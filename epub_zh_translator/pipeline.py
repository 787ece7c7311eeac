#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Per-chapter translation pipeline.

extract -> chunk -> translate chunks -> reassemble by chunk index -> align
-> reinsert. Every failure ends with the chapter's original markup, so one
bad chapter never corrupts the book. Retries belong to the translate_chunk
callable, not to this module.
"""

import asyncio
import enum
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import List

from epub_zh_translator.aligner import ParagraphAligner, split_paragraphs
from epub_zh_translator.chunker import DEFAULT_MAX_LENGTH, SentenceAwareChunker, has_hard_cut, reassemble
from epub_zh_translator.exceptions import Diagnostic, DiagnosticKind
from epub_zh_translator.extractor import ExtractionPolicy, extract_text
from epub_zh_translator.reinserter import StructuralReinserter
from epub_zh_translator.translator import TranslationStyle

logger = logging.getLogger("epub_zh_translator.pipeline")


class ChapterState(enum.Enum):
    PENDING = "pending"
    EXTRACTING = "extracting"
    CHUNKED = "chunked"
    AWAITING_TRANSLATION = "awaiting_translation"
    ALIGNING = "aligning"
    REINSERTED = "reinserted"
    DONE = "done"
    FAILED = "failed"


@dataclass
class ChapterOutcome:
    """Result of one chapter; markup is the original unless translated is True."""

    path: str
    markup: str
    state: ChapterState = ChapterState.PENDING
    translated: bool = False
    diagnostics: List[Diagnostic] = field(default_factory=list)
    history: List[ChapterState] = field(default_factory=list)
    chunks_total: int = 0
    chunks_failed: int = 0

    def advance(self, state):
        self.state = state
        self.history.append(state)
        logger.debug(f"{self.path}: {state.value}")

    @property
    def failed(self):
        return self.state is ChapterState.FAILED


class ChapterPipeline:
    """Translate the text of one chapter at a time while keeping its markup."""

    def __init__(self, translate_chunk, style=TranslationStyle.GENERAL,
                 max_chunk_length=DEFAULT_MAX_LENGTH, policy=None, max_workers=3,
                 min_chapter_length=10, sentence_tokenizer="regex", aligner=None,
                 translate_batch=None):
        """Initialize the chapter pipeline.

        Args:
            translate_chunk: Callable (text, style) -> translated text; may raise
            style: TranslationStyle or style name passed to translate_chunk
            max_chunk_length: Maximum characters per translation request
            policy: ExtractionPolicy shared by extraction and reinsertion
            max_workers: Chunks translated in parallel within a chapter
            min_chapter_length: Chapters with this much text or less pass through
            sentence_tokenizer: 'regex' or 'nltk'
            aligner: ParagraphAligner (optional)
            translate_batch: Coroutine function (texts, style, concurrency) returning
                translations in input order, None where one failed. Used instead of
                translate_chunk when given
        """
        self.translate_chunk = translate_chunk
        self.style = TranslationStyle.parse(style)
        self.policy = policy or ExtractionPolicy()
        self.max_workers = max(1, max_workers)
        self.min_chapter_length = min_chapter_length
        self.chunker = SentenceAwareChunker(max_chunk_length, sentence_tokenizer)
        self.reinserter = StructuralReinserter(self.policy)
        self.aligner = aligner or ParagraphAligner()
        self.translate_batch = translate_batch

    @classmethod
    def from_config(cls, translate_chunk, config, translate_batch=None):
        return cls(
            translate_chunk,
            translate_batch=translate_batch,
            style=config.get("translation", "style"),
            max_chunk_length=config.getint("translation", "max_chunk_length"),
            policy=ExtractionPolicy.from_config(config),
            max_workers=config.getint("processing", "max_parallel_chunks"),
            min_chapter_length=config.getint("extraction", "min_chapter_length"),
            sentence_tokenizer=config.get("translation", "sentence_tokenizer"),
        )

    def process(self, path, markup):
        """Translate one chapter.

        Args:
            path: Archive entry path, used for logging
            markup: Chapter markup

        Returns:
            ChapterOutcome
        """
        outcome = ChapterOutcome(path=path, markup=markup)
        outcome.advance(ChapterState.PENDING)
        try:
            self._run(outcome, markup)
        except Exception as e:
            logger.error(f"Chapter {path} failed, keeping original markup: {e}", exc_info=True)
            outcome.markup = markup
            outcome.translated = False
            outcome.diagnostics.append(
                Diagnostic.from_exception(DiagnosticKind.CHAPTER_ERROR, e, step=outcome.state.value)
            )
            outcome.advance(ChapterState.FAILED)
        return outcome

    def _passthrough(self, outcome, reason):
        logger.info(f"Passing {outcome.path} through untranslated: {reason}")
        outcome.advance(ChapterState.DONE)

    def _fail(self, outcome, markup, diagnostic):
        logger.warning(f"Chapter {outcome.path} failed: {diagnostic}")
        outcome.markup = markup
        outcome.diagnostics.append(diagnostic)
        outcome.advance(ChapterState.FAILED)

    def _run(self, outcome, markup):
        outcome.advance(ChapterState.EXTRACTING)
        extraction = extract_text(markup, self.policy)
        if extraction.failure is not None:
            outcome.diagnostics.append(extraction.failure)
            return self._passthrough(outcome, "markup could not be parsed")
        if extraction.is_navigation_page:
            return self._passthrough(outcome, "navigation page")

        text = extraction.joined_text()
        if not extraction.blocks or len(text) <= self.min_chapter_length:
            return self._passthrough(outcome, f"only {len(text)} characters of text")

        chunks = self.chunker.chunk(text)
        outcome.chunks_total = len(chunks)
        outcome.advance(ChapterState.CHUNKED)
        if has_hard_cut(chunks):
            outcome.diagnostics.append(Diagnostic(
                kind=DiagnosticKind.CHUNK_OVERFLOW,
                message="A sentence exceeded the chunk limit and was cut",
                detail={"chunks": [chunk.index for chunk in chunks if chunk.hard_cut]}
            ))

        outcome.advance(ChapterState.AWAITING_TRANSLATION)
        results = self._translate_chunks(outcome.path, chunks)
        reassembly = reassemble(chunks, results)
        outcome.chunks_failed = len(reassembly.missing)
        if reassembly.missing:
            diagnostic = Diagnostic(
                kind=DiagnosticKind.TRANSLATION_MISSING,
                message=f"{len(reassembly.missing)} of {len(chunks)} chunks were not translated",
                detail={"chunks": reassembly.missing}
            )
            if len(reassembly.missing) == len(chunks):
                return self._fail(outcome, markup, diagnostic)
            outcome.diagnostics.append(diagnostic)

        outcome.advance(ChapterState.ALIGNING)
        alignment = self.aligner.align(extraction.blocks, split_paragraphs(reassembly.text))
        if alignment.diagnostic() is not None:
            outcome.diagnostics.append(alignment.diagnostic())

        result = self.reinserter.reinsert(markup, alignment)
        if not result.ok:
            return self._fail(outcome, markup, result.failure)

        outcome.markup = result.markup
        outcome.translated = True
        outcome.advance(ChapterState.REINSERTED)
        outcome.advance(ChapterState.DONE)

    def _translate_chunks(self, path, chunks):
        """Translate chunks in parallel.

        Returns:
            Dictionary of chunk index to translation, None where it failed
        """
        if self.translate_batch is not None:
            return self._translate_chunks_async(path, chunks)

        results = {}
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(chunks))) as executor:
            futures = {
                executor.submit(self.translate_chunk, chunk.text, self.style): chunk.index
                for chunk in chunks
            }
            # Completion order is arbitrary; results are keyed by chunk index
            for future in as_completed(futures):
                index = futures[future]
                try:
                    results[index] = future.result()
                except Exception as e:
                    logger.warning(f"{path}: chunk {index + 1}/{len(chunks)} failed: {e}")
                    results[index] = None
        return results

    def _translate_chunks_async(self, path, chunks):
        """Translate chunks with one event loop per chapter."""
        texts = [chunk.text for chunk in chunks]
        try:
            translations = asyncio.run(self.translate_batch(texts, self.style, self.max_workers))
        except Exception as e:
            logger.warning(f"{path}: batch translation of {len(chunks)} chunks failed: {e}")
            translations = [None] * len(chunks)
        return {chunk.index: translation for chunk, translation in zip(chunks, translations)}
