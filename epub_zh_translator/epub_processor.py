#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
EPUB processor: runs the chapter pipeline over a whole book.
"""

import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor, as_completed

from tqdm import tqdm

from epub_zh_translator.config import Config
from epub_zh_translator.epub_archive import EpubArchive
from epub_zh_translator.pipeline import ChapterOutcome, ChapterPipeline, ChapterState

logger = logging.getLogger("epub_zh_translator.epub_processor")


class EPUBProcessor:
    """Processor for translating EPUB files."""

    def __init__(self, translator, config=None):
        """Initialize EPUB processor.

        Args:
            translator: Object with translate_chunk(text, style), or such a callable
            config: Config instance (optional, defaults in memory)
        """
        self.translator = translator
        self.config = config or Config(None)
        self.max_workers = max(1, self.config.getint('processing', 'max_parallel_chapters'))
        self.chapter_limit = self.config.getint('processing', 'chapter_limit') or 0
        self.language = self.config.get('translation', 'target_language')

        translate_chunk = getattr(translator, 'translate_chunk', translator)
        translate_batch = None
        if self.config.getboolean('processing', 'async_requests'):
            translate_batch = getattr(translator, 'translate_chunks_async', None)
        self.pipeline = ChapterPipeline.from_config(translate_chunk, self.config, translate_batch)

    def translate_epub(self, input_path, output_path):
        """Translate an EPUB file.

        Args:
            input_path: Path to input EPUB file
            output_path: Path to output EPUB file

        Returns:
            Dictionary with translation statistics
        """
        start_time = time.time()
        logger.info(f"Loading EPUB file: {input_path}")
        archive = EpubArchive(input_path)
        chapters = archive.chapters()

        selected = chapters
        if self.chapter_limit > 0 and len(chapters) > self.chapter_limit:
            selected = chapters[:self.chapter_limit]
            logger.info(f"Chapter limit {self.chapter_limit}: leaving {len(chapters) - len(selected)} chapters untranslated")

        outcomes = self._process_chapters(selected)

        replacements = {
            path: outcome.markup for path, outcome in outcomes.items() if outcome.translated
        }

        output_dir = os.path.dirname(output_path)
        if output_dir:
            os.makedirs(output_dir, exist_ok=True)
        logger.info(f"Writing translated EPUB to: {output_path}")
        archive.write(output_path, replacements, language=self.language)

        for outcome in outcomes.values():
            for diagnostic in outcome.diagnostics:
                logger.info(f"{outcome.path}: {diagnostic}")

        processing_time = time.time() - start_time
        translated = sum(1 for outcome in outcomes.values() if outcome.translated)
        failed = sum(1 for outcome in outcomes.values() if outcome.failed)
        stats = {
            'chapters_total': len(chapters),
            'chapters_translated': translated,
            'chapters_passthrough': len(chapters) - translated - failed,
            'chapters_failed': failed,
            'chunks_total': sum(outcome.chunks_total for outcome in outcomes.values()),
            'chunks_failed': sum(outcome.chunks_failed for outcome in outcomes.values()),
            'processing_time': processing_time,
        }
        logger.info(f"Translation complete in {processing_time:.2f} seconds")
        return stats

    def _process_chapters(self, chapters):
        """Translate chapters in parallel; a failing chapter keeps its original markup."""
        outcomes = {}
        if not chapters:
            return outcomes

        logger.info(f"Translating {len(chapters)} chapters using {self.max_workers} parallel workers")
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {
                executor.submit(self.pipeline.process, path, markup): (path, markup)
                for path, markup in chapters
            }
            with tqdm(total=len(futures), desc="Translating chapters") as pbar:
                for future in as_completed(futures):
                    path, markup = futures[future]
                    try:
                        outcomes[path] = future.result()
                    except Exception as e:
                        logger.error(f"Error translating chapter {path}: {str(e)}")
                        outcome = ChapterOutcome(path=path, markup=markup)
                        outcome.advance(ChapterState.FAILED)
                        outcomes[path] = outcome
                    pbar.update(1)
        return outcomes
