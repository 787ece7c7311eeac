#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Chapter-level building blocks, usable without the EPUB container or the API:

    extract_text(markup)                   -> ExtractionResult
    chunk_text(text, max_length)           -> list of Chunk
    align_translations(blocks, translated) -> AlignmentResult
    reinsert_translations(markup, mapping) -> markup
"""

from epub_zh_translator.aligner import align_translations
from epub_zh_translator.chunker import chunk_text
from epub_zh_translator.extractor import extract_text
from epub_zh_translator.reinserter import reinsert_translations

__all__ = ["extract_text", "chunk_text", "align_translations", "reinsert_translations"]
