"""Tests for the per-chapter pipeline."""

import time
from unittest.mock import MagicMock

from epub_zh_translator.exceptions import DiagnosticKind, TranslationAPIError
from epub_zh_translator.pipeline import ChapterPipeline, ChapterState
from epub_zh_translator.translator import TranslationStyle

from tests.conftest import CHAPTER_ONE, TOC_PAGE, XHTML_PROLOG, FakeTranslator


def kinds(outcome):
    return [diagnostic.kind for diagnostic in outcome.diagnostics]


def three_paragraphs():
    return (
        "<body><p>First paragraph with some words.</p>"
        "<p>Second paragraph with some words.</p>"
        "<p>Third paragraph with some words.</p></body>"
    )


class TestChapterPipeline:
    """Tests for ChapterPipeline.process."""

    def test_translates_chapter(self, fake_translator, simple_markup) -> None:
        """A plain chapter goes through every state and comes back translated."""
        outcome = ChapterPipeline(fake_translator.translate_chunk).process("c.xhtml", simple_markup)

        assert outcome.translated
        assert outcome.state is ChapterState.DONE
        assert outcome.markup == "<body><p>你好世界。</p><p>再见。</p></body>"
        assert outcome.history == [
            ChapterState.PENDING,
            ChapterState.EXTRACTING,
            ChapterState.CHUNKED,
            ChapterState.AWAITING_TRANSLATION,
            ChapterState.ALIGNING,
            ChapterState.REINSERTED,
            ChapterState.DONE,
        ]
        assert outcome.diagnostics == []

    def test_xhtml_chapter(self, fake_translator) -> None:
        """A full XHTML chapter keeps its prolog and head."""
        outcome = ChapterPipeline(fake_translator.translate_chunk).process("c1.xhtml", CHAPTER_ONE)

        assert outcome.translated
        assert outcome.markup.startswith(XHTML_PROLOG)
        assert "<title>Chapter 1</title>" in outcome.markup
        assert "<h1>第一章</h1>" in outcome.markup
        assert '<p class="second">时钟敲了十三下。</p>' in outcome.markup

    def test_style_passed_to_translator(self, fake_translator, simple_markup) -> None:
        """The configured style reaches every call."""
        ChapterPipeline(fake_translator.translate_chunk, style="fiction").process("c.xhtml", simple_markup)
        assert fake_translator.calls
        assert all(style is TranslationStyle.FICTION for _, style in fake_translator.calls)

    def test_navigation_page_passthrough(self, fake_translator) -> None:
        """Contents pages are never sent for translation."""
        outcome = ChapterPipeline(fake_translator.translate_chunk).process("toc.xhtml", TOC_PAGE)

        assert outcome.state is ChapterState.DONE
        assert not outcome.translated
        assert outcome.markup == TOC_PAGE
        assert fake_translator.calls == []

    def test_short_chapter_passthrough(self, fake_translator) -> None:
        """Chapters with almost no text are left alone."""
        markup = "<body><p>Hi.</p></body>"
        outcome = ChapterPipeline(fake_translator.translate_chunk).process("short.xhtml", markup)

        assert outcome.state is ChapterState.DONE
        assert not outcome.translated
        assert outcome.markup == markup
        assert fake_translator.calls == []

    def test_parse_failure_passthrough(self, fake_translator) -> None:
        """Unparseable markup passes through with a diagnostic."""
        markup = b"\xff\xfe\xfa"
        outcome = ChapterPipeline(fake_translator.translate_chunk).process("bad.xhtml", markup)

        assert outcome.state is ChapterState.DONE
        assert outcome.markup == markup
        assert kinds(outcome) == [DiagnosticKind.PARSE_FAILURE]

    def test_all_chunks_failed(self, simple_markup) -> None:
        """A chapter whose every chunk fails keeps its original markup."""
        translator = FakeTranslator(fail_on="*")
        outcome = ChapterPipeline(translator.translate_chunk).process("c.xhtml", simple_markup)

        assert outcome.state is ChapterState.FAILED
        assert outcome.failed
        assert not outcome.translated
        assert outcome.markup == simple_markup
        assert kinds(outcome) == [DiagnosticKind.TRANSLATION_MISSING]

    def test_partial_failure_keeps_source_text(self) -> None:
        """A failed chunk keeps its English while the rest is translated."""
        translator = FakeTranslator(
            translations={
                "First paragraph with some words.": "第一段。",
                "Third paragraph with some words.": "第三段。",
            },
            fail_on="Second",
        )
        pipeline = ChapterPipeline(translator.translate_chunk, max_chunk_length=40)
        outcome = pipeline.process("c.xhtml", three_paragraphs())

        assert outcome.translated
        assert outcome.chunks_total == 3
        assert outcome.chunks_failed == 1
        assert DiagnosticKind.TRANSLATION_MISSING in kinds(outcome)
        assert outcome.markup == (
            "<body><p>第一段。</p>"
            "<p>Second paragraph with some words.</p>"
            "<p>第三段。</p></body>"
        )

    def test_results_ordered_by_chunk_index(self) -> None:
        """Chunks finishing out of order are still reassembled in order."""
        translations = {
            "First paragraph with some words.": "第一段。",
            "Second paragraph with some words.": "第二段。",
            "Third paragraph with some words.": "第三段。",
        }

        def slow_first(text, style):
            if text.startswith("First"):
                time.sleep(0.05)
            return translations[text]

        pipeline = ChapterPipeline(slow_first, max_chunk_length=40, max_workers=3)
        outcome = pipeline.process("c.xhtml", three_paragraphs())
        assert outcome.markup == "<body><p>第一段。</p><p>第二段。</p><p>第三段。</p></body>"

    def test_hard_cut_reported(self, fake_translator) -> None:
        """A sentence longer than the chunk limit yields a CHUNK_OVERFLOW diagnostic."""
        markup = "<body><p>" + "a" * 120 + "</p></body>"
        outcome = ChapterPipeline(fake_translator.translate_chunk, max_chunk_length=50).process("c.xhtml", markup)

        assert outcome.translated
        assert DiagnosticKind.CHUNK_OVERFLOW in kinds(outcome)

    def test_merged_paragraphs_degrade(self) -> None:
        """A translation that merges paragraphs is still placed, with a diagnostic."""
        markup = "<body>" + "".join(f"<p>Paragraph number {i}.</p>" for i in range(6)) + "</body>"
        outcome = ChapterPipeline(lambda text, style: "全部合并成一段的翻译。").process("c.xhtml", markup)

        assert outcome.translated
        assert DiagnosticKind.ALIGNMENT_DEGRADED in kinds(outcome)
        assert "Paragraph number" not in outcome.markup

    def test_unexpected_error_fails_chapter(self, fake_translator, simple_markup) -> None:
        """Any exception inside the pipeline ends in FAILED with the original markup."""
        aligner = MagicMock()
        aligner.align.side_effect = RuntimeError("boom")
        pipeline = ChapterPipeline(fake_translator.translate_chunk, aligner=aligner)
        outcome = pipeline.process("c.xhtml", simple_markup)

        assert outcome.state is ChapterState.FAILED
        assert outcome.markup == simple_markup
        assert not outcome.translated
        assert kinds(outcome) == [DiagnosticKind.CHAPTER_ERROR]
        assert outcome.diagnostics[0].detail == {"step": "aligning"}

    def test_translator_errors_do_not_escape(self, simple_markup) -> None:
        """TranslationAPIError from the callable is contained."""
        def broken(text, style):
            raise TranslationAPIError("quota exceeded", status_code=429)

        outcome = ChapterPipeline(broken).process("c.xhtml", simple_markup)
        assert outcome.failed
        assert outcome.markup == simple_markup

    def test_batch_translation(self, simple_markup) -> None:
        """An async batch translator replaces per-chunk calls."""
        calls = []

        async def translate_batch(texts, style, concurrency):
            calls.append((list(texts), style, concurrency))
            return ["你好世界。\n\n再见。" for _ in texts]

        def unused(text, style):
            raise AssertionError("translate_chunk called")

        pipeline = ChapterPipeline(unused, style="science", max_workers=2, translate_batch=translate_batch)
        outcome = pipeline.process("c.xhtml", simple_markup)

        assert outcome.translated
        assert outcome.markup == "<body><p>你好世界。</p><p>再见。</p></body>"
        assert calls == [(["Hello world.\n\nGoodbye."], TranslationStyle.SCIENCE, 2)]

    def test_batch_failure_fails_chapter(self, simple_markup) -> None:
        """A batch that raises leaves every chunk untranslated."""
        async def translate_batch(texts, style, concurrency):
            raise TranslationAPIError("connection refused")

        outcome = ChapterPipeline(None, translate_batch=translate_batch).process("c.xhtml", simple_markup)

        assert outcome.failed
        assert outcome.markup == simple_markup
        assert kinds(outcome) == [DiagnosticKind.TRANSLATION_MISSING]


class TestFromConfig:
    """Tests for building the pipeline from configuration."""

    def test_from_config(self, memory_config, fake_translator) -> None:
        """Chunk size, style and worker count come from the config."""
        memory_config.set("translation", "max_chunk_length", 800)
        memory_config.set("translation", "style", "science")
        memory_config.set("processing", "max_parallel_chunks", 2)
        pipeline = ChapterPipeline.from_config(fake_translator.translate_chunk, memory_config)

        assert pipeline.chunker.max_length == 800
        assert pipeline.style is TranslationStyle.SCIENCE
        assert pipeline.max_workers == 2
        assert pipeline.min_chapter_length == 10
