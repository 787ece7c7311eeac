"""Tests for whole-book translation."""

import zipfile

from epub_zh_translator import get_processor
from epub_zh_translator.epub_processor import EPUBProcessor

from tests.conftest import CHAPTER_TWO, PICTURE_PNG, TOC_PAGE, XHTML_PROLOG, FakeTranslator


def read_entry(path, name):
    with zipfile.ZipFile(path) as archive:
        return archive.read(name)


class BatchTranslator(FakeTranslator):
    """FakeTranslator with an async batch method."""

    def __init__(self):
        super().__init__()
        self.batches = 0

    async def translate_chunks_async(self, texts, style=None, concurrency=3):
        with self.lock:
            self.batches += 1
        results = []
        for text in texts:
            paragraphs = [p.strip() for p in text.split("\n\n") if p.strip()]
            results.append("\n\n".join(self.translations.get(p, "译文") for p in paragraphs))
        return results


class TestEPUBProcessor:
    """Tests for EPUBProcessor.translate_epub."""

    def test_translate_book(self, sample_epub, tmp_path, fake_translator, memory_config) -> None:
        """Chapters are translated, the contents page and resources are kept."""
        output = tmp_path / "out" / "book_zh.epub"
        stats = EPUBProcessor(fake_translator, memory_config).translate_epub(sample_epub, str(output))

        assert stats["chapters_total"] == 3
        assert stats["chapters_translated"] == 2
        assert stats["chapters_passthrough"] == 1
        assert stats["chapters_failed"] == 0
        assert stats["chunks_failed"] == 0
        assert stats["processing_time"] >= 0

        chapter_one = read_entry(output, "OEBPS/chapter1.xhtml").decode("utf-8")
        assert chapter_one.startswith(XHTML_PROLOG)
        assert "<p>四月里一个晴朗寒冷的日子。</p>" in chapter_one
        assert '<link rel="stylesheet" type="text/css" href="style.css" />' in chapter_one

        chapter_two = read_entry(output, "OEBPS/chapter2.xhtml").decode("utf-8")
        assert "<h1>第二章</h1>" in chapter_two
        assert '<img src="images/picture.png" alt="Picture" />' in chapter_two

        assert read_entry(output, "OEBPS/toc.xhtml").decode("utf-8") == TOC_PAGE
        assert read_entry(output, "OEBPS/images/picture.png") == PICTURE_PNG
        assert b"<dc:language>zh-CN</dc:language>" in read_entry(output, "OEBPS/content.opf")

    def test_chapter_limit(self, sample_epub, tmp_path, fake_translator, memory_config) -> None:
        """Only the first chapters are sent when a limit is set."""
        memory_config.set("processing", "chapter_limit", 2)
        output = tmp_path / "limited.epub"
        stats = EPUBProcessor(fake_translator, memory_config).translate_epub(sample_epub, str(output))

        assert stats["chapters_translated"] == 1
        assert stats["chapters_passthrough"] == 2
        assert read_entry(output, "OEBPS/chapter2.xhtml").decode("utf-8") == CHAPTER_TWO

    def test_failing_translator(self, sample_epub, tmp_path, memory_config) -> None:
        """A translator that always fails leaves the book as it was."""
        output = tmp_path / "failed.epub"
        stats = EPUBProcessor(FakeTranslator(fail_on="*"), memory_config).translate_epub(sample_epub, str(output))

        assert stats["chapters_failed"] == 2
        assert stats["chapters_translated"] == 0
        assert stats["chunks_failed"] == 2
        for name in ("OEBPS/chapter1.xhtml", "OEBPS/chapter2.xhtml"):
            assert read_entry(output, name) == read_entry(sample_epub, name)

    def test_one_bad_chapter(self, sample_epub, tmp_path, memory_config) -> None:
        """A failing chapter does not stop the others."""
        translator = FakeTranslator(fail_on="Chapter Two")
        output = tmp_path / "partial.epub"
        stats = EPUBProcessor(translator, memory_config).translate_epub(sample_epub, str(output))

        assert stats["chapters_translated"] == 1
        assert stats["chapters_failed"] == 1
        assert read_entry(output, "OEBPS/chapter2.xhtml").decode("utf-8") == CHAPTER_TWO

    def test_plain_callable(self, sample_epub, tmp_path, memory_config) -> None:
        """A bare function can stand in for the translator object."""
        output = tmp_path / "callable.epub"
        stats = EPUBProcessor(FakeTranslator().translate_chunk, memory_config).translate_epub(sample_epub, str(output))
        assert stats["chapters_translated"] == 2

    def test_get_processor(self, memory_config, fake_translator) -> None:
        """The package factory wires the config through."""
        memory_config.set("processing", "max_parallel_chapters", 5)
        processor = get_processor(memory_config, fake_translator)
        assert isinstance(processor, EPUBProcessor)
        assert processor.max_workers == 5

    def test_async_batch_used(self, sample_epub, tmp_path, memory_config) -> None:
        """A translator with translate_chunks_async gets one batch per chapter."""
        translator = BatchTranslator()
        output = tmp_path / "batch.epub"
        stats = EPUBProcessor(translator, memory_config).translate_epub(sample_epub, str(output))

        assert stats["chapters_translated"] == 2
        assert translator.batches == 2
        assert translator.calls == []
        assert "第二章".encode("utf-8") in read_entry(output, "OEBPS/chapter2.xhtml")

    def test_async_batch_disabled(self, sample_epub, tmp_path, memory_config) -> None:
        """async_requests=False keeps per-chunk calls."""
        memory_config.set("processing", "async_requests", "false")
        translator = BatchTranslator()
        EPUBProcessor(translator, memory_config).translate_epub(sample_epub, str(tmp_path / "sync.epub"))

        assert translator.batches == 0
        assert len(translator.calls) == 2
