"""Shared test fixtures for epub_zh_translator tests."""

import threading
import zipfile
from pathlib import Path

import pytest

from epub_zh_translator.config import Config
from epub_zh_translator.exceptions import TranslationAPIError

XHTML_PROLOG = (
    '<?xml version="1.0" encoding="utf-8"?>\n'
    '<!DOCTYPE html PUBLIC "-//W3C//DTD XHTML 1.1//EN" "http://www.w3.org/TR/xhtml11/DTD/xhtml11.dtd">\n'
)

CHAPTER_ONE = XHTML_PROLOG + """<html xmlns="http://www.w3.org/1999/xhtml">
<head>
<title>Chapter 1</title>
<link rel="stylesheet" type="text/css" href="style.css"/>
</head>
<body>
<h1>Chapter One</h1>
<p>It was a bright cold day in April.</p>
<p class="second">The clocks were striking thirteen.</p>
</body>
</html>
"""

CHAPTER_TWO = XHTML_PROLOG + """<html xmlns="http://www.w3.org/1999/xhtml">
<head>
<title>Chapter 2</title>
</head>
<body>
<h1>Chapter Two</h1>
<p>He looked at the picture for a long time.</p>
<div class="figure"><img src="images/picture.png" alt="Picture"/></div>
</body>
</html>
"""

TOC_PAGE = XHTML_PROLOG + """<html xmlns="http://www.w3.org/1999/xhtml">
<head>
<title>Contents</title>
</head>
<body>
<h1>Contents</h1>
<p><a href="chapter1.xhtml">One</a></p>
<p><a href="chapter1.xhtml#a">Two</a></p>
<p><a href="chapter1.xhtml#b">Three</a></p>
<p><a href="chapter2.xhtml">Four</a></p>
<p><a href="chapter2.xhtml#a">Five</a></p>
<p><a href="chapter2.xhtml#b">Six</a></p>
<p><a href="chapter2.xhtml#c">Seven</a></p>
<p><a href="chapter2.xhtml#d">Eight</a></p>
</body>
</html>
"""

CONTAINER_XML = """<?xml version="1.0" encoding="UTF-8"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="OEBPS/content.opf" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>
"""

CONTENT_OPF = """<?xml version="1.0" encoding="UTF-8"?>
<package xmlns="http://www.idpf.org/2007/opf" version="2.0" unique-identifier="bookid">
  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/" xmlns:opf="http://www.idpf.org/2007/opf">
    <dc:title>Test Book</dc:title>
    <dc:language>en</dc:language>
    <dc:identifier id="bookid">urn:uuid:12345678-1234-1234-1234-123456789abc</dc:identifier>
  </metadata>
  <manifest>
    <item id="ncx" href="toc.ncx" media-type="application/x-dtbncx+xml"/>
    <item id="toc" href="toc.xhtml" media-type="application/xhtml+xml"/>
    <item id="chapter1" href="chapter1.xhtml" media-type="application/xhtml+xml"/>
    <item id="chapter2" href="chapter2.xhtml" media-type="application/xhtml+xml"/>
    <item id="style" href="style.css" media-type="text/css"/>
    <item id="picture" href="images/picture.png" media-type="image/png"/>
  </manifest>
  <spine toc="ncx">
    <itemref idref="toc"/>
    <itemref idref="chapter1"/>
    <itemref idref="chapter2"/>
  </spine>
</package>
"""

TOC_NCX = """<?xml version="1.0" encoding="UTF-8"?>
<ncx xmlns="http://www.daisy.org/z3986/2005/ncx/" version="2005-1">
  <head>
    <meta name="dtb:uid" content="urn:uuid:12345678-1234-1234-1234-123456789abc"/>
  </head>
  <docTitle><text>Test Book</text></docTitle>
  <navMap>
    <navPoint id="np1" playOrder="1">
      <navLabel><text>Chapter One</text></navLabel>
      <content src="chapter1.xhtml"/>
    </navPoint>
    <navPoint id="np2" playOrder="2">
      <navLabel><text>Chapter Two</text></navLabel>
      <content src="chapter2.xhtml"/>
    </navPoint>
  </navMap>
</ncx>
"""

STYLE_CSS = b"body { font-family: serif; }\n"

PICTURE_PNG = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01\x08\x06\x00\x00\x00"

TRANSLATIONS = {
    "Chapter One": "第一章",
    "It was a bright cold day in April.": "四月里一个晴朗寒冷的日子。",
    "The clocks were striking thirteen.": "时钟敲了十三下。",
    "Chapter Two": "第二章",
    "He looked at the picture for a long time.": "他久久地看着那幅画。",
    "Hello world.": "你好世界。",
    "Goodbye.": "再见。",
}


class FakeTranslator:
    """Paragraph-by-paragraph dictionary translator that records its calls."""

    def __init__(self, translations=None, fail_on=None):
        self.translations = dict(TRANSLATIONS if translations is None else translations)
        self.fail_on = fail_on
        self.calls = []
        self.lock = threading.Lock()

    def translate_chunk(self, text, style=None):
        with self.lock:
            self.calls.append((text, style))
        if self.fail_on is not None and (self.fail_on == "*" or self.fail_on in text):
            raise TranslationAPIError(f"simulated failure for {text[:20]!r}", status_code=500)
        paragraphs = [p.strip() for p in text.split("\n\n") if p.strip()]
        return "\n\n".join(self.translations.get(p, "译文") for p in paragraphs)

    __call__ = translate_chunk


def build_epub(path, chapters=None, extra_entries=None):
    """Write a small EPUB 2 book to path."""
    chapters = chapters or {
        "OEBPS/toc.xhtml": TOC_PAGE,
        "OEBPS/chapter1.xhtml": CHAPTER_ONE,
        "OEBPS/chapter2.xhtml": CHAPTER_TWO,
    }
    with zipfile.ZipFile(path, "w", zipfile.ZIP_DEFLATED) as archive:
        archive.writestr(zipfile.ZipInfo("mimetype"), "application/epub+zip", compress_type=zipfile.ZIP_STORED)
        archive.writestr("META-INF/container.xml", CONTAINER_XML)
        archive.writestr("OEBPS/content.opf", CONTENT_OPF)
        archive.writestr("OEBPS/toc.ncx", TOC_NCX)
        for name, markup in chapters.items():
            archive.writestr(name, markup.encode("utf-8"))
        archive.writestr("OEBPS/style.css", STYLE_CSS)
        archive.writestr("OEBPS/images/picture.png", PICTURE_PNG)
        for name, data in (extra_entries or {}).items():
            archive.writestr(name, data)
    return path


@pytest.fixture
def fake_translator() -> FakeTranslator:
    """Translator that never touches the network."""
    return FakeTranslator()


@pytest.fixture
def sample_epub(tmp_path: Path) -> Path:
    """Three-chapter EPUB: a contents page and two chapters."""
    return build_epub(tmp_path / "book.epub")


@pytest.fixture
def memory_config() -> Config:
    """Default configuration that is never written to disk."""
    return Config(None)


@pytest.fixture
def simple_markup() -> str:
    return "<body><p>Hello world.</p><p>Goodbye.</p></body>"
