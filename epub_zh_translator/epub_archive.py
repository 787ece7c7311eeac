#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
EPUB container access.
Chapters are listed in spine order with ebooklib but read and written as raw
zip entries, so everything that is not a translated chapter is copied into
the output byte for byte.
"""

import logging
import posixpath
import re
import zipfile
from urllib.parse import unquote

import ebooklib
from bs4 import BeautifulSoup
from ebooklib import epub

from epub_zh_translator.exceptions import EpubArchiveError

logger = logging.getLogger("epub_zh_translator.epub_archive")

CONTAINER_PATH = "META-INF/container.xml"
MIMETYPE_PATH = "mimetype"
EPUB_MIMETYPE = b"application/epub+zip"

LANGUAGE_PATTERN = re.compile(r'(<dc:language\b[^>]*>)(.*?)(</dc:language>)', re.DOTALL | re.IGNORECASE)
METADATA_END_PATTERN = re.compile(r'</(?:opf:)?metadata>', re.IGNORECASE)


class EpubArchive:
    """Read chapters from an EPUB file and write a copy with replacements."""

    def __init__(self, path):
        """Open an EPUB file.

        Args:
            path: Path to the .epub file

        Raises:
            EpubArchiveError: If the file is not a readable EPUB container
        """
        self.path = path
        try:
            with zipfile.ZipFile(path) as archive:
                self.entries = archive.namelist()
                self.opf_path = self._find_opf(archive)
        except (OSError, zipfile.BadZipFile) as e:
            raise EpubArchiveError(f"Cannot open EPUB {path}: {e}") from e

        self.opf_dir = posixpath.dirname(self.opf_path)

        try:
            self.book = epub.read_epub(path, options={"ignore_ncx": True})
        except Exception as e:
            raise EpubArchiveError(f"Cannot read EPUB package of {path}: {e}") from e

        titles = self.book.get_metadata("DC", "title")
        self.title = titles[0][0] if titles else posixpath.basename(str(path))
        logger.info(f"Opened EPUB '{self.title}' ({len(self.entries)} entries, package {self.opf_path})")

    @staticmethod
    def _find_opf(archive):
        try:
            container = archive.read(CONTAINER_PATH)
        except KeyError as e:
            raise EpubArchiveError(f"Missing {CONTAINER_PATH}") from e

        soup = BeautifulSoup(container, "html.parser")
        rootfile = soup.find("rootfile")
        if rootfile is None or not rootfile.get("full-path"):
            raise EpubArchiveError(f"No rootfile in {CONTAINER_PATH}")
        return rootfile["full-path"]

    def entry_path(self, item):
        """Zip entry path of a manifest item."""
        return posixpath.normpath(posixpath.join(self.opf_dir, unquote(item.get_name())))

    def chapter_paths(self):
        """Entry paths of the spine's HTML documents, in reading order."""
        paths = []
        for idref, _linear in self.book.spine:
            item = self.book.get_item_with_id(idref)
            if item is None:
                logger.warning(f"Spine references unknown item '{idref}'")
                continue
            if item.get_type() != ebooklib.ITEM_DOCUMENT:
                continue
            path = self.entry_path(item)
            if path not in self.entries:
                logger.warning(f"Spine item '{idref}' points to missing entry {path}")
                continue
            if path not in paths:
                paths.append(path)
        return paths

    def chapters(self):
        """List chapters as (entry_path, markup) pairs in spine order.

        Chapters that are not valid UTF-8 are left out and copied unchanged.
        """
        chapters = []
        with zipfile.ZipFile(self.path) as archive:
            for path in self.chapter_paths():
                try:
                    markup = archive.read(path).decode("utf-8")
                except UnicodeDecodeError as e:
                    logger.warning(f"Skipping {path}, not UTF-8: {e}")
                    continue
                chapters.append((path, markup))
        logger.info(f"Found {len(chapters)} chapters in spine")
        return chapters

    def write(self, output_path, replacements, language="zh-CN"):
        """Write a copy of the archive with some chapters replaced.

        Args:
            output_path: Destination .epub path
            replacements: Dictionary of entry path to new markup
            language: Value for dc:language in the package document
        """
        unknown = set(replacements) - set(self.entries)
        if unknown:
            raise EpubArchiveError(f"Replacements for entries not in the archive: {sorted(unknown)}")

        with zipfile.ZipFile(self.path) as source, \
                zipfile.ZipFile(output_path, "w", zipfile.ZIP_DEFLATED) as target:
            # mimetype must be the first entry and stored uncompressed
            mimetype = source.read(MIMETYPE_PATH) if MIMETYPE_PATH in self.entries else EPUB_MIMETYPE
            target.writestr(zipfile.ZipInfo(MIMETYPE_PATH), mimetype, compress_type=zipfile.ZIP_STORED)

            for info in source.infolist():
                if info.filename == MIMETYPE_PATH:
                    continue
                if info.filename in replacements:
                    data = replacements[info.filename].encode("utf-8")
                elif info.filename == self.opf_path and language:
                    data = set_package_language(source.read(info), language)
                else:
                    data = source.read(info)
                target.writestr(info, data)

        logger.info(f"Wrote {output_path} with {len(replacements)} replaced chapters")


def set_package_language(opf, language):
    """Set dc:language in a package document, adding it when missing."""
    text = opf.decode("utf-8")
    if LANGUAGE_PATTERN.search(text):
        text = LANGUAGE_PATTERN.sub(lambda m: f"{m.group(1)}{language}{m.group(3)}", text, count=1)
    else:
        match = METADATA_END_PATTERN.search(text)
        if match is None:
            logger.warning("Package document has no metadata element, language left unchanged")
            return opf
        text = f"{text[:match.start()]}<dc:language>{language}</dc:language>\n{text[match.start():]}"
    return text.encode("utf-8")
