#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Parsed chapter documents.
Wraps a BeautifulSoup tree with a stable integer id for every text node,
so extraction and reinsertion can refer to nodes across two separate walks.
"""

import enum
import logging
import re

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.dammit import EntitySubstitution
from bs4.element import PreformattedString
from bs4.formatter import HTMLFormatter

from epub_zh_translator.exceptions import ParseFailure

logger = logging.getLogger("epub_zh_translator.document")

# Leading BOM, XML declaration and DOCTYPE, kept verbatim
PROLOG_PATTERN = re.compile(
    r'\A\ufeff?\s*(?:<\?xml[^>]*\?>\s*)?(?:<!DOCTYPE[^>]*>\s*)?',
    re.IGNORECASE
)

VOID_ELEMENTS = ('img', 'br', 'hr', 'input', 'meta', 'link')

VOID_TAG_PATTERN = re.compile(
    r'<(%s)(?=[\s/>])([^>]*?)\s*/?>' % '|'.join(VOID_ELEMENTS),
    re.IGNORECASE
)

# html.parser lowercases names; XHTML readers match SVG names case-sensitively
SVG_TAG_NAMES = {name.lower(): name for name in (
    'altGlyph', 'altGlyphDef', 'altGlyphItem', 'animateColor', 'animateMotion',
    'animateTransform', 'clipPath', 'feBlend', 'feColorMatrix',
    'feComponentTransfer', 'feComposite', 'feConvolveMatrix',
    'feDiffuseLighting', 'feDisplacementMap', 'feDistantLight', 'feDropShadow',
    'feFlood', 'feFuncA', 'feFuncB', 'feFuncG', 'feFuncR', 'feGaussianBlur',
    'feImage', 'feMerge', 'feMergeNode', 'feMorphology', 'feOffset',
    'fePointLight', 'feSpecularLighting', 'feSpotLight', 'feTile',
    'feTurbulence', 'foreignObject', 'glyphRef', 'linearGradient',
    'radialGradient', 'textPath',
)}

SVG_ATTRIBUTE_NAMES = {name.lower(): name for name in (
    'attributeName', 'attributeType', 'baseFrequency', 'baseProfile',
    'calcMode', 'clipPathUnits', 'diffuseConstant', 'edgeMode', 'filterUnits',
    'glyphRef', 'gradientTransform', 'gradientUnits', 'kernelMatrix',
    'kernelUnitLength', 'keyPoints', 'keySplines', 'keyTimes', 'lengthAdjust',
    'limitingConeAngle', 'markerHeight', 'markerUnits', 'markerWidth',
    'maskContentUnits', 'maskUnits', 'numOctaves', 'pathLength',
    'patternContentUnits', 'patternTransform', 'patternUnits', 'pointsAtX',
    'pointsAtY', 'pointsAtZ', 'preserveAlpha', 'preserveAspectRatio',
    'primitiveUnits', 'refX', 'refY', 'repeatCount', 'repeatDur',
    'requiredExtensions', 'requiredFeatures', 'specularConstant',
    'specularExponent', 'spreadMethod', 'startOffset', 'stdDeviation',
    'stitchTiles', 'surfaceScale', 'systemLanguage', 'tableValues', 'targetX',
    'targetY', 'textLength', 'viewBox', 'viewTarget', 'xChannelSelector',
    'yChannelSelector', 'zoomAndPan',
)}


class SourceOrderFormatter(HTMLFormatter):
    """Minimal entity escaping, attributes in the order they were written."""

    def attributes(self, tag):
        if tag.attrs is None:
            return []
        return list(tag.attrs.items())


SOURCE_ORDER = SourceOrderFormatter(entity_substitution=EntitySubstitution.substitute_xml)


class NodeKind(enum.Enum):
    TEXT = "text"
    ELEMENT = "element"
    OTHER = "other"  # comments, CDATA, processing instructions, doctypes


def node_kind(node):
    """Classify a BeautifulSoup node."""
    if isinstance(node, Tag):
        return NodeKind.ELEMENT
    if isinstance(node, PreformattedString):
        return NodeKind.OTHER
    if isinstance(node, NavigableString):
        return NodeKind.TEXT
    return NodeKind.OTHER


def normalize_void_elements(markup):
    """Rewrite void elements into the XHTML ``<tag ... />`` form."""
    return VOID_TAG_PATTERN.sub(lambda m: f"<{m.group(1)}{m.group(2)} />", markup)


def split_prolog(markup):
    """Split markup into (prolog, body); the prolog is returned verbatim."""
    match = PROLOG_PATTERN.match(markup)
    end = match.end() if match else 0
    return markup[:end], markup[end:]


def restore_svg_case(soup):
    """Give inline SVG elements and attributes back their camelCase names."""
    for svg in soup.find_all('svg'):
        for tag in [svg] + svg.find_all(True):
            tag.name = SVG_TAG_NAMES.get(tag.name, tag.name)
            if tag.attrs:
                tag.attrs = {
                    SVG_ATTRIBUTE_NAMES.get(name, name): value
                    for name, value in tag.attrs.items()
                }


class ChapterDocument:
    """A parsed chapter with an arena of its text nodes.

    Text nodes under the root are numbered by a pre-order walk. The numbering
    only depends on the markup, so two parses of the same chapter agree.
    """

    def __init__(self, prolog, soup):
        self.prolog = prolog
        self.soup = soup
        self.root = soup.body if soup.body is not None else soup
        self.text_nodes = [
            node for node in self.root.descendants
            if node_kind(node) is NodeKind.TEXT
        ]
        self._ids = {id(node): index for index, node in enumerate(self.text_nodes)}

    def node_id(self, node):
        """Return the arena id of a text node, or None if it is not in the arena."""
        return self._ids.get(id(node))

    def text_of(self, node_id):
        return str(self.text_nodes[node_id])

    def replace_text(self, node_id, text):
        """Replace the content of a text node, keeping its arena id."""
        old = self.text_nodes[node_id]
        new = NavigableString(text)
        old.replace_with(new)
        self.text_nodes[node_id] = new
        del self._ids[id(old)]
        self._ids[id(new)] = node_id

    def serialize(self):
        """Serialize back to markup with the original prolog reattached."""
        body = normalize_void_elements(self.soup.decode(formatter=SOURCE_ORDER))
        return self.prolog + body


def parse_document(markup):
    """Parse chapter markup into a ChapterDocument.

    Args:
        markup: Chapter markup as str or UTF-8 bytes

    Returns:
        ChapterDocument

    Raises:
        ParseFailure: If the markup is not text or cannot be parsed
    """
    if isinstance(markup, bytes):
        try:
            markup = markup.decode('utf-8')
        except UnicodeDecodeError as e:
            raise ParseFailure(f"Markup is not valid UTF-8: {e}") from e
    if not isinstance(markup, str):
        raise ParseFailure(f"Expected markup text, got {type(markup).__name__}")

    prolog, body = split_prolog(markup)
    try:
        soup = BeautifulSoup(body, 'html.parser')
    except Exception as e:
        raise ParseFailure(f"Could not parse markup: {e}") from e
    restore_svg_case(soup)

    document = ChapterDocument(prolog, soup)
    logger.debug(f"Parsed chapter: {len(document.text_nodes)} text nodes, prolog {len(prolog)} chars")
    return document
