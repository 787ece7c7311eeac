#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Exceptions and diagnostics for the EPUB translator.

Failures inside a chapter never abort the whole book. Internal errors are
raised as exceptions and converted to Diagnostic values at the public
boundary, so the recovered path still says what went wrong.
"""

import enum
from dataclasses import dataclass, field
from typing import Any, Dict


class TranslatorError(Exception):
    """Base class for all translator errors."""


class ParseFailure(TranslatorError):
    """Chapter markup could not be parsed into a document tree."""


class ReinsertionFailure(TranslatorError):
    """Translated text could not be written back into the document tree."""


class TranslationAPIError(TranslatorError):
    """The translation API failed after all retries."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class EpubArchiveError(TranslatorError):
    """The EPUB container could not be read or written."""


class DiagnosticKind(enum.Enum):
    PARSE_FAILURE = "parse_failure"
    CHUNK_OVERFLOW = "chunk_overflow"
    ALIGNMENT_DEGRADED = "alignment_degraded"
    REINSERTION_FAILURE = "reinsertion_failure"
    TRANSLATION_MISSING = "translation_missing"
    CHAPTER_ERROR = "chapter_error"


@dataclass(frozen=True)
class Diagnostic:
    """A recovered condition worth reporting to the caller."""

    kind: DiagnosticKind
    message: str
    detail: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_exception(cls, kind, exc, **detail):
        return cls(kind=kind, message=f"{type(exc).__name__}: {exc}", detail=detail)

    def __str__(self):
        return f"[{self.kind.value}] {self.message}"
