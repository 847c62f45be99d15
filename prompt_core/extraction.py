"""
Artifact extraction from model responses.

The model is asked for a fenced ``html`` block but its formatting is not
guaranteed, so extraction tries an ordered list of independent matchers.
The first matcher that finds a block wins; the block is accepted only if it
looks like a full HTML document. A response without a usable block yields
``None``, which callers treat as "keep the current artifact".
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

Matcher = Callable[[str], Optional[str]]

_TAGGED_BLOCK = re.compile(r"```html\r?\n(.*?)\r?\n```", re.DOTALL)
_UNTAGGED_BLOCK = re.compile(r"```\r?\n(.*?)\r?\n```", re.DOTALL)
_TAGGED_INLINE_BLOCK = re.compile(r"```html(.*?)```", re.DOTALL)

_DOCUMENT_MARKER = re.compile(r"<!DOCTYPE\s+html|<html[\s>]", re.IGNORECASE)


def _first_capture(pattern: re.Pattern) -> Matcher:
    def matcher(text: str) -> Optional[str]:
        match = pattern.search(text)
        return match.group(1) if match else None

    return matcher


match_tagged_block = _first_capture(_TAGGED_BLOCK)
match_untagged_block = _first_capture(_UNTAGGED_BLOCK)
match_tagged_inline_block = _first_capture(_TAGGED_INLINE_BLOCK)

# Order is significant only in that the first successful match wins
DEFAULT_MATCHERS: List[Tuple[str, Matcher]] = [
    ("tagged_block", match_tagged_block),
    ("untagged_block", match_untagged_block),
    ("tagged_inline_block", match_tagged_inline_block),
]


def is_html_document(content: str) -> bool:
    """True if ``content`` contains a doctype declaration or an <html> root tag."""
    return bool(_DOCUMENT_MARKER.search(content))


@dataclass(frozen=True)
class Extraction:
    artifact: str
    matcher: str


class ArtifactExtractor:
    """
    Tiered fenced-block extractor.

    Custom matcher lists can be passed in to support further formats without
    touching the existing ones.
    """

    def __init__(self, matchers: Optional[Sequence[Tuple[str, Matcher]]] = None) -> None:
        self.matchers = list(matchers if matchers is not None else DEFAULT_MATCHERS)

    def extract_with_matcher(self, response_text: str) -> Optional[Extraction]:
        """Like ``extract`` but also reports which matcher produced the artifact."""
        if not response_text:
            return None

        for name, matcher in self.matchers:
            captured = matcher(response_text)
            if captured is None:
                continue
            candidate = captured.strip()
            if candidate and is_html_document(candidate):
                return Extraction(artifact=candidate, matcher=name)
            return None
        return None

    def extract(self, response_text: str) -> Optional[str]:
        """Return the trimmed HTML document embedded in ``response_text``, or None."""
        extraction = self.extract_with_matcher(response_text)
        return extraction.artifact if extraction else None


_default_extractor = ArtifactExtractor()


def extract_artifact(response_text: str) -> Optional[str]:
    """Module-level shortcut using the default matcher list."""
    return _default_extractor.extract(response_text)


def strip_fences(response_text: str) -> str:
    """
    Remove every ```html and ``` marker and trim.

    Last-resort cleanup for one-shot generation, where the model was asked
    for a bare document.
    """
    return response_text.replace("```html", "").replace("```", "").strip()
