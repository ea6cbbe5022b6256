"""Cut text windows around references to a set of target notes or anchors."""

from __future__ import annotations

from bisect import bisect_right
import re
from typing import Iterable, List, Tuple

from .markdown_metadata import link_target

PARAGRAPH_PATTERN = re.compile(r"(?:^[ \t]*\S[^\n]*(?:\n|$))+", re.MULTILINE)


def _target_pattern(target: str) -> re.Pattern:
    cleaned = target.strip()
    if cleaned.startswith("![[") or cleaned.startswith("[["):
        cleaned = cleaned.lstrip("!").strip("[]")
    if cleaned.startswith("^"):
        return re.compile(rf"{re.escape(cleaned)}(?![a-zA-Z0-9])")

    path, _subpath = link_target(cleaned.split("|", 1)[0])
    if path.lower().endswith(".md"):
        path = path[:-3]
    name = re.escape(path.rsplit("/", 1)[-1])
    folder = r"(?:[^\]|#]*/)?"
    return re.compile(
        rf"!?\[\[\s*{folder}{name}(?:\.md)?\s*(?:[#|][^\]]*)?\]\]"
        rf"|(?<![\w/#&])#{name}(?![\w/-])",
        re.IGNORECASE,
    )


def _paragraph_spans(text: str) -> List[Tuple[int, int]]:
    spans = []
    for match in PARAGRAPH_PATTERN.finditer(text):
        end = match.end()
        if text[end - 1 : end] == "\n":
            end -= 1
        spans.append((match.start(), end))
    return spans


def extract_reference_windows(
    text: str,
    targets: Iterable[str],
    context_paragraphs: int = 1,
) -> List[str]:
    """
    Return the paragraphs referencing any target, each preceded by up to
    ``context_paragraphs`` paragraphs. Overlapping windows are merged and the
    result keeps document order.
    """
    patterns = [_target_pattern(target) for target in targets if target and target.strip()]
    if not patterns or not text:
        return []

    spans = _paragraph_spans(text)
    starts = [start for start, _ in spans]
    hits = set()
    for pattern in patterns:
        for match in pattern.finditer(text):
            index = bisect_right(starts, match.start()) - 1
            if index >= 0 and match.start() < spans[index][1]:
                hits.add(index)

    ranges: List[Tuple[int, int]] = []
    for index in sorted(hits):
        first = max(0, index - context_paragraphs)
        if ranges and first <= ranges[-1][1] + 1:
            ranges[-1] = (ranges[-1][0], index)
        else:
            ranges.append((first, index))

    return [text[spans[first][0] : spans[last][1]] for first, last in ranges]


__all__ = ["extract_reference_windows"]
