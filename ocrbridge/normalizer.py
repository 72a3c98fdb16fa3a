from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Sequence

from . import models
from .errors import ParseError

log = logging.getLogger(__name__)

TSV_COLUMNS = 12
PAGE_LEVEL = 1
WORD_LEVEL = 5

# Characters that reach below the baseline in most Latin fonts.
DESCENDER_CHARS = frozenset(
    "gjpq" "y"
    "çģķļąęįųșțȘȚ"
    "ŋɟʝɡɣʄȷ"
    ",;‚„¿"
    "()[]{}"
    "∫∮∂ƒ₍₎"
    "₤₺₥₰"
)
# Share of the box height taken by descenders.
DESCENDER_FACTOR = 0.23
BASELINE_TOLERANCE = 0.0025


@dataclass
class TsvRow:
    """One Tesseract TSV row, geometry still in pixels."""

    level: int
    page_num: int
    block_num: int
    par_num: int
    line_num: int
    word_num: int
    left: int
    top: int
    width: int
    height: int
    conf: float
    text: str

    @classmethod
    def from_line(cls, line: str) -> "TsvRow":
        cols = line.rstrip("\r\n").split("\t", TSV_COLUMNS - 1)
        try:
            return cls(
                level=int(cols[0]),
                page_num=int(cols[1]),
                block_num=int(cols[2]),
                par_num=int(cols[3]),
                line_num=int(cols[4]),
                word_num=int(cols[5]),
                left=int(cols[6]),
                top=int(cols[7]),
                width=int(cols[8]),
                height=int(cols[9]),
                conf=float(cols[10]),
                text=cols[11],
            )
        except ValueError as exc:
            raise ParseError(f"Malformed TSV row {line!r}: {exc}") from exc


def has_descenders(text: str) -> bool:
    return any(char in DESCENDER_CHARS for char in text.lower())


def calculate_baseline(text: str, top: float, height: float) -> float:
    """
    Approximate where the text sits visually. Tesseract reports boxes, not
    baselines, so words with descenders get their baseline lifted off the
    bottom edge by DESCENDER_FACTOR of the box height.
    """
    if has_descenders(text):
        return top + height * (1 - DESCENDER_FACTOR)
    return top + height


def _rows(lines: Sequence[str]) -> List[TsvRow]:
    rows = []
    for line in lines:
        if len(line.rstrip("\r\n").split("\t")) < TSV_COLUMNS:
            continue
        rows.append(TsvRow.from_line(line))
    return rows


def parse_tsv_output(lines: Sequence[str]) -> List[models.Word]:
    """
    Turn raw Tesseract TSV lines (header included) into normalized words in
    reading order.
    """
    rows = _rows(lines[1:])
    if not rows:
        return []

    page = next((row for row in rows if row.level == PAGE_LEVEL), None)
    if page is None:
        raise ParseError("TSV output has no page row")
    if page.width <= 0 or page.height <= 0:
        raise ParseError(f"Invalid page size {page.width}x{page.height}")

    words: List[models.Word] = []
    for row in rows:
        if row.level != WORD_LEVEL:
            continue
        text = row.text.strip()
        if not text:
            continue
        top = row.top / page.height
        height = row.height / page.height
        words.append(
            models.Word(
                id=models.short_id(),
                text=text,
                left=row.left / page.width,
                top=top,
                width=row.width / page.width,
                height=height,
                baseline=calculate_baseline(text, top, height),
                confidence=min(max(row.conf / 100, 0.0), 1.0),
            )
        )

    log.debug("Parsed %d words from %d TSV rows", len(words), len(rows))
    return sort_reading_order(words)


def group_lines(words: Sequence[models.Word], tolerance: float = BASELINE_TOLERANCE) -> List[List[models.Word]]:
    # Compared against each group's first word only, not a running mean.
    groups: List[List[models.Word]] = []
    for word in words:
        for group in groups:
            if abs(word.baseline - group[0].baseline) <= tolerance:
                group.append(word)
                break
        else:
            groups.append([word])
    return groups


def _mean_baseline(group: Sequence[models.Word]) -> float:
    return sum(word.baseline for word in group) / len(group)


def sort_reading_order(words: Sequence[models.Word]) -> List[models.Word]:
    """Top to bottom by line baseline, left to right within a line."""
    groups = group_lines(words)
    groups.sort(key=_mean_baseline)
    ordered: List[models.Word] = []
    for group in groups:
        ordered.extend(sorted(group, key=lambda word: word.left))
    return ordered
