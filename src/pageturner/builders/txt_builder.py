"""Plain text chapter builder.

Heading detection is a line classifier, not a parser: a missed heading merges
its content into the previous chapter and an accidental match splits off a
short spurious chapter. Both are accepted.
"""

from __future__ import annotations

import logging
import re
from pathlib import PurePosixPath

from pageturner.errors import EncodingAmbiguityError
from pageturner.library.models import FORMAT_TEXT, Chapter, Document, LineLocator

from .base import BaseBuilder

log = logging.getLogger(__name__)

FRONT_MATTER_LABEL = "Front Matter"
MAX_HEADING_WIDTH = 30

_CJK_DIGITS = "〇零一二两三四五六七八九十百千万壹贰叁肆伍陆柒捌玖拾佰仟"

# 第十二章 ..., 第 3 章
_NUMBERED_CHAPTER = re.compile(r"^\s*第[零一二三四五六七八九十百千万\d\s]+章.*$")

# Short structural keyword lines, optionally numbered and titled
_KEYWORD_HEADING = re.compile(
    r"^[ 　\t]{0,4}"
    r"(?:序章|楔子|正文(?!完|结)|终章|后记|尾声|番外"
    rf"|第\s{{0,4}}[\d{_CJK_DIGITS}]+?\s{{0,4}}"
    r"(?:章|节(?!课)|卷|集(?![合和])|部(?![分赛游])|篇(?!张)))"
    r".{0,30}$"
)

_ENGLISH_HEADING = re.compile(
    r"^\s{0,4}(?:prologue|epilogue|preface|afterword|introduction"
    r"|(?:chapter|volume|part|book)\s+(?:\d+|[ivxlcdm]+|one|two|three|four|five"
    r"|six|seven|eight|nine|ten|eleven|twelve)\b)"
    r"(?:\s*[:.\-—]?\s*.{0,24})?$",
    re.IGNORECASE,
)


def decode_text(data: bytes, primary: str = "utf-8", fallback: str = "gbk") -> str:
    """Decode with the primary encoding, retry once with the fallback, then replace.

    Never raises: undecodable input comes back as best-effort text.
    """
    for encoding in (primary, fallback):
        try:
            return _decode_strict(data, encoding)
        except EncodingAmbiguityError as e:
            log.warning("%s", e)
    return data.decode("utf-8", errors="replace")


def _decode_strict(data: bytes, encoding: str) -> str:
    try:
        return data.decode(encoding)
    except (UnicodeDecodeError, LookupError) as e:
        raise EncodingAmbiguityError(encoding, str(e)) from e


def is_heading(line: str) -> bool:
    if not line or not line.strip():
        return False
    if _NUMBERED_CHAPTER.match(line):
        return True
    if len(line.strip()) > MAX_HEADING_WIDTH:
        return False
    return bool(_KEYWORD_HEADING.match(line) or _ENGLISH_HEADING.match(line))


def split_lines(text: str) -> list[str]:
    return text.replace("\r\n", "\n").replace("\r", "\n").split("\n")


def _paragraphs(lines: list[str]) -> list[str]:
    return [line.strip() for line in lines if line.strip()]


def segment_text(text: str, name: str = "") -> list[Chapter]:
    """Split text into chapters at heading lines."""
    lines = split_lines(text)
    headings = [i for i, line in enumerate(lines) if is_heading(line)]

    if not headings:
        label = PurePosixPath(name).stem if name else ""
        return [
            Chapter(
                label=label or "Document",
                locator=LineLocator(start_line=0, end_line=len(lines)),
                paragraphs=_paragraphs(lines),
            )
        ]

    chapters: list[Chapter] = []
    first = headings[0]
    if first > 0:
        intro = _paragraphs(lines[:first])
        if intro:
            chapters.append(
                Chapter(
                    label=FRONT_MATTER_LABEL,
                    locator=LineLocator(start_line=0, end_line=first),
                    paragraphs=intro,
                )
            )

    for n, start in enumerate(headings):
        end = headings[n + 1] if n + 1 < len(headings) else len(lines)
        title = lines[start].strip()
        chapters.append(
            Chapter(
                label=title,
                locator=LineLocator(start_line=start, end_line=end),
                paragraphs=[title] + _paragraphs(lines[start + 1 : end]),
            )
        )
    return chapters


class TxtBuilder(BaseBuilder):
    FORMAT = FORMAT_TEXT
    SUPPORTED_EXTENSIONS = (".txt", ".text")

    def build(self, data: bytes, name: str = "") -> Document:
        if self.config:
            text = decode_text(
                data, self.config.primary_encoding, self.config.fallback_encoding
            )
        else:
            text = decode_text(data)
        lines = split_lines(text)
        return Document(
            format=self.FORMAT,
            chapters=segment_text(text, name),
            total_units=len(lines),
            title=PurePosixPath(name).stem if name else "",
        )
