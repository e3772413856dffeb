"""Subtitle parser and formatter for translation workflows.

Supports SubRip (``.srt``), WebVTT (``.vtt``) and SubStation Alpha
(``.ass``/``.ssa``) documents. A document is split into an ordered list of
:class:`Entry` objects; only cue text is ever meant to change, and
:func:`reconstruct` puts everything else back exactly as it was read.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from common.string_utils import preview_text
from common.utils import LanguageUtils

logger = logging.getLogger(__name__)

BOM = "\ufeff"
TIMING_SEPARATOR = "-->"

# SRT cue index line: digits only
SRT_INDEX_PATTERN = re.compile(r"^\s*([0-9]+)\s*$")

# WebVTT timing uses "." before the milliseconds, SRT uses ","
VTT_TIMING_PATTERN = re.compile(r"\d\.\d{3}\s*-->")

# WebVTT blocks that carry metadata rather than cues
VTT_HEADER_BLOCK_PATTERN = re.compile(r"^(NOTE|STYLE|REGION)(\s|$)")

# Any "[Section]" line of an ASS/SSA script
ASS_SECTION_PATTERN = re.compile(r"^\s*\[[^\]]+\]\s*$")

# Sections that only appear in ASS/SSA scripts, used for detection
ASS_KNOWN_SECTION_PATTERN = re.compile(
    r"^\s*\[(Script Info|V4\+? Styles|Events)\]\s*$", re.IGNORECASE
)

# Event lines may be indented
ASS_DIALOGUE_PATTERN = re.compile(r"^\s*Dialogue:\s*", re.IGNORECASE)
ASS_FORMAT_PATTERN = re.compile(r"^\s*Format:\s*(.*)$", re.IGNORECASE)

# Layer/Marked, Start, End, Style, Name, MarginL, MarginR, MarginV, Effect, Text
ASS_DEFAULT_EVENT_FIELDS = [
    "layer",
    "start",
    "end",
    "style",
    "name",
    "marginl",
    "marginr",
    "marginv",
    "effect",
    "text",
]

ASS_HARD_LINEBREAK = "\\N"

# Sound and speaker annotations: [door slams], (laughing)
SDH_PATTERN = re.compile(r"\[.*?\]|\(.*?\)")


class SubtitleFormat(str, Enum):
    """Subtitle grammars understood by the codec."""

    SRT = "srt"
    VTT = "vtt"
    ASS = "ass"
    UNKNOWN = "unknown"


FORMAT_EXTENSIONS: Dict[str, SubtitleFormat] = {
    ".srt": SubtitleFormat.SRT,
    ".vtt": SubtitleFormat.VTT,
    ".ass": SubtitleFormat.ASS,
    ".ssa": SubtitleFormat.ASS,
}

DEFAULT_EXTENSIONS: Dict[SubtitleFormat, str] = {
    SubtitleFormat.SRT: ".srt",
    SubtitleFormat.VTT: ".vtt",
    SubtitleFormat.ASS: ".ass",
    SubtitleFormat.UNKNOWN: ".txt",
}


@dataclass
class Entry:
    """One cue, header block or unparsable block of a subtitle document."""

    text: str
    id: Optional[str] = None
    timestamp: Optional[str] = None
    is_header: bool = False
    is_malformed: bool = False
    # ASS only: event line up to (not including) the Text field
    line_prefix: Optional[str] = None
    # Blank lines before the block as read, terminators included; None for new entries
    separator_before: Optional[List[str]] = None
    # Terminator of each source line of the block
    line_endings: List[str] = field(default_factory=list)

    @property
    def is_translatable(self) -> bool:
        """Whether this entry's text may be sent for translation."""
        return (
            not self.is_header
            and not self.is_malformed
            and bool(self.text and self.text.strip())
        )


@dataclass
class SubtitleDocument:
    """
    Parsed subtitle document.

    Iterating over it yields its entries in source order. The remaining fields
    record the byte-level conventions of the source so that reconstruction is
    exact.
    """

    format: SubtitleFormat
    entries: List[Entry] = field(default_factory=list)
    # Terminator for lines that did not exist in the source
    newline: str = "\n"
    has_bom: bool = False
    # Blank lines after the last block, terminators included
    trailing_lines: List[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[Entry]:
        return iter(self.entries)

    def __getitem__(self, index: int) -> Entry:
        return self.entries[index]

    @property
    def translatable_entries(self) -> List[Entry]:
        return [entry for entry in self.entries if entry.is_translatable]


@dataclass
class _Block:
    """Non-blank lines of a document with the blank lines that precede them."""

    separator: List[str]
    lines: List[str]
    endings: List[str]


def _strip_bom(document: str) -> Tuple[bool, str]:
    if document.startswith(BOM):
        return True, document[len(BOM) :]
    return False, document


def _split_lines(document: str) -> Tuple[List[str], List[str]]:
    """
    Split into line contents and their terminators.

    Only ``\\n`` and ``\\r\\n`` end a line. The last line has an empty
    terminator when the document does not end with a newline.
    """
    lines: List[str] = []
    endings: List[str] = []
    pieces = document.split("\n")
    for piece in pieces[:-1]:
        if piece.endswith("\r"):
            lines.append(piece[:-1])
            endings.append("\r\n")
        else:
            lines.append(piece)
            endings.append("\n")
    if pieces[-1]:
        lines.append(pieces[-1])
        endings.append("")
    return lines, endings


def _default_newline(document: str) -> str:
    return "\r\n" if "\r\n" in document else "\n"


def _split_blocks(lines: List[str], endings: List[str]) -> Tuple[List[_Block], List[str]]:
    """
    Group lines into blank-line separated blocks.

    Whitespace-only lines count as blank. Returns the blocks and the blank
    lines after the last one.
    """
    blocks: List[_Block] = []
    separator: List[str] = []
    current: Optional[_Block] = None
    for line, ending in zip(lines, endings):
        if line.strip():
            if current is None:
                current = _Block(separator=separator, lines=[], endings=[])
                separator = []
            current.lines.append(line)
            current.endings.append(ending)
        else:
            if current is not None:
                blocks.append(current)
                current = None
            separator.append(line + ending)
    if current is not None:
        blocks.append(current)
    return blocks, separator


def _with_layout(entry: Entry, block: _Block) -> Entry:
    entry.separator_before = block.separator
    entry.line_endings = block.endings
    return entry


def _format_from_hint(filename_hint: Optional[str]) -> Optional[SubtitleFormat]:
    if not filename_hint:
        return None
    return FORMAT_EXTENSIONS.get(Path(filename_hint).suffix.lower())


def detect_format(
    document: str, filename_hint: Optional[str] = None
) -> SubtitleFormat:
    """
    Classify a document by its structure.

    Structural cues win over the file extension: a ``WEBVTT`` signature, ASS
    script sections, numbered ``-->`` cues, ``Dialogue:`` lines. Numbered cues
    whose timing uses ``.`` milliseconds are WebVTT unless the file is named
    ``.srt``. The extension of ``filename_hint`` is otherwise only consulted
    when none of these is present.

    Args:
        document: Raw subtitle text
        filename_hint: Original file name, if known

    Returns:
        Detected SubtitleFormat (UNKNOWN when nothing matches)
    """
    _, body = _strip_bom(document)
    lines, _ = _split_lines(body)
    hinted = _format_from_hint(filename_hint)

    first_content = next((line.strip() for line in lines if line.strip()), "")
    if not first_content:
        return SubtitleFormat.UNKNOWN

    if first_content.startswith("WEBVTT"):
        return SubtitleFormat.VTT

    if any(ASS_KNOWN_SECTION_PATTERN.match(line) for line in lines):
        return SubtitleFormat.ASS

    for current, following in zip(lines, lines[1:]):
        if SRT_INDEX_PATTERN.match(current) and TIMING_SEPARATOR in following:
            if VTT_TIMING_PATTERN.search(following) and hinted is not SubtitleFormat.SRT:
                return SubtitleFormat.VTT
            return SubtitleFormat.SRT

    if any(ASS_DIALOGUE_PATTERN.match(line) for line in lines):
        return SubtitleFormat.ASS

    if hinted is not None:
        return hinted

    if any(TIMING_SEPARATOR in line for line in lines):
        return SubtitleFormat.VTT

    return SubtitleFormat.UNKNOWN


def _malformed(lines: List[str]) -> Entry:
    text = "\n".join(lines)
    logger.warning(f"Keeping unparsable block verbatim: {preview_text(text)!r}")
    return Entry(text=text, is_malformed=True)


def _parse_srt(lines: List[str], endings: List[str]) -> Tuple[List[Entry], List[str]]:
    blocks, trailing = _split_blocks(lines, endings)
    entries = []
    for block in blocks:
        block_lines = block.lines
        index_match = SRT_INDEX_PATTERN.match(block_lines[0])
        if index_match and len(block_lines) >= 2 and TIMING_SEPARATOR in block_lines[1]:
            entry = Entry(
                id=index_match.group(1),
                timestamp=block_lines[1],
                text="\n".join(block_lines[2:]),
            )
        else:
            entry = _malformed(block_lines)
        entries.append(_with_layout(entry, block))
    return entries, trailing


def _parse_vtt(lines: List[str], endings: List[str]) -> Tuple[List[Entry], List[str]]:
    blocks, trailing = _split_blocks(lines, endings)
    entries = []
    for position, block in enumerate(blocks):
        block_lines = block.lines
        first_line = block_lines[0]
        if position == 0 and first_line.lstrip().startswith("WEBVTT"):
            entry = Entry(text="\n".join(block_lines), is_header=True)
        elif VTT_HEADER_BLOCK_PATTERN.match(first_line):
            entry = Entry(text="\n".join(block_lines), is_header=True)
        elif TIMING_SEPARATOR in first_line:
            entry = Entry(timestamp=first_line, text="\n".join(block_lines[1:]))
        elif len(block_lines) >= 2 and TIMING_SEPARATOR in block_lines[1]:
            entry = Entry(
                id=first_line, timestamp=block_lines[1], text="\n".join(block_lines[2:])
            )
        else:
            entry = _malformed(block_lines)
        entries.append(_with_layout(entry, block))
    return entries, trailing


def _parse_ass(lines: List[str], endings: List[str]) -> Tuple[List[Entry], List[str]]:
    entries: List[Entry] = []
    pending_header: List[str] = []
    pending_endings: List[str] = []
    section = ""
    event_fields = ASS_DEFAULT_EVENT_FIELDS

    def hold(line: str, ending: str) -> None:
        pending_header.append(line)
        pending_endings.append(ending)

    def flush_header() -> None:
        if pending_header:
            entries.append(
                Entry(
                    text="\n".join(pending_header),
                    is_header=True,
                    separator_before=[],
                    line_endings=list(pending_endings),
                )
            )
            pending_header.clear()
            pending_endings.clear()

    for line, ending in zip(lines, endings):
        if ASS_SECTION_PATTERN.match(line):
            flush_header()
            section = line.strip().lower()
            hold(line, ending)
            continue

        format_match = ASS_FORMAT_PATTERN.match(line)
        if section == "[events]" and format_match:
            event_fields = [
                name.strip().lower() for name in format_match.group(1).split(",")
            ]
            hold(line, ending)
            continue

        dialogue_match = ASS_DIALOGUE_PATTERN.match(line)
        if not dialogue_match:
            # Comment:, style lines, script info, blank lines
            hold(line, ending)
            continue

        flush_header()
        values = line[dialogue_match.end() :].split(",", len(event_fields) - 1)
        if len(values) < len(event_fields):
            entry = _malformed([line])
        else:
            text = values[-1]
            start = values[_field_position(event_fields, "start", 1)]
            end = values[_field_position(event_fields, "end", 2)]
            entry = Entry(
                timestamp=f"{start},{end}",
                text=text.replace(ASS_HARD_LINEBREAK, "\n"),
                line_prefix=line[: len(line) - len(text)],
            )
        entry.separator_before = []
        entry.line_endings = [ending]
        entries.append(entry)

    flush_header()
    return entries, []


def _field_position(fields: List[str], name: str, default: int) -> int:
    try:
        return fields.index(name)
    except ValueError:
        return default


# Each parser returns the entries and the blank lines after the last block
_PARSERS: Dict[
    SubtitleFormat,
    Callable[[List[str], List[str]], Tuple[List[Entry], List[str]]],
] = {
    SubtitleFormat.SRT: _parse_srt,
    SubtitleFormat.VTT: _parse_vtt,
    SubtitleFormat.ASS: _parse_ass,
}


def _unknown_document(document: str) -> SubtitleDocument:
    has_bom, body = _strip_bom(document)
    return SubtitleDocument(
        format=SubtitleFormat.UNKNOWN,
        entries=[Entry(text=body, is_malformed=True)],
        has_bom=has_bom,
    )


def parse(document: str, filename_hint: Optional[str] = None) -> SubtitleDocument:
    """
    Parse subtitle content into an ordered sequence of entries.

    Never raises for bad input: unrecognized documents come back as a single
    malformed entry holding the whole text.

    Args:
        document: Raw subtitle file content
        filename_hint: Original file name, used only when the structure is ambiguous

    Returns:
        SubtitleDocument with entries in source order
    """
    subtitle_format = detect_format(document, filename_hint)
    if subtitle_format is SubtitleFormat.UNKNOWN:
        logger.warning(
            f"Unrecognized subtitle format for {filename_hint or 'document'}, "
            f"passing it through unchanged"
        )
        return _unknown_document(document)

    try:
        has_bom, body = _strip_bom(document)
        lines, endings = _split_lines(body)
        entries, trailing = _PARSERS[subtitle_format](lines, endings)
    except Exception as e:
        logger.exception(f"Failed to parse {subtitle_format.value} document: {e}")
        return _unknown_document(document)

    parsed = SubtitleDocument(
        format=subtitle_format,
        entries=entries,
        newline=_default_newline(body),
        has_bom=has_bom,
        trailing_lines=trailing,
    )
    logger.info(
        f"Parsed {len(entries)} {subtitle_format.value} entries "
        f"({len(parsed.translatable_entries)} translatable)"
    )
    return parsed


def _text_lines(text: str) -> List[str]:
    """Cue text lines without blank lines, which would end the block early."""
    return [line for line in text.replace("\r\n", "\n").split("\n") if line.strip()]


def _render_srt(entries: Sequence[Entry]) -> List[List[str]]:
    blocks = []
    number = 0
    for entry in entries:
        if entry.is_header or entry.is_malformed or entry.timestamp is None:
            blocks.append(entry.text.split("\n"))
            continue
        number += 1
        blocks.append([str(number), entry.timestamp, *_text_lines(entry.text)])
    return blocks


def _render_vtt(entries: Sequence[Entry]) -> List[List[str]]:
    blocks = []
    for entry in entries:
        if entry.is_header or entry.is_malformed or entry.timestamp is None:
            blocks.append(entry.text.split("\n"))
            continue
        block = [entry.id] if entry.id is not None else []
        block.append(entry.timestamp)
        block.extend(_text_lines(entry.text))
        blocks.append(block)
    return blocks


def _render_ass(entries: Sequence[Entry]) -> List[List[str]]:
    blocks = []
    for entry in entries:
        if entry.is_header or entry.is_malformed:
            blocks.append(entry.text.split("\n"))
            continue
        prefix = entry.line_prefix
        if prefix is None:
            timing = entry.timestamp or "0:00:00.00,0:00:00.00"
            prefix = f"Dialogue: 0,{timing},Default,,0,0,0,,"
        text = entry.text.replace("\r\n", "\n").replace("\n", ASS_HARD_LINEBREAK)
        blocks.append([prefix + text])
    return blocks


# Renderer and whether new blocks get a blank line before them
_RENDERERS: Dict[
    SubtitleFormat, Tuple[Callable[[Sequence[Entry]], List[List[str]]], bool]
] = {
    SubtitleFormat.SRT: (_render_srt, True),
    SubtitleFormat.VTT: (_render_vtt, True),
    SubtitleFormat.ASS: (_render_ass, False),
}


def _block_endings(entry: Entry, line_count: int, newline: str) -> List[str]:
    """Source terminators when the line count is unchanged, else ``newline``."""
    if len(entry.line_endings) == line_count:
        return entry.line_endings
    last = entry.line_endings[-1] if entry.line_endings else newline
    return [newline] * (line_count - 1) + [last]


def reconstruct(
    entries: Union[SubtitleDocument, Sequence[Entry]],
    filename_hint: Optional[str] = None,
) -> str:
    """
    Format entries back into a subtitle document.

    The grammar is the one detected by :func:`parse`. ``filename_hint`` only
    matters for a bare list of entries, which carries no detected format.

    Ensures:
    - Headers and malformed blocks are emitted verbatim in place
    - Blank separator lines and line terminators are emitted as read
    - SRT cues are renumbered from 1
    - Timestamps are emitted exactly as parsed

    Args:
        entries: Parsed document (possibly with translated text) or a list of entries
        filename_hint: Original file name

    Returns:
        Subtitle document text
    """
    if isinstance(entries, SubtitleDocument):
        document = entries
    else:
        document = SubtitleDocument(
            format=_format_from_hint(filename_hint) or SubtitleFormat.SRT,
            entries=list(entries),
        )

    bom = BOM if document.has_bom else ""
    if document.format is SubtitleFormat.UNKNOWN:
        return bom + "\n".join(entry.text for entry in document.entries)

    renderer, blank_line_between_blocks = _RENDERERS[document.format]
    newline = document.newline
    parts = [bom]
    blocks = renderer(document.entries)
    for position, (entry, block) in enumerate(zip(document.entries, blocks)):
        separator = entry.separator_before
        if separator is None:
            separator = [newline] if position and blank_line_between_blocks else []
        parts.extend(separator)
        endings = _block_endings(entry, len(block), newline)
        parts.extend(line + ending for line, ending in zip(block, endings))
    parts.extend(document.trailing_lines)
    return "".join(parts)


def strip_sdh(text: str) -> str:
    """
    Remove bracketed and parenthesized SDH annotations.

    Example:
        >>> strip_sdh("[door slams] World")
        'World'
    """
    return SDH_PATTERN.sub("", text).strip()


def build_translated_filename(
    filename: str,
    target_language: str,
    subtitle_format: Optional[SubtitleFormat] = None,
) -> str:
    """
    Name for a translated copy of ``filename``.

    Example:
        >>> build_translated_filename("movie.en.srt", "Uzbek")
        'movie.en.uz.srt'
    """
    path = Path(filename)
    extension = path.suffix or DEFAULT_EXTENSIONS.get(
        subtitle_format or SubtitleFormat.UNKNOWN, ".txt"
    )
    stem = path.stem if path.suffix else path.name
    return f"{stem}.{LanguageUtils.file_suffix(target_language)}{extension}"
