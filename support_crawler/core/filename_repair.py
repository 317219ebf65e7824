"""
Detection and repair of mojibake in attachment file names.

Government servers often declare the wrong charset for Content-Disposition,
so Korean names arrive as Latin-1 or CP949 garbage. Repair is a fixed,
ordered pipeline of pure strategies; each re-encodes the name under one
codec and decodes it under another. The first candidate that contains valid
Hangul and no longer looks corrupted wins.

The syllable sets below are empirical: they are the characters that show up
when UTF-8 bytes are read as CP949/EUC-KR. A legitimate name containing two
of them would be flagged too.
"""

import re
from dataclasses import dataclass
from typing import Optional

import structlog

logger = structlog.get_logger(__name__)

JAMO_RUN_PATTERN = re.compile("[ㄱ-ㅣ]{2,}")
LATIN1_ARTIFACT_PATTERN = re.compile("[ÃÂ]{2,}|Ã[\u0080-¿]")
REPLACEMENT_CHAR = "�"
CJK_RUN_PATTERN = re.compile("[一-鿿]{3,}")
HANGUL_SYLLABLE_PATTERN = re.compile("[가-힯]")

# Rare syllables produced by UTF-8 continuation bytes read as CP949
EXTENDED_CORRUPTION_CHARS = frozenset(
    "혚혞혱혗쨀혶쨉짠쨋혻혵혲혷혙혢짼짯쨍혩혰혮쩍혳혬쨔쨈혡혛쨌쩌쨊쨁짢짧짜짤짭짖"
    "쩐쩔쩜혫혜혝혟혤혯혼횁횃횅횆횉횊횋횎횏횐횑횒횓횔횕횖횗횘횙횚횛횜"
)

# Syllables produced by UTF-8 lead bytes read as CP949 ("챙혞", "챘혚", "챗쨀")
MOJIBAKE_CHARS = frozenset(
    "챘챙챗챠챨챵챶챷챸챹챺챻챼챽챾챿쨀쨁쨂쨃쨄쨅쨆쨇쨈쨉쨊쨋쨌쨍쨎쨏"
)

MIN_SUSPICIOUS_CHARS = 2


def has_valid_korean(text: str) -> bool:
    """Contains at least one Hangul syllable and no replacement character."""
    return bool(HANGUL_SYLLABLE_PATTERN.search(text)) and REPLACEMENT_CHAR not in text


def _count_chars(text: str, charset: frozenset) -> int:
    return sum(1 for ch in text if ch in charset)


def is_corrupted_filename(name: str) -> bool:
    """Heuristic mojibake detector."""
    if not name:
        return False

    return (
        bool(JAMO_RUN_PATTERN.search(name))
        or bool(LATIN1_ARTIFACT_PATTERN.search(name))
        or REPLACEMENT_CHAR in name
        or bool(CJK_RUN_PATTERN.search(name))
        or _count_chars(name, EXTENDED_CORRUPTION_CHARS) >= MIN_SUSPICIOUS_CHARS
        or _count_chars(name, MOJIBAKE_CHARS) >= MIN_SUSPICIOUS_CHARS
    )


def _is_repaired(candidate: str) -> bool:
    return has_valid_korean(candidate) and not is_corrupted_filename(candidate)


@dataclass(frozen=True)
class RepairStrategy:
    """
    One repair attempt: a chain of (encode_as, decode_as) round-trips.

    Each step turns the current string into bytes with ``encode_as`` and
    reads them back with ``decode_as``. Any codec error makes the strategy
    yield ``None``.
    """

    name: str
    steps: tuple[tuple[str, str], ...]

    def apply(self, text: str) -> Optional[str]:
        current = text
        for encode_as, decode_as in self.steps:
            try:
                current = current.encode(encode_as, errors="strict").decode(
                    decode_as, errors="strict"
                )
            except UnicodeError:
                return None
        return current


# Ordered by how often each mismatch occurs in practice
REPAIR_STRATEGIES: tuple[RepairStrategy, ...] = (
    # UTF-8 read as Latin-1 twice ("Ã¬Â\x82Â¬...")
    RepairStrategy("latin1_double", (("latin-1", "utf-8"), ("latin-1", "utf-8"))),
    # UTF-8 read as Latin-1, then the result read as CP949 ("챘혚혙")
    RepairStrategy("cp949_latin1_double", (("cp949", "utf-8"), ("latin-1", "utf-8"))),
    RepairStrategy("latin1_utf8", (("latin-1", "utf-8"),)),
    RepairStrategy("euckr_utf8", (("euc-kr", "utf-8"),)),
    RepairStrategy("latin1_cp949", (("latin-1", "cp949"),)),
    RepairStrategy("utf8_euckr", (("utf-8", "euc-kr"),)),
)


def repair_filename(
    name: str,
    strategies: tuple[RepairStrategy, ...] = REPAIR_STRATEGIES,
) -> str:
    """
    Repair a mojibake file name.

    Returns the name unchanged when it does not look corrupted or when no
    strategy produces a clean candidate.
    """
    if not is_corrupted_filename(name):
        return name

    for strategy in strategies:
        candidate = strategy.apply(name)
        if candidate is not None and candidate != name and _is_repaired(candidate):
            logger.info(
                "filename_repaired",
                strategy=strategy.name,
                original=name,
                repaired=candidate,
            )
            return candidate

    logger.debug("filename_repair_failed", original=name)
    return name
