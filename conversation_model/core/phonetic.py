"""
Phonetic Replacement Module

Rewrites text with a fixed set of literal replacements (for example to fix
the pronunciation of names before handing text to a speech engine) and keeps
track of every rewrite whose length changed, so that positions reported in
the rewritten text can be mapped back onto the original text.

Usage:
    from conversation_model.core.phonetic import PhoneticReplacer

    replacer = PhoneticReplacer({"b": "xxx", "efg": "y"})
    mapping = replacer.replace("abcdefgh")
    mapping.replaced                 # 'axxxcdyh'
    mapping.map_output_index(4)      # 2
"""

import re
from bisect import bisect_right
from typing import List, Mapping, Optional, Tuple

from conversation_model.logger import get_logger

logger = get_logger(__name__)

RangePair = Tuple[range, range]

# Matches nothing, used when there are no replacements
_NEVER_MATCHES = r"(?!)"


def infer_ignore_case(mapping: Mapping[str, str]) -> Optional[bool]:
    """
    Infer whether a mapping compares its keys case-insensitively.

    Looks up a case-swapped key that is not itself one of the
    mapping's keys: a case-folding mapping reports it as present, an ordinary
    one does not.

    Returns:
        True or False, or None when no key can be case-swapped
    """
    keys = set(mapping)
    for key in keys:
        swapped = key.swapcase()
        if swapped != key and swapped not in keys:
            return swapped in mapping
    return None


class TextMapping:
    """
    A rewritten string together with the ranges that changed length.

    Attributes:
        original: The text before replacement
        replaced: The text after replacement
        ranges: (original_range, replaced_range) pairs, sorted by position
    """

    def __init__(self, original: str, replaced: str, ranges: List[RangePair]):
        self.original = original
        self.replaced = replaced
        self.ranges: Tuple[RangePair, ...] = tuple(ranges)
        self._starts = [output.start for _, output in self.ranges]

    def map_output_index(self, index: int) -> int:
        """
        Map an index in the replaced text back onto the original text.

        Positions inside a replacement collapse onto the boundaries of the
        text it replaced rather than inventing sub-character positions.

        Args:
            index: Position in the replaced text

        Returns:
            The corresponding position in the original text
        """
        position = bisect_right(self._starts, index)
        if position == 0:
            return index

        source, output = self.ranges[position - 1]
        if index < output.stop:
            if index == output.start:
                return source.start
            return source.start + max(0, index - output.stop + len(source))

        return index + (source.stop - output.stop)

    def __repr__(self) -> str:
        return f"TextMapping(original={self.original!r}, replaced={self.replaced!r})"


class PhoneticReplacer:
    """
    Replaces literal patterns in text and records the resulting index shifts.

    All patterns are compiled once into a single alternation, so at any
    position the first pattern in mapping order wins. Case sensitivity
    applies to the whole mapping and is inferred from the mapping itself
    unless given explicitly; it defaults to case-sensitive.

    Usage:
        replacer = PhoneticReplacer({"SQL": "sequel"})
        mapping = replacer.replace("SQL rocks")
    """

    NULL: "PhoneticReplacer"

    def __init__(self, mapping: Mapping[str, str], ignore_case: Optional[bool] = None):
        if ignore_case is None:
            ignore_case = infer_ignore_case(mapping) or False

        pairs = [(key, value) for key, value in mapping.items() if key]
        pattern = "|".join(f"({re.escape(key)})" for key, _ in pairs) or _NEVER_MATCHES

        self.ignore_case = ignore_case
        self._regex = re.compile(pattern, re.IGNORECASE if ignore_case else 0)
        self._replacements = [value for _, value in pairs]

        logger.debug(f"Compiled {len(pairs)} replacements (ignore_case={ignore_case})")

    def replace(self, text: str) -> TextMapping:
        """
        Apply the replacements to text.

        Args:
            text: The text to rewrite

        Returns:
            A TextMapping with the rewritten text and changed ranges
        """
        ranges: List[RangePair] = []
        offset = 0

        def substitute(match: "re.Match[str]") -> str:
            nonlocal offset
            replacement = self._replacements[match.lastindex - 1]
            difference = len(replacement) - len(match.group())
            if difference != 0:
                start = match.start()
                ranges.append((
                    range(start, match.end()),
                    range(start + offset, start + offset + len(replacement)),
                ))
                offset += difference
            return replacement

        replaced = self._regex.sub(substitute, text)
        return TextMapping(text, replaced, ranges)


PhoneticReplacer.NULL = PhoneticReplacer({})
