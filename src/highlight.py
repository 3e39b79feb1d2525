"""Locate query matches inside text and render them with highlight markers."""
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

from src.text import normalize_text


OPEN_TAG = "<mark>"
CLOSE_TAG = "</mark>"


@dataclass
class MatchSpan:
    """A single match of the query inside the original text."""
    start: int
    end: int
    text: str
    
    def to_dict(self) -> Dict[str, Any]:
        return {"start": self.start, "end": self.end, "text": self.text}


@dataclass
class Highlight:
    """Match spans for one field plus a marked-up rendering."""
    original: Optional[str]
    highlighted: Optional[str]
    matches: List[MatchSpan] = field(default_factory=list)
    
    @property
    def match_count(self) -> int:
        return len(self.matches)
    
    def segments(self) -> Iterator[Tuple[str, bool]]:
        """Yield ``(text, is_match)`` pieces of the original, in order."""
        if not self.original:
            return
        cursor = 0
        for span in self.matches:
            if span.start > cursor:
                yield self.original[cursor:span.start], False
            yield self.original[span.start:span.end], True
            cursor = span.end
        if cursor < len(self.original):
            yield self.original[cursor:], False
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "original": self.original,
            "highlighted": self.highlighted,
            "matches": [m.to_dict() for m in self.matches],
            "match_count": self.match_count,
        }


def _fold_case(text: str) -> str:
    """Lower-case character by character so offsets line up with ``text``."""
    return "".join(c if len(c.lower()) != 1 else c.lower() for c in text)


def highlight_matches(
    text: Optional[str],
    query: Optional[str],
    open_tag: str = OPEN_TAG,
    close_tag: str = CLOSE_TAG,
) -> Highlight:
    """Find every occurrence of ``query`` in ``text`` and wrap it in markers.
    
    The scan moves forward past each match, so spans never overlap.
    Offsets refer to the original text.
    
    Args:
        text: Original text
        query: Search query
        open_tag: Marker inserted before each match
        close_tag: Marker inserted after each match
        
    Returns:
        Highlight with spans, match count and marked-up text
    """
    if not text or not isinstance(text, str) or not normalize_text(query):
        return Highlight(original=text, highlighted=text)
    
    # Same per-character folding as the text
    folded = _fold_case(text)
    needle = _fold_case(query.strip())
    matches: List[MatchSpan] = []
    
    start = 0
    while True:
        index = folded.find(needle, start)
        if index == -1:
            break
        end = index + len(needle)
        matches.append(MatchSpan(start=index, end=end, text=text[index:end]))
        start = end
    
    # Wrap from the last span backwards so earlier offsets stay valid
    highlighted = text
    for span in reversed(matches):
        highlighted = (
            highlighted[:span.start]
            + open_tag
            + highlighted[span.start:span.end]
            + close_tag
            + highlighted[span.end:]
        )
    
    return Highlight(original=text, highlighted=highlighted, matches=matches)
