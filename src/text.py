"""Text normalization shared by every matching routine."""
import re
from typing import Any, List


_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: Any) -> str:
    """Normalize text for case-insensitive comparison.
    
    Args:
        text: Text to normalize. None and non-string values count as absent.
        
    Returns:
        Lower-cased, trimmed text, or an empty string
    """
    if not text or not isinstance(text, str):
        return ""
    return text.lower().strip()


def split_words(text: Any) -> List[str]:
    """Split normalized text into whitespace-delimited words.
    
    Args:
        text: Text to split
        
    Returns:
        List of lowercase words (empty for absent text)
    """
    normalized = normalize_text(text)
    if not normalized:
        return []
    return _WHITESPACE.split(normalized)
