"""Relevance scoring and the match predicate used by the search engine."""
from typing import Any

from src.text import normalize_text


EXACT_SCORE = 100.0
PREFIX_SCORE = 80.0
WHOLE_WORD_SCORE = 60.0
SUBSTRING_SCORE = 40.0
LENGTH_BONUS = 20.0
MAX_SCORE = 100.0


def calculate_relevance_score(text: Any, query: Any) -> float:
    """Score how well ``text`` matches ``query`` on a 0-100 scale.
    
    The first rule that applies sets the base score (exact, prefix,
    whole word, substring). A bonus proportional to the share of the
    text covered by the query is added, then the total is capped.
    
    Args:
        text: Field value to score
        query: Search query
        
    Returns:
        Relevance score between 0 and 100
    """
    normalized_text = normalize_text(text)
    normalized_query = normalize_text(query)
    
    if not normalized_text or not normalized_query:
        return 0.0
    
    if normalized_text == normalized_query:
        score = EXACT_SCORE
    elif normalized_text.startswith(normalized_query):
        score = PREFIX_SCORE
    elif f" {normalized_query} " in normalized_text:
        score = WHOLE_WORD_SCORE
    elif normalized_query in normalized_text:
        score = SUBSTRING_SCORE
    else:
        score = 0.0
    
    # Shorter text with a match is more relevant
    length_ratio = len(normalized_query) / len(normalized_text)
    score += length_ratio * LENGTH_BONUS
    
    return min(score, MAX_SCORE)


def matches_query(text: Any, query: Any) -> bool:
    """Check whether ``text`` contains ``query`` (case-insensitive).
    
    An empty query matches everything; empty text matches nothing.
    """
    normalized_text = normalize_text(text)
    normalized_query = normalize_text(query)
    
    if not normalized_query:
        return True
    if not normalized_text:
        return False
    
    return normalized_query in normalized_text
