"""Levenshtein edit distance for fuzzy matching and suggestion ranking."""
from typing import List


def levenshtein_distance(a: str, b: str) -> int:
    """Minimum number of single-character edits turning ``a`` into ``b``.
    
    Insertions, deletions and substitutions each cost 1.
    
    Args:
        a: Source string
        b: Target string
        
    Returns:
        Non-negative edit distance
    """
    m = len(a)
    n = len(b)
    dp: List[List[int]] = [[0] * (n + 1) for _ in range(m + 1)]
    
    for i in range(m + 1):
        dp[i][0] = i
    for j in range(n + 1):
        dp[0][j] = j
    
    for i in range(1, m + 1):
        for j in range(1, n + 1):
            if a[i - 1] == b[j - 1]:
                dp[i][j] = dp[i - 1][j - 1]
            else:
                dp[i][j] = 1 + min(
                    dp[i - 1][j - 1],  # substitution
                    dp[i - 1][j],      # deletion
                    dp[i][j - 1],      # insertion
                )
    
    return dp[m][n]


def similarity(a: str, b: str) -> float:
    """Similarity ratio ``1 - distance / max(len(a), len(b))``.
    
    Two empty strings are not considered similar (0.0).
    """
    longest = max(len(a), len(b))
    if longest == 0:
        return 0.0
    return 1 - levenshtein_distance(a, b) / longest
