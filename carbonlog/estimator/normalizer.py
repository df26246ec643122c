"""
Input normalization for pattern matching.

The normalized form is only ever used for matching. Callers keep the
original text for storage and display.
"""


def normalize_description(text) -> str:
    """
    Lowercase, trim and collapse whitespace runs to a single space.
    Anything that isn't a string normalizes to ''.
    """
    if not isinstance(text, str):
        return ""
    return " ".join(text.split()).lower()
