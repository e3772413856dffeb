"""String manipulation utilities."""


def truncate_for_logging(
    text: str, max_length: int = 1000, edge_length: int = 500
) -> str:
    """
    Truncate text for logging, showing beginning and end.

    Args:
        text: Text to truncate
        max_length: Maximum length before truncation is applied
        edge_length: Number of characters to show from start and end

    Returns:
        Truncated text with ellipsis if needed, or original text if short enough

    Examples:
        >>> truncate_for_logging("Hello", max_length=100)
        'Hello'
        >>> "..." in truncate_for_logging("x" * 2000, max_length=1000, edge_length=10)
        True
    """
    if len(text) <= max_length:
        return text
    return f"{text[:edge_length]}...\n...{text[-edge_length:]}"


def preview_text(text: str, limit: int = 40) -> str:
    """
    Single-line preview of a subtitle payload for log messages.

    Examples:
        >>> preview_text("Hello\\nWorld")
        'Hello / World'
        >>> preview_text("abcdef", limit=3)
        'abc…'
    """
    flat = " / ".join(line.strip() for line in text.splitlines() if line.strip())
    if len(flat) <= limit:
        return flat
    return f"{flat[:limit]}…"
