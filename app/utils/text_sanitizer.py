import re

_ANGLE_BRACKETS = re.compile(r"[<>]")
_HTML_TAG = re.compile(r"<[^>]*>")


def strip_angle_brackets(text: str) -> str:
    """Remove every ``<`` and ``>`` character and trim surrounding whitespace.

    Used for prompts and free text forwarded upstream inside a URL path.

    Args:
        text: Raw user input.

    Returns:
        str: Sanitized text; applying it twice gives the same result.
    """
    return _ANGLE_BRACKETS.sub("", text.strip()).strip()


def strip_html_tags(text: str) -> str:
    """Remove ``<...>`` sequences, then any stray brackets, then trim.

    Args:
        text: Raw speech-synthesis input.

    Returns:
        str: Tag-free text.
    """
    text = _HTML_TAG.sub("", text.strip())
    return _ANGLE_BRACKETS.sub("", text).strip()
