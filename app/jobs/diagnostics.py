"""Best-effort classification of worker failure output.

The worker only reports failures as free-form text on stderr. The rules
below are checked in order against the accumulated text; the first match
wins. Anything unmatched is surfaced as the last non-empty line so the user
still sees what the tool said.
"""

from typing import List, Tuple

GENERIC_FAILURE = "Download failed."

FAILURE_RULES: List[Tuple[str, str]] = [
    (
        "Could not copy",
        "Could not read browser cookies. Close the browser and try again.",
    ),
    (
        "HTTP Error 403",
        "Access was forbidden by the server (HTTP 403). "
        "The video may be blocked or require sign-in.",
    ),
    (
        "Requested format is not available",
        "The selected quality is not available for this video.",
    ),
    (
        "Unsupported URL",
        "This URL is not supported by the downloader.",
    ),
]


def classify_failure(diagnostics: str) -> str:
    """Map worker diagnostic text to a human-readable error message."""
    text = diagnostics or ""
    for needle, message in FAILURE_RULES:
        if needle in text:
            return message

    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if lines:
        return lines[-1]
    return GENERIC_FAILURE
