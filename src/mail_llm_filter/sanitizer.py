"""Email body to plain-text conversion.

Objective:
    Convert raw message bodies returned by mail backends (often HTML) into
    readable plain text for keyword scoring, summarization and prompting.

Responsibilities:
    - Strip non-content HTML elements (``<script>``, ``<style>``, ...).
    - Convert HTML to markdown-ish text to keep some structure.
    - Normalize whitespace while keeping paragraph breaks, which the
      summarizer's truncation stage uses as preferred cut points.

High-level call tree:
    - :func:`body_to_text`
        - :func:`html_to_markdown` (HTML input)
        - :func:`normalize_text`
"""

import re

from bs4 import BeautifulSoup
from markdownify import markdownify as md


def html_to_markdown(html_content: str) -> str:
    """Convert HTML to markdown-like plain text.

    Args:
        html_content: Raw HTML string.

    Returns:
        str: Markdown formatted text.
    """
    if not html_content:
        return ""

    soup = BeautifulSoup(html_content, "html.parser")
    for element in soup(["script", "style", "head", "meta", "link"]):
        element.decompose()

    return md(str(soup), heading_style="ATX")


def normalize_text(text: str) -> str:
    """Normalize whitespace and drop markup leftovers.

    Removes:
    - Remaining HTML tags
    - Markdown images; Markdown links are reduced to their text
    - Horizontal rules
    - Trailing spaces, runs of spaces and runs of blank lines

    Paragraph breaks (a single blank line) are preserved.

    Args:
        text: Raw text to normalize.

    Returns:
        str: Normalized text.
    """
    if not text:
        return ""

    text = text.replace("\r\n", "\n").replace("\r", "\n")

    text = re.sub(r"<[^>]*>", "", text)

    # Images before links: ![alt](src) would otherwise leave a "!alt".
    text = re.sub(r"!\[[^\]]*\]\([^)]*\)", "", text)
    text = re.sub(r"\[([^\]]*)\]\([^)]*\)", r"\1", text)

    text = re.sub(r"^\s*-{3,}\s*$", "", text, flags=re.MULTILINE)

    text = re.sub(r"[ \t\xa0]+", " ", text)
    text = re.sub(r" *\n *", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)

    return text.strip()


def body_to_text(body_content: str, content_type: str = "text") -> str:
    """Convert a message body to plain text.

    Args:
        body_content: Raw body content.
        content_type: ``"html"`` or ``"text"``.

    Returns:
        str: Plain text body.
    """
    if not body_content:
        return ""

    if content_type.lower() == "html":
        return normalize_text(html_to_markdown(body_content))
    return normalize_text(body_content)
