import html
import logging
import re
from typing import Dict, FrozenSet
from urllib.parse import urlparse

from bs4 import BeautifulSoup
from bs4.element import PreformattedString, Tag

logger = logging.getLogger(__name__)

ALLOWED_TAGS: FrozenSet[str] = frozenset({
    "p", "br", "hr",
    "h1", "h2", "h3", "h4", "h5", "h6",
    "strong", "b", "em", "i", "u",
    "ul", "ol", "li",
    "blockquote", "code", "pre",
    "table", "thead", "tbody", "tr", "th", "td",
    "a", "span", "div", "sup", "sub",
})

ALLOWED_ATTRIBUTES: Dict[str, FrozenSet[str]] = {
    "a": frozenset({"href", "title"}),
    "th": frozenset({"colspan", "rowspan"}),
    "td": frozenset({"colspan", "rowspan"}),
}

# Dropped together with everything inside them.
DROP_WITH_CONTENT: FrozenSet[str] = frozenset({
    "script", "style", "iframe", "frame", "frameset", "object", "embed",
    "applet", "form", "input", "button", "select", "textarea", "noscript",
    "template", "link", "meta", "base", "svg", "math", "title", "head",
})

ALLOWED_URL_SCHEMES: FrozenSet[str] = frozenset({"", "http", "https", "mailto"})

_URL_NOISE = re.compile(r"[\x00-\x20]+")


def _safe_url(value: str) -> bool:
    cleaned = _URL_NOISE.sub("", value or "")
    return urlparse(cleaned).scheme.lower() in ALLOWED_URL_SCHEMES


def _clean_attributes(tag: Tag) -> None:
    allowed = ALLOWED_ATTRIBUTES.get(tag.name, frozenset())
    for attr in list(tag.attrs):
        if attr not in allowed:
            del tag.attrs[attr]
        elif attr == "href" and not _safe_url(tag.attrs[attr]):
            del tag.attrs[attr]


def sanitize_html(markup) -> str:
    """
    Reduce untrusted report markup to a small set of formatting tags.

    Script-like elements are removed with their content, unknown tags are
    unwrapped so their text survives, and only whitelisted attributes stay.
    Running the output through again returns it unchanged.
    """
    if not markup:
        return ""
    markup = str(markup)

    try:
        soup = BeautifulSoup(markup, "html.parser")

        for node in soup.find_all(string=lambda s: isinstance(s, PreformattedString)):
            node.extract()

        for tag in soup.find_all(True):
            if tag.decomposed:
                continue
            name = (tag.name or "").lower()
            if name in DROP_WITH_CONTENT:
                tag.decompose()
            elif name not in ALLOWED_TAGS:
                tag.unwrap()
            else:
                _clean_attributes(tag)

        # Removed and unwrapped tags leave sibling text nodes behind; re-parse
        # so they are merged and collapsed exactly as the next pass would.
        return str(BeautifulSoup(str(soup), "html.parser"))
    except Exception:
        logger.warning("HTML sanitizing failed; falling back to escaped text", exc_info=True)
        return html.escape(markup)


def html_to_text(markup) -> str:
    """Plain text of a report, one block per line."""
    if not markup:
        return ""
    try:
        text = BeautifulSoup(str(markup), "html.parser").get_text("\n")
    except Exception:
        logger.warning("HTML to text conversion failed", exc_info=True)
        return str(markup)
    lines = [line.strip() for line in text.splitlines()]
    return "\n".join(line for line in lines if line)
