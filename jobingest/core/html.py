"""HTML helpers shared by the provider adapters and the re-render path.

Two flavours of output exist: plain text for search and storage
(``html_to_text``) and an allow-listed HTML subset for display
(``sanitize_html``). Both are pure functions.
"""

from __future__ import annotations

import html as html_lib
import re
from urllib.parse import parse_qs, urlparse

from bs4 import BeautifulSoup, Tag

MAX_TEXT_LENGTH = 20000

_WHITESPACE_RE = re.compile(r"\s+")
_REAL_TAG_RE = re.compile(r"<\w+[^>]*>")
_ENCODED_TAG_RE = re.compile(r"&lt;\w+[^&]*&gt;")
_IFRAME_BLOCK_RE = re.compile(r"<iframe[\s\S]*?</iframe>", re.IGNORECASE)
_YOUTUBE_ID_RE = re.compile(r"^[A-Za-z0-9_-]{6,}$")

INVISIBLE_TAGS = ("script", "style", "noscript")
# text runs on either side of these render as separate words
BLOCK_TAGS = (
    "address", "article", "aside", "blockquote", "dd", "div", "dl", "dt", "footer", "h1", "h2", "h3", "h4",
    "h5", "h6", "header", "hr", "li", "main", "ol", "p", "pre", "section", "table", "td", "th", "tr", "ul",
)
DROPPED_TAGS = (*INVISIBLE_TAGS, "object", "embed", "form", "input", "button", "select", "textarea")
ALLOWED_TAGS = frozenset(
    {
        "a", "b", "blockquote", "br", "code", "div", "em", "h1", "h2", "h3", "h4", "h5", "h6",
        "hr", "i", "li", "ol", "p", "pre", "span", "strong", "sub", "sup", "table", "tbody",
        "td", "th", "thead", "tr", "u", "ul",
    }
)
ALLOWED_ATTRIBUTES: dict[str, frozenset[str]] = {
    "a": frozenset({"href", "title"}),
    "td": frozenset({"colspan", "rowspan"}),
    "th": frozenset({"colspan", "rowspan"}),
}
ALLOWED_LINK_SCHEMES = frozenset({"http", "https", "mailto"})
YOUTUBE_HOSTS = frozenset(
    {
        "youtube.com",
        "www.youtube.com",
        "m.youtube.com",
        "youtu.be",
        "youtube-nocookie.com",
        "www.youtube-nocookie.com",
    }
)
YOUTUBE_PRIVACY_EMBED = "https://www.youtube-nocookie.com/embed/{video_id}"


def html_to_text(value: str | None, *, max_length: int = MAX_TEXT_LENGTH) -> str:
    """Visible text of an HTML fragment, whitespace collapsed and length-bounded."""
    if not value:
        return ""
    soup = BeautifulSoup(f"<div>{value}</div>", "html.parser")
    container = soup.div
    for node in container.find_all(INVISIBLE_TAGS):
        node.decompose()
    for node in container.find_all("br"):
        node.replace_with(" ")
    for node in container.find_all(BLOCK_TAGS):
        node.insert_before(" ")
        node.insert_after(" ")
    text = _WHITESPACE_RE.sub(" ", container.get_text()).strip()
    return text[:max_length]


def decode_html_entities(value: str) -> str:
    """Decode named and numeric entities; non-breaking spaces become plain spaces."""
    return html_lib.unescape(value).replace("\xa0", " ")


def ensure_markup(value: str) -> str:
    """Decode once when a payload holds escaped tags (``&lt;p&gt;``) and no real ones."""
    if not _REAL_TAG_RE.search(value) and _ENCODED_TAG_RE.search(value):
        return decode_html_entities(value)
    return value


def strip_iframes(value: str) -> str:
    return _IFRAME_BLOCK_RE.sub("", value)


def sanitize_html(value: str | None) -> str:
    """Reduce untrusted HTML to the allow-listed subset used for display.

    Script-like and form elements are removed with their content, unknown
    tags are unwrapped, attributes are cut down to ``ALLOWED_ATTRIBUTES`` and
    links keep only http(s)/mailto targets. YouTube iframes are rewritten to
    the privacy-enhanced embed host; every other iframe becomes a plain link.
    """
    if not value:
        return ""
    soup = BeautifulSoup(value, "html.parser")
    for node in soup.find_all(DROPPED_TAGS):
        node.decompose()

    for tag in list(soup.find_all(True)):
        if tag.name == "iframe":
            continue
        if tag.name not in ALLOWED_TAGS:
            tag.unwrap()
            continue
        _filter_attributes(tag)

    for iframe in list(soup.find_all("iframe")):
        replacement = _rewrite_iframe(soup, iframe)
        if replacement is None:
            iframe.decompose()
        else:
            iframe.replace_with(replacement)
    return str(soup)


def youtube_video_id(src: str) -> str | None:
    """Video id of a YouTube embed/watch/short link, or None for any other URL."""
    if src.startswith("//"):
        src = f"https:{src}"
    try:
        parsed = urlparse(src)
    except ValueError:
        return None
    host = (parsed.hostname or "").lower()
    if host not in YOUTUBE_HOSTS:
        return None

    segments = [segment for segment in parsed.path.split("/") if segment]
    candidate: str | None = None
    if host == "youtu.be":
        candidate = segments[0] if segments else None
    elif len(segments) >= 2 and segments[0] in {"embed", "shorts", "v"}:
        candidate = segments[1]
    elif segments[:1] == ["watch"]:
        candidate = (parse_qs(parsed.query).get("v") or [None])[0]

    if candidate and _YOUTUBE_ID_RE.match(candidate):
        return candidate
    return None


def _filter_attributes(tag: Tag) -> None:
    allowed = ALLOWED_ATTRIBUTES.get(tag.name, frozenset())
    tag.attrs = {key: val for key, val in tag.attrs.items() if key in allowed}
    if tag.name != "a":
        return
    href = tag.get("href")
    if not isinstance(href, str) or not _is_safe_link(href):
        tag.attrs.pop("href", None)
        return
    tag["rel"] = "noopener noreferrer"
    tag["target"] = "_blank"


def _rewrite_iframe(soup: BeautifulSoup, iframe: Tag) -> Tag | None:
    src = iframe.get("src")
    if not isinstance(src, str) or not src.strip():
        return None
    src = src.strip()

    video_id = youtube_video_id(src)
    if video_id:
        return soup.new_tag(
            "iframe",
            attrs={
                "src": YOUTUBE_PRIVACY_EMBED.format(video_id=video_id),
                "loading": "lazy",
                "allowfullscreen": "",
            },
        )

    if src.startswith("//"):
        src = f"https:{src}"
    if not _is_safe_link(src) or src.startswith("mailto:"):
        return None
    link = soup.new_tag("a", attrs={"href": src, "rel": "noopener noreferrer", "target": "_blank"})
    link.string = src
    return link


def _is_safe_link(href: str) -> bool:
    try:
        scheme = urlparse(href.strip()).scheme.lower()
    except ValueError:
        return False
    return scheme in ALLOWED_LINK_SCHEMES
