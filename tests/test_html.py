from __future__ import annotations

from jobingest.core.html import (
    decode_html_entities,
    ensure_markup,
    html_to_text,
    sanitize_html,
    strip_iframes,
    youtube_video_id,
)


def test_html_to_text_drops_invisible_content_and_collapses_whitespace() -> None:
    value = "<div><p>Hello <b>world</b></p>\n\n<script>alert(1)</script><style>p{}</style></div>"
    assert html_to_text(value) == "Hello world"
    assert html_to_text("<ul><li>One</li><li>Two</li></ul>") == "One Two"


def test_html_to_text_keeps_inline_markup_inside_words() -> None:
    assert html_to_text("<p>Ja<b>va</b>Script developer</p>") == "JavaScript developer"
    assert html_to_text("<p>Ship <b>it</b>.</p>") == "Ship it."
    assert html_to_text("<p>e<i>-</i>mail</p>") == "e-mail"


def test_html_to_text_separates_block_elements() -> None:
    assert html_to_text("<h3>About</h3><p>We build.</p>line<br>break<table><tr><td>a</td><td>b</td></tr></table>") == (
        "About We build. line break a b"
    )


def test_html_to_text_is_empty_for_empty_input() -> None:
    assert html_to_text("") == ""
    assert html_to_text(None) == ""


def test_html_to_text_truncates() -> None:
    assert len(html_to_text("a" * 30000)) == 20000
    assert html_to_text("<p>abcdefghijkl</p>", max_length=5) == "abcde"


def test_html_to_text_is_idempotent() -> None:
    for value in ["<p>Tom &amp; Jerry</p>", "plain text", "<div>a<br>b</div>"]:
        once = html_to_text(value)
        assert html_to_text(once) == once


def test_decode_html_entities_handles_numeric_named_and_nbsp() -> None:
    assert decode_html_entities("&#65;&#x42;&nbsp;&quot;&apos;&#39;") == "AB \"''"


def test_ensure_markup_decodes_only_escaped_payloads() -> None:
    assert ensure_markup("&lt;p&gt;Hi&lt;/p&gt;") == "<p>Hi</p>"
    assert ensure_markup("<p>&lt;b&gt; stays</p>") == "<p>&lt;b&gt; stays</p>"
    assert ensure_markup("Fish &amp; chips") == "Fish &amp; chips"


def test_strip_iframes_removes_blocks_case_insensitively() -> None:
    value = '<p>a</p><iframe src="x">\n</iframe><p>b</p><IFRAME src="y"></IFRAME>'
    assert strip_iframes(value) == "<p>a</p><p>b</p>"


def test_sanitize_html_removes_scripts_and_event_handlers() -> None:
    assert sanitize_html('<p onclick="x()">Hi<script>bad()</script></p>') == "<p>Hi</p>"
    assert sanitize_html("<custom><em>x</em></custom>") == "<em>x</em>"
    assert sanitize_html("") == ""


def test_sanitize_html_keeps_safe_links_only() -> None:
    safe = sanitize_html('<a href="https://acme.io" class="btn">Go</a>')
    assert 'href="https://acme.io"' in safe
    assert 'rel="noopener noreferrer"' in safe
    assert "class=" not in safe

    unsafe = sanitize_html('<a href="javascript:alert(1)">x</a>')
    assert "javascript" not in unsafe
    assert ">x</a>" in unsafe


def test_sanitize_html_rewrites_youtube_iframes_to_privacy_host() -> None:
    out = sanitize_html('<iframe src="https://www.youtube.com/embed/dQw4w9WgXcQ" width="560"></iframe>')
    assert 'src="https://www.youtube-nocookie.com/embed/dQw4w9WgXcQ"' in out
    assert "www.youtube.com" not in out
    assert "width" not in out


def test_sanitize_html_turns_other_iframes_into_links() -> None:
    out = sanitize_html('<iframe src="https://player.vimeo.com/video/1"></iframe>')
    assert "<iframe" not in out
    assert '<a href="https://player.vimeo.com/video/1"' in out
    assert ">https://player.vimeo.com/video/1</a>" in out

    assert sanitize_html('<iframe src="javascript:alert(1)"></iframe>') == ""


def test_youtube_video_id_recognizes_link_shapes() -> None:
    assert youtube_video_id("https://youtu.be/dQw4w9WgXcQ") == "dQw4w9WgXcQ"
    assert youtube_video_id("https://www.youtube.com/watch?v=dQw4w9WgXcQ") == "dQw4w9WgXcQ"
    assert youtube_video_id("//www.youtube.com/embed/dQw4w9WgXcQ?rel=0") == "dQw4w9WgXcQ"
    assert youtube_video_id("https://example.com/embed/dQw4w9WgXcQ") is None
