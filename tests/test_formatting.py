"""Tests for Telegram HTML rendering helpers."""

from qtweet.formatting import html_to_text, markdown_links_to_html, render_record_html, split_message
from qtweet.models import DisplayRecord


class TestMarkdownLinks:
    def test_links_converted(self):
        text = "hi [@Bob](https://twitter.com/bob)!"
        assert markdown_links_to_html(text) == 'hi <a href="https://twitter.com/bob">@Bob</a>!'

    def test_other_text_escaped(self):
        assert markdown_links_to_html("a < b & *c*") == "a &lt; b &amp; *c*"

    def test_url_attribute_escaped(self):
        html = markdown_links_to_html('[x](https://e.com/?a=1&b="2")')
        assert html == '<a href="https://e.com/?a=1&amp;b=&quot;2&quot;">x</a>'

    def test_empty(self):
        assert markdown_links_to_html("") == ""


class TestRenderRecord:
    def _record(self, description):
        return DisplayRecord(
            author_name="Al <3 (@al)",
            author_url="https://twitter.com/al/status/1",
            thumbnail_url=None,
            color=None,
            description=description,
        )

    def test_author_and_body(self):
        html = render_record_html(self._record("  hello  "))
        assert html == '<b><a href="https://twitter.com/al/status/1">Al &lt;3 (@al)</a></b>\n\nhello'

    def test_empty_body(self):
        html = render_record_html(self._record(""))
        assert html.endswith("</a></b>")


class TestSplitMessage:
    def test_short_message_untouched(self):
        assert split_message("hello", 10) == ["hello"]

    def test_splits_at_newline(self):
        assert split_message("aaaa\nbbbb\ncccc", 10) == ["aaaa\nbbbb", "cccc"]

    def test_splits_at_space(self):
        assert split_message("aaaa bbbb cccc", 10) == ["aaaa bbbb", "cccc"]

    def test_hard_cut(self):
        assert split_message("a" * 25, 10) == ["a" * 10, "a" * 10, "a" * 5]

    def test_no_empty_trailing_chunk(self):
        assert split_message("a" * 10 + "   ", 10) == ["a" * 10]


def test_html_to_text():
    assert html_to_text('<b><a href="https://x">A &amp; B</a></b> &lt;3') == "A & B <3"
