"""
Tests for the sanitizer module.
"""

from src.mail_llm_filter.sanitizer import body_to_text, html_to_markdown, normalize_text


class TestHtmlToMarkdown:
    """Tests for html_to_markdown function."""

    def test_empty_string(self):
        """Test with empty input."""
        assert html_to_markdown("") == ""

    def test_simple_html(self):
        """Test with simple HTML content."""
        result = html_to_markdown("<p>Hello <strong>World</strong></p>")
        assert "Hello" in result
        assert "World" in result

    def test_removes_script_and_style(self):
        """Test that non-content elements are removed."""
        html = "<style>p {color: red}</style><p>Content</p><script>alert('xss')</script>"
        result = html_to_markdown(html)
        assert "alert" not in result
        assert "color" not in result
        assert "Content" in result


class TestNormalizeText:
    """Tests for normalize_text function."""

    def test_empty_string(self):
        assert normalize_text("") == ""

    def test_removes_leftover_tags(self):
        result = normalize_text("<div>Hello</div> <span>World</span>")
        assert result == "Hello World"

    def test_links_keep_text_and_images_are_dropped(self):
        result = normalize_text("See [the offer](https://x.example) ![logo](logo.png)")
        assert result == "See the offer"

    def test_keeps_single_paragraph_break(self):
        result = normalize_text("First\r\n\r\n\r\n\r\nSecond   line \n  third")
        assert result == "First\n\nSecond line\nthird"

    def test_removes_horizontal_rules(self):
        assert "---" not in normalize_text("above\n-----\nbelow")


class TestBodyToText:
    """Tests for body_to_text function."""

    def test_plain_text_is_normalized(self):
        assert body_to_text("  hello   world  ", "text") == "hello world"

    def test_html_is_converted(self):
        result = body_to_text("<p>Claim your <b>prize</b></p><p>now</p>", "HTML")
        assert "<" not in result
        assert "Claim your" in result
        assert "prize" in result
        assert "now" in result

    def test_empty_body(self):
        assert body_to_text("", "html") == ""
