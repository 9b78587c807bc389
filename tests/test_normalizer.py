"""Tests for the HTML/XML text normalizer."""

import pytest

from recap.normalizer import collapse_whitespace, decode_entities, normalize


def test_strips_tags_and_decodes_entities() -> None:
    markup = "<p>Tom &amp; Jerry&nbsp;&mdash; &#39;hi&#39;</p>"
    assert normalize(markup) == "Tom & Jerry - 'hi'"


def test_flattens_typographic_quotes() -> None:
    assert normalize("&ldquo;Quoted&rdquo; &lsquo;text&rsquo;&hellip;") == "\"Quoted\" 'text'..."


def test_drops_script_and_style_bodies() -> None:
    markup = "<style>p { color: red }</style><script>var x = 1;</script><b>Hello</b> world"
    assert normalize(markup) == "Hello world"


def test_malformed_markup_is_best_effort() -> None:
    assert normalize("Hello <b>world</b> <a href='https://exa") == "Hello world"
    assert normalize("Unclosed <!-- comment runs to the end") == "Unclosed"


def test_entity_without_semicolon_is_left_alone() -> None:
    assert decode_entities("Fish &amp chips") == "Fish &amp chips"
    assert decode_entities("&unknownentity;") == "&unknownentity;"


def test_empty_input() -> None:
    assert normalize("") == ""
    assert normalize(None) == ""


@pytest.mark.parametrize("text", [
    "Hello world",
    "Already clean text. With two sentences!",
    "spaced   out\n\ttext",
    "3 < 4 and 5 > 2",
    "Tom & Jerry",
])
def test_plain_text_is_unchanged(text: str) -> None:
    assert normalize(text) == collapse_whitespace(text)
