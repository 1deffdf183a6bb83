"""Tests for the template injector.

Tests cover:
- Tokenizing literals, tokens and token look-alikes
- Missing tokens reported all at once, nothing substituted
- Single-pass substitution (values are never rescanned)
- Invalid JSON after substitution
- Loading templates from disk
"""

from pathlib import Path

import pytest

from tradeflow.core.errors import InvalidArgument, MalformedOutput, MissingTemplateToken
from tradeflow.render.injector import Template, TokenRef, inject, tokenize
from tradeflow.render.placeholders import PlaceholderMap


def _map(**values: str) -> PlaceholderMap:
    return PlaceholderMap({f"<<<{name}>>>": value for name, value in values.items()})


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------


def test_tokenize_splits_literals_and_tokens():
    segments = tokenize('{"a": "<<<BUSINESS_NAME>>>", "b": "x<<<LABEL_URGENT_ID>>>y"}')

    assert segments == (
        '{"a": "',
        TokenRef("BUSINESS_NAME"),
        '", "b": "x',
        TokenRef("LABEL_URGENT_ID"),
        'y"}',
    )


@pytest.mark.parametrize(
    "text",
    [
        "<<<lower_case>>>",
        "<<<1STARTS_WITH_DIGIT>>>",
        "<<<HAS SPACE>>>",
        "<<<UNCLOSED",
        "no tokens at all",
        "",
    ],
)
def test_token_lookalikes_stay_literal(text: str):
    segments = tokenize(text)

    assert not any(isinstance(s, TokenRef) for s in segments)
    assert "".join(segments) == text


def test_extra_open_bracket_still_finds_token():
    assert tokenize("<<<<NAME>>>") == ("<", TokenRef("NAME"))


def test_template_token_names_are_distinct_in_order():
    template = Template.from_text('["<<<B>>>", "<<<A>>>", "<<<B>>>"]')

    assert template.token_names() == ["B", "A"]


# ---------------------------------------------------------------------------
# Injection
# ---------------------------------------------------------------------------


def test_inject_substitutes_and_parses():
    template = Template.from_text('{"name": "<<<BUSINESS_NAME>>>", "id": "<<<LABEL_URGENT_ID>>>"}')

    deployable = inject(template, _map(BUSINESS_NAME="Bright Spark", LABEL_URGENT_ID="F123"))

    assert deployable.document == {"name": "Bright Spark", "id": "F123"}
    assert deployable.template_name == "<inline>"
    assert deployable.tokens_used == ("BUSINESS_NAME", "LABEL_URGENT_ID")
    assert "<<<" not in deployable.text


def test_missing_tokens_reported_together():
    template = Template.from_text('["<<<A>>>", "<<<B>>>", "<<<C>>>"]', name="workflow.json")

    with pytest.raises(MissingTemplateToken) as exc_info:
        inject(template, _map(B="ok"))

    assert exc_info.value.tokens == ["A", "C"]
    assert "workflow.json" in str(exc_info.value)


def test_values_are_not_rescanned():
    """A value that looks like a token is output verbatim, not substituted again."""
    template = Template.from_text('["<<<A>>>", "<<<B>>>"]')

    deployable = inject(template, _map(A="<<<B>>>", B="second"))

    assert deployable.document == ["<<<B>>>", "second"]


def test_unused_placeholders_are_fine():
    template = Template.from_text('{"a": "<<<A>>>"}')

    assert inject(template, _map(A="1", B="2")).document == {"a": "1"}


def test_malformed_output_reports_position():
    template = Template.from_text('{\n  "a": <<<A>>>\n}')

    with pytest.raises(MalformedOutput) as exc_info:
        inject(template, _map(A="not json"))

    assert exc_info.value.line == 2
    assert exc_info.value.column is not None


def test_unescaped_value_would_break_json():
    """Raw (unsanitized) quotes break the document; the injector catches it."""
    template = Template.from_text('{"a": "<<<A>>>"}')

    with pytest.raises(MalformedOutput):
        inject(template, _map(A='say "hi"'))


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------


def test_template_from_file(tmp_path: Path):
    path = tmp_path / "custom.json"
    path.write_text('{"domain": "<<<BUSINESS_DOMAIN>>>"}', encoding="utf-8")

    template = Template.from_file(path)

    assert template.name == "custom.json"
    assert template.token_names() == ["BUSINESS_DOMAIN"]


def test_missing_template_file(tmp_path: Path):
    with pytest.raises(InvalidArgument, match="Cannot read template"):
        Template.from_file(tmp_path / "nope.json")
