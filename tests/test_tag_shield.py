"""
Tests for template tag shielding.

Covers Handlebars tag discovery, escaping, raw blocks and the
shield/restore round trip.
"""

import pytest

from css_inliner.models.template import TagKind
from css_inliner.services.tag_shield import (
    extract_tags,
    handlebars,
    resolve_template,
    restore,
    scan_tags,
    shield,
)


def replace_tags(template: str) -> str:
    """Substitute ``$n`` for the n-th extracted tag."""
    result = template
    for index, tag in enumerate(handlebars(template)):
        result = result.replace(tag, f"${index + 1}")
    return result


# =============================================================================
# Tag discovery
# =============================================================================


@pytest.mark.parametrize(
    "template, expected",
    [
        ('<h1>{{message}}</h1><input value="{{time}}">', '<h1>$1</h1><input value="$2">'),
        ("{{#each articles.[10].[#comments]}}{{/each}}", "$1"),
        ("<h1>{{{raw}}}</h1>", "<h1>$1</h1>"),
        ('{{{link "See more..." href=story.url class="story"}}}', "$1"),
        ('{{outer-helper (inner-helper "abc") "def"}}', "$1"),
        ("{{{{raw}}}}{{escaped}}{{{{/raw}}}}", "$1{{escaped}}$2"),
        ('\\{{escaped "foo"}}', '\\{{escaped "foo"}}'),
        ("{{#if user}}<h1>Welcome back</h1>{{/if}}", "$1<h1>Welcome back</h1>$2"),
        ("{{#if user}}<h1>Welcome back</h1>{{else}}{{/if}}", "$1<h1>Welcome back</h1>$2"),
        ("{{#if user}}{{else}}Login{{/if}}", "$1Login$2"),
        ("{{#if user}}<h1>Welcome back</h1>{{else}}Login{{/if}}", "$1<h1>Welcome back</h1>$2Login$3"),
        ("{{#if user}}{{else}}{{/if}}", "$1"),
        ('<input value="{{#if user}}{{user}}{{else}}Login{{/if}}">', '<input value="$1$2$3Login$4">'),
        (
            '<input value="{{#if user}}{{format user "f.L"}}{{else}}Login{{/if}}">',
            '<input value="$1$2$3Login$4">',
        ),
        (
            "{{#each users as |user userId|}}\nId: {{userId}} Name: {{user.name}}\n{{/each}}",
            "$1\nId: $2 Name: $3\n$4",
        ),
        (
            "{{! This comment will not be in the output }}\n<!-- This comment will be in the output -->",
            "$1\n<!-- This comment will be in the output -->",
        ),
        ('{{> userMessage tagName="h1" }}', "$1"),
        ('{{userMessage\ntag="h1"\nname="assaf"}}', "$1"),
        ("{{userMessage single='}}' double=\"}}\" }}", "$1"),
        ('{{userMessage tag="h1"}}{{userMessage tag="h1"}}', "$1$1"),
        ("{{#foo}}a{{#bar}}b{{else}}c{{/bar}}d{{/foo}}e", "$1a$2b$3c$4d$5e"),
    ],
)
def test_handlebars_tags(template, expected):
    assert replace_tags(template) == expected


def test_long_comment_may_contain_closing_braces():
    template = "{{!-- {{#if}} is }} fine --}}<p></p>"
    assert extract_tags(template) == ["{{!-- {{#if}} is }} fine --}}"]


def test_short_comment_ignores_apostrophes():
    assert extract_tags("{{! don't }}x") == ["{{! don't }}"]


def test_unterminated_tag_is_left_as_text():
    template = "<p>{{ok}}</p>{{broken"
    result = shield(template)

    assert extract_tags(template) == ["{{ok}}"]
    assert result.shielded.endswith("</p>{{broken")


def test_double_backslash_does_not_escape():
    assert extract_tags("\\\\{{live}}") == ["{{live}}"]


def test_nested_raw_blocks_of_same_name():
    template = "{{{{raw}}}}{{{{raw}}}}x{{{{/raw}}}}{{y}}{{{{/raw}}}}{{z}}"
    assert extract_tags(template) == ["{{{{raw}}}}", "{{{{/raw}}}}", "{{z}}"]


def test_unterminated_raw_block_shields_open_tag_only():
    assert extract_tags("{{{{raw}}}}{{a}}") == ["{{{{raw}}}}", "{{a}}"]


def test_nested_tags_are_reported_outer_first():
    template = '{{bar tag="{{baz}}"}}<p>{{{link "x" title=(t "{{y}}")}}}</p>'
    assert extract_tags(template) == [
        '{{bar tag="{{baz}}"}}',
        "{{baz}}",
        '{{{link "x" title=(t "{{y}}")}}}',
        "{{y}}",
    ]


def test_nested_tags_get_own_ordinals():
    template = '{{bar tag="{{baz}}"}} {{baz}}'
    result = shield(template)
    outer, inner, repeat = result.tags

    assert (outer.index, inner.index, repeat.index) == (0, 1, 1)
    assert (inner.start, inner.end) == (11, 18)
    assert result.shielded == f"{outer.placeholder} {repeat.placeholder}"
    assert restore(result.shielded, result.tags) == template


def test_escaped_tags_are_reported_but_not_shielded():
    template = '\\{{escaped "foo"}} {{live}}'
    tags = scan_tags(template)

    assert [tag.kind for tag in tags] == [TagKind.escaped_literal, TagKind.expression]
    assert tags[0].text == '{{escaped "foo"}}'
    assert tags[0].start == 1
    assert [tag.text for tag in shield(template).tags] == ["{{live}}"]


def test_tag_kinds():
    template = "{{#if a}}{{b}}{{{c}}}{{> p}}{{! c }}{{else}}x{{/if}}{{&d}}"
    kinds = [tag.kind for tag in shield(template).tags]

    assert kinds == [
        TagKind.block_open,
        TagKind.expression,
        TagKind.unescaped_expression,
        TagKind.partial,
        TagKind.comment,
        TagKind.block_inverse,
        TagKind.block_close,
        TagKind.unescaped_expression,
    ]


def test_whitespace_control_markers():
    template = "{{~#if a~}}x{{~else~}}y{{~/if~}}"
    kinds = [tag.kind for tag in shield(template).tags]
    assert kinds == [TagKind.block_open, TagKind.block_inverse, TagKind.block_close]


# =============================================================================
# Shield / restore
# =============================================================================


@pytest.mark.parametrize(
    "html",
    [
        "",
        "<p>no tags</p>",
        '<div class="{{cls}}" style="{{style "foo"}}">{{#if a}}{{b}}{{/if}}</div>',
        "{{{{raw}}}}{{escaped}}{{{{/raw}}}}",
        '\\{{escaped "foo"}} {{live}}',
        "{{a}}{{a}}{{b}}",
        "<p>{{broken</p>",
    ],
)
def test_round_trip(html):
    result = shield(html)
    assert restore(result.shielded, result.tags) == html


def test_shielded_text_contains_no_tag_text():
    html = '<p title="{{title}}">{{#each items}}{{name}}{{/each}}</p>'
    result = shield(html)

    for tag in extract_tags(html):
        assert tag not in result.shielded
    assert "{{" not in result.shielded


def test_duplicate_tags_share_ordinal_and_placeholder():
    result = shield("{{a}} {{b}} {{a}}")
    first, second, third = result.tags

    assert first.index == third.index == 0
    assert second.index == 1
    assert first.placeholder == third.placeholder != second.placeholder


def test_placeholders_are_attribute_and_css_safe():
    result = shield('<p style="color: {{c}}">{{t}}</p>')
    for tag in result.tags:
        assert tag.placeholder == tag.placeholder.lower()
        assert all(ch.isalnum() or ch == "_" for ch in tag.placeholder)


def test_placeholder_never_collides_with_document_text():
    first = shield("{{a}}")
    html = f"{first.tags[0].placeholder} {{{{a}}}}"
    result = shield(html)

    assert f"__tpl_{result.nonce}_" not in html
    assert restore(result.shielded, result.tags) == html


def test_shield_result_unpacks():
    shielded, tags = shield("{{a}}")
    assert len(tags) == 1
    assert shielded == tags[0].placeholder


def test_custom_dialect_callable():
    def percent_tags(text):
        return ["{% if x %}", "{% endif %}"]

    html = "{% if x %}<p>x</p>{% endif %}"
    result = shield(html, percent_tags)

    assert "{%" not in result.shielded
    assert restore(result.shielded, result.tags) == html


def test_resolve_template():
    assert resolve_template(None) is None
    assert resolve_template("handlebars") is handlebars
    assert resolve_template("Handlebars") is handlebars
    with pytest.raises(ValueError):
        resolve_template("mustache-ish")
