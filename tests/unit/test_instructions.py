"""Tests for promptcraft.core.instructions - message building and cleanup."""

from __future__ import annotations

from promptcraft.core.instructions import (
    HAPPY_TALK_SUFFIX,
    OUTPUT_ONLY_RULE,
    apply_format_template,
    build_system_message,
    build_user_message,
    clean_response,
    compression_instruction,
    estimate_token_count,
)


class TestUserMessage:
    def test_contains_prompt(self):
        message = build_user_message("a cat on a roof")
        assert message.endswith("Content to enhance: a cat on a roof")

    def test_strips_sentence_tags(self):
        message = build_user_message("<s>a cat</s>")
        assert "<s>" not in message
        assert "Content to enhance: a cat" in message

    def test_happy_talk_appended(self):
        assert HAPPY_TALK_SUFFIX in build_user_message("a cat", use_happy_talk=True)
        assert HAPPY_TALK_SUFFIX not in build_user_message("a cat")

    def test_compression_appended(self):
        message = build_user_message("a cat", compress_prompt=True, compression_level=3)
        assert message.endswith("Make the result a little more concise.")

    def test_compression_ignored_when_disabled(self):
        assert "concise" not in build_user_message("a cat", compression_level=9)

    def test_max_compression_phrase(self):
        assert compression_instruction(10) == "Make the result as concise as possible."
        assert compression_instruction(99) == "Make the result as concise as possible."


class TestSystemMessage:
    def test_includes_usage_rules(self):
        message = build_system_message("Be vivid.", "- Use commas")
        assert message.startswith("Be vivid.")
        assert "Usage rules:\n- Use commas" in message
        assert message.endswith(OUTPUT_ONLY_RULE)

    def test_omits_blank_rules(self):
        assert "Usage rules" not in build_system_message("Be vivid.", "  ")


class TestCleanResponse:
    def test_strips_quotes_and_label(self):
        assert clean_response('"Enhanced prompt: a cat, soft light"') == "a cat, soft light"

    def test_strips_template_label(self):
        assert clean_response("Enhanced Pipeline prompt: a | b") == "a | b"

    def test_strips_bold_markers(self):
        assert clean_response("**a cat** in the rain") == "a cat in the rain"

    def test_empty(self):
        assert clean_response(None) == ""
        assert clean_response("   ") == ""


class TestFormatTemplate:
    def test_substitutes_prompt_and_facets(self):
        rendered = apply_format_template("{pose} | {prompt} | {lighting}", "a knight", {"pose": "kneeling", "lighting": "dusk"})
        assert rendered == "kneeling | a knight | dusk"

    def test_drops_missing_placeholders(self):
        rendered = apply_format_template("{pose} | {prompt} | {lighting}", "a knight", {"pose": ""})
        assert rendered == "a knight"

    def test_list_values_joined(self):
        rendered = apply_format_template("{prompt}, {style}", "a knight", {"style": ["oil", "baroque"]})
        assert rendered == "a knight, oil, baroque"

    def test_empty_render_falls_back_to_prompt(self):
        assert apply_format_template("{missing}", "a knight") == "a knight"


def test_token_estimate():
    assert estimate_token_count("") == 0
    assert estimate_token_count("abcd") == 1
    assert estimate_token_count("abcde") == 2
