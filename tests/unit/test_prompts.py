"""Unit tests for prompt templates."""

import pytest

from toolfix.pipeline.prompts import (
    build_chat_system_prompt,
    build_instructions_prompt,
    build_tool_prompt,
    build_understanding_text,
    join_tools,
)


class TestInstructionTemplateSelection:

    def test_repair_gets_tools_and_time(self):
        prompt = build_instructions_prompt("Drill", "Won't spin", "repair")
        assert "Estimated repair time" in prompt
        assert "Required tools or materials" in prompt

    @pytest.mark.parametrize("task_type", ["diy", "unknown", "Repair", "repair.", "it is a repair"])
    def test_everything_else_gets_bare_steps(self, task_type):
        prompt = build_instructions_prompt("Drill", "Won't spin", task_type)
        assert "Do not include tools or time estimates" in prompt
        assert "Estimated repair time" not in prompt

    @pytest.mark.parametrize("task_type", ["repair", "diy"])
    def test_both_templates_forbid_markdown(self, task_type):
        assert "Do not use markdown" in build_instructions_prompt("Drill", "x", task_type)


class TestToolPrompt:

    def test_embeds_user_context(self):
        prompt = build_tool_prompt("expert", "manual", {"Saw", "Hammer"}, "Build a shelf", "1. Measure")
        assert "User skill level: expert" in prompt
        assert "Tool preference: manual" in prompt
        assert "Tools the user already owns: Hammer, Saw" in prompt
        assert "Project Context: Build a shelf" in prompt
        assert "Instructions: 1. Measure" in prompt
        assert "Do not use markdown" in prompt

    def test_unset_values_rendered_readably(self):
        prompt = build_tool_prompt("unset", "no_preference", frozenset(), "x", "")
        assert "User skill level: not specified" in prompt
        assert "Tool preference: no preference" in prompt
        assert "Tools the user already owns: none" in prompt


class TestUnderstandingText:

    def test_text_description_embedded(self):
        text = build_understanding_text("My drill won't spin")
        assert text.startswith("User's description: My drill won't spin")
        assert "Issue or Intent: <...>" in text

    def test_image_only_prompt(self):
        assert "photo" in build_understanding_text(None)


def test_join_tools_sorted():
    assert join_tools(["b", "a", ""]) == "a, b"


def test_chat_system_prompt(diagnosis_context):
    prompt = build_chat_system_prompt(diagnosis_context)
    assert "Object: Drill" in prompt
    assert "Likely cause: Worn brushes." in prompt
    assert "Hammer, Multimeter" in prompt
