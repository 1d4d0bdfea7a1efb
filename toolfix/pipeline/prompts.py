"""Prompt templates for the diagnosis pipeline and follow-up chat."""

UNDERSTANDING_TEMPLATE = """User's description: {description}

Please identify the object and the issue or intent based on the user's input above. Respond in this format:
Object: <...>
Issue or Intent: <...>"""

# Used when only an image was supplied
IMAGE_ONLY_UNDERSTANDING_PROMPT = """Look at the photo and identify the object and the issue or intent it shows. Respond in this format:
Object: <...>
Issue or Intent: <...>"""

CAUSE_TEMPLATE = """You are a repair diagnosis assistant.

Given:
- Object: {object}
- Issue: {issue}

Infer the most likely technical or physical cause of the issue.
Return it as a 1-2 sentence explanation.
Be specific and practical."""

CLASSIFY_TEMPLATE = """Is this task a repair issue or a DIY project intent?

Task: {issue}

Respond with 'repair' or 'DIY'."""

REPAIR_INSTRUCTIONS_TEMPLATE = """You are a step-by-step repair guide generator.

Object: {object}
Issue: {issue}

Generate clear repair instructions. Include:
- Step-by-step process
- Required tools or materials
- Estimated difficulty (Easy, Moderate, Hard)
- Estimated repair time (in minutes)

Write plain text only. Do not use markdown: no headings, no bold or italics, no tables."""

STEPS_INSTRUCTIONS_TEMPLATE = """You are a repair assistant.

Object: {object}
Issue: {issue}

Generate basic, clear, step-by-step instructions on how to fix the problem. Do not include tools or time estimates.

Write plain text only. Do not use markdown: no headings, no bold or italics, no tables."""

TOOL_SUGGESTION_TEMPLATE = """You are a helpful product recommendation assistant for DIY and repair projects.

User skill level: {skill_level}
Tool preference: {tool_preference}
Tools the user already owns: {owned_tools}

Only recommend products the user does not already own. Never recommend a tool from the owned list above.
Avoid suggesting common household tools like screwdrivers, scissors, duct tape, tape measure, or pliers.
Match the suggestions to the user's skill level and tool preference.

Project Context: {issue}

Instructions: {instructions}

Return a product suggestion for each specific tool or part needed, one per line, in this format:
- Tool Name: Suggested product
Write plain text only. Do not use markdown."""

CHAT_SYSTEM_TEMPLATE = """You are a friendly repair assistant continuing a conversation about a repair or DIY task.

Object: {object}
Issue: {issue}
Likely cause: {likely_cause}
Task type: {task_type}
User skill level: {skill_level}
Tool preference: {tool_preference}
Tools the user already owns: {owned_tools}

Answer the user's follow-up questions about this task. Keep answers practical and concise.
Write plain text only. Do not use markdown."""

_UNSET_LABELS = {"unset": "not specified", "": "not specified", "no_preference": "no preference"}


def describe_setting(value: str) -> str:
    """Render a profile value for a prompt."""
    return _UNSET_LABELS.get(value, value)


def join_tools(tools) -> str:
    """Sorted, comma-separated tool list, or 'none'."""
    names = sorted(t for t in tools if t)
    return ", ".join(names) if names else "none"


def build_understanding_text(description: str | None) -> str:
    if description and description.strip():
        return UNDERSTANDING_TEMPLATE.format(description=description.strip())
    return IMAGE_ONLY_UNDERSTANDING_PROMPT


def build_cause_prompt(object_name: str, issue: str) -> str:
    return CAUSE_TEMPLATE.format(object=object_name, issue=issue)


def build_classify_prompt(issue: str) -> str:
    return CLASSIFY_TEMPLATE.format(issue=issue)


def build_instructions_prompt(object_name: str, issue: str, task_type: str) -> str:
    """Pick the instruction template.

    Only an exact "repair" gets the tools/time/difficulty template; every other
    task type, including "unknown" and unexpected model output, gets bare steps.
    """
    template = REPAIR_INSTRUCTIONS_TEMPLATE if task_type == "repair" else STEPS_INSTRUCTIONS_TEMPLATE
    return template.format(object=object_name, issue=issue)


def build_tool_prompt(skill_level: str, tool_preference: str, owned_tools, issue: str, instructions: str) -> str:
    return TOOL_SUGGESTION_TEMPLATE.format(
        skill_level=describe_setting(skill_level),
        tool_preference=describe_setting(tool_preference),
        owned_tools=join_tools(owned_tools),
        issue=issue,
        instructions=instructions or "(no instructions available)",
    )


def build_chat_system_prompt(context) -> str:
    """Render the system message for a follow-up turn from a frozen DiagnosisContext."""
    return CHAT_SYSTEM_TEMPLATE.format(
        object=context.object,
        issue=context.issue,
        likely_cause=context.likely_cause or "not determined",
        task_type=context.task_type,
        skill_level=describe_setting(context.skill_level),
        tool_preference=describe_setting(context.tool_preference),
        owned_tools=join_tools(context.owned_tools),
    )
