"""Oracle prompt templates for codeframe generation."""

import json

# ============================================================================
# CODEFRAME GENERATION PROMPTS (one system prompt per question type)
# ============================================================================

_REPLY_FORMAT = """Return valid JSON in this format:
{
  "codeframe": [
    {
      "code": "C001",
      "label": "%(example_label)s",
      "definition": "%(example_definition)s",
      "examples": ["exact quotes from responses"],
      "parentCode": null
    }
  ],
  "codedResponses": [
    {
      "responseText": "the verbatim response, unchanged",
      "columnName": "the column the response came from",
      "columnIndex": 0,
      "codesAssigned": ["C001"]
    }
  ]
}

Code every response you were given, in the order given. Every id in
"codesAssigned" must be a "code" from your codeframe. Include one catch-all
code labelled "Other" for responses that fit nowhere else."""

UNAIDED_AWARENESS_SYSTEM = """You are a market research coding specialist. Respondents have listed brands they recall when asked for unaided awareness. Generate a codeframe where each code ID corresponds to a unique brand mentioned.

For each code, provide:
- A unique code ID (e.g., C001, C002, ...)
- The brand name as the label
- A clear definition
- Sample mentions from the responses

Then assign each response every brand code it mentions.

""" + _REPLY_FORMAT % {
    "example_label": "BrandName",
    "example_definition": "Mentions of BrandName in any form",
}

BRAND_DESCRIPTION_SYSTEM = """You are a market research coding specialist. Respondents have described a brand's attributes. Generate a codeframe where each code corresponds to a unique descriptive theme (e.g., "Customer Service", "Value", "Innovation").

For each code, provide:
- A unique code ID (e.g., C001, C002, ...)
- A concise label (under 3 words, title case)
- A clear definition of what this theme encompasses
- Sample responses illustrating this theme

Where themes share a broader idea, add an aggregate code for it and point
the detailed codes at it with "parentCode". Sentiment aggregates should be
labelled "Positive ..." or "Negative ...".

""" + _REPLY_FORMAT % {
    "example_label": "Customer Service",
    "example_definition": "Comments about staff helpfulness, service quality, and customer support",
}

MISCELLANEOUS_SYSTEM = """You are a market research coding specialist. Generate a comprehensive codeframe for miscellaneous open-ended responses across varied topics.

For each code, provide:
- A unique code ID (e.g., C001, C002, ...)
- A concise label (under 3 words, title case)
- A clear definition of what this theme encompasses
- Sample responses illustrating this theme

""" + _REPLY_FORMAT % {
    "example_label": "Theme Label",
    "example_definition": "Clear description of what this code captures",
}

QUESTION_TYPE_SYSTEM_PROMPTS = {
    "unaided-awareness": UNAIDED_AWARENESS_SYSTEM,
    "brand-description": BRAND_DESCRIPTION_SYSTEM,
    "miscellaneous": MISCELLANEOUS_SYSTEM,
}

CODEFRAME_GENERATION_PROMPT = """Here are {n_responses} responses to {question_description}, grouped by column.
The payload below is JSON with the question type and, for each column, its name, index and responses:

{payload}

Generate the codeframe for these responses and code every response."""

QUESTION_DESCRIPTIONS = {
    "unaided-awareness": "unaided brand awareness questions (each response lists one or more brands)",
    "brand-description": "questions where respondents described brand attributes",
    "miscellaneous": "various open-ended questions",
}

# ============================================================================
# CROSS-GROUP INSIGHTS
# ============================================================================

INSIGHTS_SYSTEM = """You are a senior market research analyst summarizing coded survey results.
Write a short, factual summary for a client. Do not invent numbers."""

INSIGHTS_PROMPT = """The following codeframes were generated for different question types in the same study.
Each line shows a code label and the percentage of that group's responses assigned to it.

{summaries}

Write 3-5 bullet points with the key cross-question insights."""


def system_prompt_for(question_type: str) -> str:
    """
    Return the system prompt for a question type.

    Unknown question types use the miscellaneous prompt, since the set of
    question types is open.
    """
    return QUESTION_TYPE_SYSTEM_PROMPTS.get(question_type, MISCELLANEOUS_SYSTEM)


def format_generation_prompt(payload: dict) -> str:
    """Render the user prompt for one question group's payload."""
    question_type = payload.get("questionType", "miscellaneous")
    n_responses = sum(len(c.get("responses", [])) for c in payload.get("columns", []))
    return CODEFRAME_GENERATION_PROMPT.format(
        n_responses=n_responses,
        question_description=QUESTION_DESCRIPTIONS.get(
            question_type, QUESTION_DESCRIPTIONS["miscellaneous"]
        ),
        payload=json.dumps(payload, indent=2, ensure_ascii=False),
    )


def format_codeframe_summary(question_type: str, codeframe, max_codes: int = 10) -> str:
    """Format the top codes of one codeframe for the insights prompt."""
    codes = sorted(
        (c for c in codeframe if not c.is_catch_all),
        key=lambda c: -c.count,
    )[:max_codes]
    lines = [f"{question_type} ({codeframe.total_responses} responses):"]
    for code in codes:
        lines.append(f"- {code.label}: {code.percentage:.1f}%")
    return "\n".join(lines)


def add_study_context(system_prompt: str, study_context: str | None) -> str:
    """Add study context to a system prompt if provided.

    Args:
        system_prompt: The base system prompt.
        study_context: Optional context about the study/dataset.

    Returns:
        The system prompt with context appended, or the original if no context.

    Example:
        >>> base = "You are a market research coding specialist."
        >>> context = "Wave 3 of a soft drink brand tracker, UK adults 18-65."
        >>> print(add_study_context(base, context))
        You are a market research coding specialist.

        STUDY CONTEXT:
        Wave 3 of a soft drink brand tracker, UK adults 18-65.
    """
    if not study_context:
        return system_prompt

    return f"""{system_prompt}

STUDY CONTEXT:
{study_context}"""
