"""Podcast-style trend summaries from the generative model."""

from __future__ import annotations

import json
import logging

from trendbits.errors import UpstreamAIError
from trendbits.services.ai_response import validate_summary
from trendbits.services.gemini import ai_client

logger = logging.getLogger(__name__)

SUMMARY_JSON_EXAMPLE = json.dumps(
    {
        "headline": "A short, compelling headline that captures the essence of the trend.",
        "summary": (
            "A podcast-style spoken summary of 10-15 sentences. It should be narrative, "
            "informative, and naturally flowing. Start with a hook or intro, provide "
            "background or current context, highlight major points, and conclude smoothly."
        ),
        "key_points": [
            "Bullet-point list of 4-6 key facts, developments, stats, or takeaways related to the trend."
        ],
        "call_to_action": (
            "A short, friendly wrap-up that invites the listener to stay informed, "
            "take action, or check back later."
        ),
        "references": [
            {
                "title": "Title of a news article covering the trend",
                "url": "https://www.reuters.com/...",
                "source": "Reuters",
                "date": "YYYY-MM-DD",
            }
        ],
    },
    indent=2,
)

SUMMARY_SYSTEM_INSTRUCTION = (
    "You are a trend analyst and podcast scriptwriter for an AI-powered news product. "
    "Your audience expects concise, insightful, and engaging audio summaries about specific "
    "global or niche trends: tech, politics, culture, finance, science, etc.\n\n"
    "Your goal is to produce podcast-ready structured summaries based on any trend keyword "
    "or phrase. Output should ONLY be a JSON object following the schema provided.\n\n"
    "Keep your voice clear, confident, and human-friendly. Don't speculate unless clearly "
    "necessary. Always provide context, recent developments, and potential implications.\n\n"
    "Never include code, markdown, or surrounding text. Only the raw JSON block."
)


def build_summary_prompt(topic: str) -> str:
    return (
        "You are an AI assistant for a trend analysis platform called TrendBits.\n\n"
        "Your task is to summarize any given trend in a narrative, engaging format suitable "
        "for conversion into a 1-3 minute podcast segment. Your output must strictly follow "
        "the JSON example below. headline, summary, key_points and call_to_action are "
        "required; references are optional and must only cite reputable news outlets.\n\n"
        f"Podcast Summary JSON Example:\n{SUMMARY_JSON_EXAMPLE}\n\n"
        "Your tone should be intelligent yet conversational. Imagine you're scripting a "
        "podcast for curious young professionals.\n\n"
        "Always include relevant dates, names, events, and background to explain what is "
        "happening, why it's important, and what's next in that field.\n\n"
        "DO NOT include explanations about what you're doing or any disclaimers.\n"
        "DO NOT wrap the JSON in markdown or add comments. Only pure JSON.\n\n"
        f"Trend to summarize:\n{topic.strip()}\n"
    )


def generate_summary(topic: str) -> dict:
    """Ask the model for a summary of ``topic`` and return the validated fields.

    Raises :class:`UpstreamAIError` when the model call fails or its output does
    not validate; nothing partial is ever returned.
    """
    text = ai_client().generate(
        build_summary_prompt(topic),
        system_instruction=SUMMARY_SYSTEM_INSTRUCTION,
        thinking_budget=0,
    )
    result = validate_summary(text)
    if not result.success:
        logger.warning("Rejected model summary for %r: %s", topic[:80], result.errors)
        raise UpstreamAIError(detail=f"Summary failed validation: {result.errors}")
    return result.data
