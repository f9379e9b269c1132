"""Prompt builders for guide generation."""

from __future__ import annotations

from lunara.catalog.loader import Intervention

TEXT_GUIDE_SYSTEM_PROMPT = (
    "You are a grounding, empowering wellness guide. Create detailed practice "
    "guides in JSON format. Be concise yet complete, validating yet actionable."
)

NARRATION_SYSTEM_PROMPT = (
    "You are a calming health guide. Create warm, encouraging narration for "
    "wellness practices."
)


def _phase_label(intervention: Intervention) -> str:
    phase = intervention.primary_phase
    return phase.value if phase is not None else "any"


def build_text_guide_prompt(intervention: Intervention) -> str:
    """Prompt asking for a JSON guide with one step per catalog instruction."""
    step_count = len(intervention.instructions)
    return f"""You are a compassionate, grounding health guide specializing in women's wellness and menstrual cycle support.

Create a detailed, empowering practice guide for: "{intervention.title}"

Context:
- Practice Description: {intervention.description}
- Duration: {intervention.duration_minutes} minutes
- Location: {intervention.location}
- Phase: {_phase_label(intervention)}
- Scientific Basis: {intervention.research_citation}

Generate a warm, grounding guide with:
1. A brief introduction (1-2 sentences) that validates their experience and sets an empowering tone
2. {step_count} detailed steps that are:
   - Clear and specific with timing
   - Include breathing cues where appropriate
   - Offer gentle physiological explanations
   - Use encouraging, supportive language
3. Optional modification or variation
4. A reflective closing question that promotes self-awareness

Tone: Grounding, empowering, gentle, evidence-based
Length: Concise yet complete - no fluff, every word serves the practice

Return as JSON with this structure:
{{
  "introduction": "brief empowering intro",
  "steps": [
    {{
      "instruction": "clear detailed step",
      "duration_seconds": 30,
      "breathing_cue": "optional breathing guidance",
      "physiological_explanation": "brief why this helps"
    }}
  ],
  "modification": "optional modification tip",
  "reflection_question": "grounding reflection question"
}}"""


def build_narration_prompt(intervention: Intervention) -> str:
    """Prompt asking for a single flowing spoken script."""
    return f"""You are a health behavior guide creating a calming, encouraging narrated practice guide.

Create a spoken guide for: "{intervention.title}"
Description: {intervention.description}

Generate a natural, conversational script that:
1. Warmly introduces the practice (15 seconds)
2. Guides through each step with clear, calming instructions
3. Includes breathing cues and physiological explanations
4. Ends with a gentle reflection question

Keep tone warm, encouraging, and supportive. Total duration should be about {intervention.duration_minutes} minutes.

Return the narration as a single flowing script."""
