# backend/app/prompts.py

from typing import Dict, List

from .models import AnalysisRequest

SCORER_SYSTEM = """You are an X (Twitter) virality analyst. Analyze text and visual content to predict viral potential.

**Key Factors:**
- Text: content, tone, structure, topic
- Visuals: composition, quality, emotional impact, relevance
- Context: current X trends, audience appeal"""

IMAGES_PRESENT_NOTE = (
    "**CRITICAL**: Images provided - analyze visuals carefully and score "
    "media_boost > 0 based on quality."
)

RESPONSE_SCHEMA = """{
  "overall_score": number,           // 0-100
  "predicted_reach": "Low" | "Medium" | "High" | "Explosive",
  "factors": {
    "hook_strength": number,        // 0-100
    "clarity_and_structure": number,
    "emotional_intensity": number,
    "controversy_polarization": number,
    "novelty_originality": number,
    "shareability": number,
    "format_fit_for_x": number,     // line breaks, length, thread vs single, etc.
    "media_boost": number,          // visual quality, composition, relevance and impact of attached images; 0 when there are none
    "author_leverage": number,      // perceived audience size / influence
    "trend_alignment": number       // how much it seems to sit on top of current topics
  },
  "short_explanation": string,      // 1-2 sentences summary (mention visual elements if impactful)
  "detailed_reasons": string[],     // EXACTLY 3-4 most important bullet points only
  "improvement_suggestions": string[] // EXACTLY 3 most actionable and impactful suggestions
}"""


def media_boost_rule(image_count: int) -> str:
    if image_count > 0:
        return "media_boost MUST be > 0 (min 20-30 basic, 50-70 good, 80+ exceptional)"
    return "media_boost = 0 (no images)"


def build_system_prompt(image_count: int) -> str:
    if image_count > 0:
        return f"{SCORER_SYSTEM}\n\n{IMAGES_PRESENT_NOTE}"
    return SCORER_SYSTEM


def build_user_prompt(text: str, image_count: int) -> str:
    text_block = f"**Text:**\n{text}\n" if text else "**Text:** None (image-only post)\n"
    if image_count > 0:
        images_block = f"**Images:** {image_count} image(s) provided (analyze carefully)"
        visual_hint = " (include visual impact)"
        suggestion_hint = " (include visual if needed)"
    else:
        images_block = "**Images:** None"
        visual_hint = ""
        suggestion_hint = ""

    return f"""Analyze this post:

{text_block}
{images_block}

Return ONLY JSON in this schema:
{RESPONSE_SCHEMA}

**Rules:**
- Score 0-100: most posts 20-70, 80+ = viral potential
- {media_boost_rule(image_count)}
- detailed_reasons: Top 3-4 impactful points only{visual_hint}
- improvement_suggestions: Top 3 actionable suggestions{suggestion_hint}
- Output ONLY valid JSON, no markdown blocks or extra text"""


def build_messages(request: AnalysisRequest) -> List[Dict]:
    """System + user chat messages; image URLs ride on the user message."""
    image_count = len(request.image_urls)
    user_message: Dict = {
        "role": "user",
        "content": build_user_prompt(request.text, image_count),
    }
    if image_count:
        user_message["images"] = [{"url": url} for url in request.image_urls]
    return [
        {"role": "system", "content": build_system_prompt(image_count)},
        user_message,
    ]
