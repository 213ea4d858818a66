"""
Scenario prompt templates.
"""

from typing import Dict, Optional

DEFAULT_SCENARIO = "casual"

SCENARIO_PROMPTS: Dict[str, str] = {
    "photoshoot": "Professional portrait photography session with studio lighting and modern backdrop",
    "nature": "Outdoor nature setting with natural lighting and scenic landscape background",
    "gym": "Athletic fitness setting with gym equipment and dynamic lighting",
    "beach": "Beach setting with golden hour lighting and ocean backdrop",
    "rooftop": "Urban rooftop setting with city skyline and sunset lighting",
    "casual": "Casual everyday setting with natural lighting and comfortable environment",
}

QUALITY_SUFFIX = "Create a photorealistic, high-quality image with professional composition."


def build_prompt(scenario: str, custom_prompt: Optional[str] = None) -> str:
    """
    Resolve the synthesis prompt for a scenario.

    A non-empty custom prompt replaces the scenario template entirely.
    Unknown scenarios fall back to the casual template.
    """
    if custom_prompt and custom_prompt.strip():
        return custom_prompt.strip()

    base = SCENARIO_PROMPTS.get(scenario, SCENARIO_PROMPTS[DEFAULT_SCENARIO])
    return f"{base}. {QUALITY_SUFFIX}"


def identity_prompt(scenario_prompt: str) -> str:
    """Wrap a scenario prompt with identity-preservation instructions."""
    return (
        f"Transform the person in this image into the following scenario: {scenario_prompt}\n\n"
        "Maintain the person's facial features and appearance while adapting them "
        "to the new environment and lighting conditions."
    )


__all__ = ["SCENARIO_PROMPTS", "DEFAULT_SCENARIO", "build_prompt", "identity_prompt"]
