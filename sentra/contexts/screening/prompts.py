"""
Classifier prompt loading.

Prompts live in prompts.yaml next to this module (override with a custom
file). Each stage has a fixed system instruction; the user message is shared
and carries the condition plus the (truncated) resume text.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from omegaconf import OmegaConf

DEFAULT_PROMPTS_PATH = Path(__file__).parent / "prompts.yaml"

STAGE_BASIC_FIT = "basic_fit"
STAGE_NAME = "name"
STAGE_EXCEEDS = "exceeds"
STAGE_ELITE = "elite"

REQUIRED_STAGES = (STAGE_BASIC_FIT, STAGE_NAME, STAGE_EXCEEDS, STAGE_ELITE)

TRUNCATION_MARKER = "\n\n[TRUNCATED]"


def truncate_for_prompt(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + TRUNCATION_MARKER


@dataclass(frozen=True)
class PromptSet:
    """System prompts per stage plus the shared user template."""

    user_template: str
    system_prompts: Dict[str, str]

    def system(self, stage: str) -> str:
        return self.system_prompts[stage]

    def user(self, condition: str, resume_text: str) -> str:
        return self.user_template.format(condition=condition.strip(), resume=resume_text)


def load_prompts(prompts_path: Optional[Path] = None) -> PromptSet:
    """
    Load classifier prompts from YAML.

    Args:
        prompts_path: Optional YAML file (defaults to the bundled prompts.yaml)

    Returns:
        PromptSet

    Raises:
        ValueError: If a required stage or the user template is missing
    """
    config = OmegaConf.to_container(
        OmegaConf.load(prompts_path or DEFAULT_PROMPTS_PATH), resolve=True
    )

    user_template = config.get("user_template")
    if not user_template or "{resume}" not in user_template:
        raise ValueError("Prompt file must define user_template containing {resume}")

    stages = config.get("stages") or {}
    missing = [stage for stage in REQUIRED_STAGES if not (stages.get(stage) or {}).get("system")]
    if missing:
        raise ValueError(f"Prompt file missing system prompts for: {', '.join(missing)}")

    return PromptSet(
        user_template=user_template,
        system_prompts={stage: stages[stage]["system"].strip() for stage in REQUIRED_STAGES},
    )
