"""
Screener configuration.

Settings come from environment variables (optionally via a .env file) with an
optional YAML file layered on top. YAML keys match the ScreenerSettings field
names; nested ``stage_mappings`` maps tier labels to ATS stage ids.

Examples:
    >>> settings = ScreenerSettings.from_env()
    >>> settings = load_settings(Path("configs/screener.yaml"))
"""

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from omegaconf import OmegaConf

DEFAULT_CONDITION = (
    "Candidate should have 5+ years of experience working as a software engineer."
)

# Condition length limits (bulk screening vs. single-job screening)
CONDITION_MAX_BULK = 1000
CONDITION_MAX_SINGLE = 255

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_str(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    return value if value not in (None, "") else default


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    value = os.getenv(name)
    try:
        parsed = int(value) if value not in (None, "") else default
    except ValueError:
        parsed = default
    return max(minimum, parsed)


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    try:
        return float(value) if value not in (None, "") else default
    except ValueError:
        return default


@dataclass
class ScreenerSettings:
    """
    Runtime settings for the screening service.

    Attributes:
        resume_dir: Watched directory containing resume PDFs
        manifest_path: CSV manifest (filename,label)
        rejected_path: JSON file tracking rejected candidates
        logs_path: Directory for loguru session logs
        pipeline_events_file: JSON Lines pipeline event log
        condition: Initial screening condition
        max_concurrency: Analysis jobs allowed to run at once
        max_attempts: Failures tolerated per file before it is marked failed
        strict_mode: Re-check Stage 1 passes with a second independent call
        tiering_enabled: Run Stage 2/3 after a Stage 1 pass
        min_text_chars: Minimum meaningful characters before the LLM is called
        max_resume_chars: Resume text truncation limit for prompts
        llm_provider: "openai" or "anthropic"
        llm_model: Model override (None = provider default)
        llm_timeout_seconds: Per-request timeout for LLM calls
        auto_archive_rejected: Archive rejected candidates in the ATS
        archive_reason_id: Optional ATS archive reason
        watch_stability_seconds: Quiescence window before a file counts as written
        watch_poll_seconds: Directory scan interval
        keepalive_seconds: Interval between keep-alive pings on event streams
        stage_mappings: Tier label -> ATS stage id for passing candidates
    """

    resume_dir: Path = Path("dataset/resumes")
    manifest_path: Path = Path("dataset/manifest.csv")
    rejected_path: Path = Path("dataset/rejected_candidates.json")
    logs_path: Path = Path("outs/logs")
    pipeline_events_file: Path = Path("outs/logs/pipeline_events.log")
    condition: str = DEFAULT_CONDITION
    max_concurrency: int = 5
    max_attempts: int = 3
    strict_mode: bool = False
    tiering_enabled: bool = True
    min_text_chars: int = 100
    max_resume_chars: int = 20_000
    llm_provider: str = "openai"
    llm_model: Optional[str] = None
    llm_timeout_seconds: float = 60.0
    auto_archive_rejected: bool = False
    archive_reason_id: Optional[str] = None
    watch_stability_seconds: float = 0.75
    watch_poll_seconds: float = 0.25
    keepalive_seconds: float = 25.0
    stage_mappings: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "ScreenerSettings":
        """Build settings from environment variables (loading .env first)."""
        load_dotenv(env_file)
        defaults = cls()
        return cls(
            resume_dir=Path(_env_str("RESUME_DIR", str(defaults.resume_dir))),
            manifest_path=Path(_env_str("MANIFEST_PATH", str(defaults.manifest_path))),
            rejected_path=Path(_env_str("REJECTED_PATH", str(defaults.rejected_path))),
            logs_path=Path(_env_str("LOGS_PATH", str(defaults.logs_path))),
            pipeline_events_file=Path(
                _env_str("PIPELINE_EVENTS_FILE", str(defaults.pipeline_events_file))
            ),
            condition=_env_str("ANALYSIS_CONDITION", defaults.condition),
            max_concurrency=_env_int("ANALYSIS_MAX_CONCURRENCY", defaults.max_concurrency, 1),
            max_attempts=_env_int("ANALYSIS_MAX_ATTEMPTS", defaults.max_attempts, 1),
            strict_mode=_env_bool("STRICT_MODE", defaults.strict_mode),
            tiering_enabled=_env_bool("TIERING_ENABLED", defaults.tiering_enabled),
            min_text_chars=_env_int("MIN_TEXT_CHARS", defaults.min_text_chars),
            max_resume_chars=_env_int("MAX_RESUME_CHARS", defaults.max_resume_chars, 1),
            llm_provider=_env_str("LLM_PROVIDER", defaults.llm_provider).lower(),
            llm_model=_env_str("LLM_MODEL", defaults.llm_model),
            llm_timeout_seconds=_env_float("LLM_TIMEOUT_SECONDS", defaults.llm_timeout_seconds),
            auto_archive_rejected=_env_bool(
                "AUTO_ARCHIVE_REJECTED", defaults.auto_archive_rejected
            ),
            archive_reason_id=_env_str("ASHBY_ARCHIVE_REASON_ID", defaults.archive_reason_id),
            watch_stability_seconds=_env_float(
                "WATCH_STABILITY_SECONDS", defaults.watch_stability_seconds
            ),
            watch_poll_seconds=_env_float("WATCH_POLL_SECONDS", defaults.watch_poll_seconds),
            keepalive_seconds=_env_float("KEEPALIVE_SECONDS", defaults.keepalive_seconds),
        )

    def with_overrides(self, overrides: Dict[str, Any]) -> "ScreenerSettings":
        """
        Return a copy with overrides applied.

        Path-typed fields are coerced from strings.

        Raises:
            ValueError: If an override names an unknown setting
        """
        known = {f.name: f for f in fields(self)}
        unknown = set(overrides) - set(known)
        if unknown:
            raise ValueError(f"Unknown settings: {', '.join(sorted(unknown))}")

        coerced = {}
        for key, value in overrides.items():
            current = getattr(self, key)
            if isinstance(current, Path) and value is not None:
                value = Path(value)
            elif key == "stage_mappings":
                value = {str(k): str(v) for k, v in (value or {}).items()}
            coerced[key] = value
        return replace(self, **coerced)


def load_settings(config_path: Optional[Path] = None, env_file: Optional[Path] = None) -> ScreenerSettings:
    """
    Load settings from the environment, then apply a YAML file if given.

    Args:
        config_path: Optional YAML file with setting overrides
        env_file: Optional .env file (default: search from cwd)

    Returns:
        ScreenerSettings instance
    """
    settings = ScreenerSettings.from_env(env_file)
    if config_path is None:
        config_path = _env_str("SCREENER_CONFIG", None)
        config_path = Path(config_path) if config_path else None
    if config_path is None:
        return settings

    overrides = OmegaConf.to_container(OmegaConf.load(config_path), resolve=True) or {}
    return settings.with_overrides(overrides)
