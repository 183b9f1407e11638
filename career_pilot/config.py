import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

import yaml
from dotenv import load_dotenv

from browser_tools.logger import get_logger
from browser_tools.site_profile import SiteProfile

logger = get_logger("Config")

PACKAGE_DIR = Path(__file__).resolve().parent
DEFAULT_PROFILES_FILE = PACKAGE_DIR / "site_profiles.yaml"
DEFAULT_TEMPLATES_FILE = PACKAGE_DIR / "prompt_templates.yaml"

JOB_SOURCES = ("linkedin", "indeed", "hiringcafe")
LLM_PROVIDERS = ("chatgpt", "gemini", "claude")


def _env_bool(name, default=False):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_optional_bool(name):
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    data_dir: str = "data"
    profiles_dir: str = "profiles"
    artifacts_dir: str = "logs/debug_artifacts"
    site_profiles_file: str = str(DEFAULT_PROFILES_FILE)
    templates_file: str = str(DEFAULT_TEMPLATES_FILE)
    automation_disabled: bool = False
    headless: Optional[bool] = None
    llm_provider: str = "chatgpt"
    rate_limits: Dict[str, float] = field(default_factory=lambda: {"global": 4, "chatgpt": 2, "gemini": 2, "claude": 2})
    prompt_max_chars: int = 3500
    prompt_overlap: int = 200

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Settings":
        """Reads ``CAREER_PILOT_*`` variables (after loading ``.env``)."""
        load_dotenv(env_file)
        defaults = cls()
        rate_limits = dict(defaults.rate_limits)
        for key, value in os.environ.items():
            if key.startswith("CAREER_PILOT_RATE_LIMIT_"):
                target = key[len("CAREER_PILOT_RATE_LIMIT_"):].lower()
                try:
                    rate_limits[target] = float(value)
                except ValueError:
                    logger.warning(f"Ignoring non-numeric rate limit {key}={value}")

        provider = os.getenv("CAREER_PILOT_LLM_PROVIDER", defaults.llm_provider).lower()
        if provider not in LLM_PROVIDERS:
            logger.warning(f"Unknown LLM provider '{provider}', using {defaults.llm_provider}")
            provider = defaults.llm_provider

        return cls(
            data_dir=os.getenv("CAREER_PILOT_DATA_DIR", defaults.data_dir),
            profiles_dir=os.getenv("CAREER_PILOT_PROFILES_DIR", defaults.profiles_dir),
            artifacts_dir=os.getenv("CAREER_PILOT_ARTIFACTS_DIR", defaults.artifacts_dir),
            site_profiles_file=os.getenv("CAREER_PILOT_SITE_PROFILES", defaults.site_profiles_file),
            templates_file=os.getenv("CAREER_PILOT_PROMPT_TEMPLATES", defaults.templates_file),
            automation_disabled=_env_bool("CAREER_PILOT_DISABLE_AUTOMATION"),
            headless=_env_optional_bool("CAREER_PILOT_HEADLESS"),
            llm_provider=provider,
            rate_limits=rate_limits,
            prompt_max_chars=int(os.getenv("CAREER_PILOT_PROMPT_MAX_CHARS", defaults.prompt_max_chars)),
            prompt_overlap=int(os.getenv("CAREER_PILOT_PROMPT_OVERLAP", defaults.prompt_overlap)),
        )


def load_site_profiles(path=None, headless: Optional[bool] = None) -> Dict[str, SiteProfile]:
    """Parses the YAML site-profile file into ``{target_id: SiteProfile}``.

    ``headless`` (when not None) overrides every profile's browser setting.
    """
    path = Path(path or DEFAULT_PROFILES_FILE)
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    profiles = {}
    for target_id, data in (raw.get("targets") or {}).items():
        browser = dict(data.get("browser") or {})
        if headless is not None:
            browser["headless"] = headless
        data = dict(data, browser=browser)
        profiles[target_id] = SiteProfile.from_dict(target_id, data)
    logger.debug(f"Loaded {len(profiles)} site profiles from {path}")
    return profiles
