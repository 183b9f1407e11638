import logging
import os
import datetime
from pathlib import Path

# Paths
LOGS_DIR = Path(os.getenv("CAREER_PILOT_LOG_DIR", "logs"))
ARTIFACTS_DIR = Path(os.getenv("CAREER_PILOT_ARTIFACTS_DIR", str(LOGS_DIR / "debug_artifacts")))

ROOT_LOGGER_NAME = "CareerPilot"


def setup_logger(name=ROOT_LOGGER_NAME):
    """Sets up a centralized logger for the application."""
    LOGS_DIR.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)

    # Avoid duplicate handlers
    if not logger.handlers:
        # File Handler
        fh = logging.FileHandler(LOGS_DIR / "app.log", encoding="utf-8")
        fh.setLevel(logging.DEBUG)

        # Console Handler
        ch = logging.StreamHandler()
        ch.setLevel(getattr(logging, os.getenv("CAREER_PILOT_LOG_LEVEL", "INFO").upper(), logging.INFO))

        # Formatter
        formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        fh.setFormatter(formatter)
        ch.setFormatter(formatter)

        logger.addHandler(fh)
        logger.addHandler(ch)

    return logger


logger = setup_logger()


def get_logger(name):
    """Child logger of the application logger, e.g. ``CareerPilot.SessionManager``."""
    return logger.getChild(name)


def save_debug_artifact(page, name_prefix="error", artifacts_dir=None):
    """Saves a screenshot and HTML dump for debugging automation failures.

    Best-effort: every failure is logged and swallowed. Returns a dict with the
    ``screenshotPath`` and ``htmlPath`` that were actually written (``None`` for
    the ones that failed).
    """
    target_dir = Path(artifacts_dir) if artifacts_dir else ARTIFACTS_DIR
    artifacts = {"screenshotPath": None, "htmlPath": None}
    if page is None:
        return artifacts

    try:
        target_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error(f"Failed to create artifacts dir {target_dir}: {e}")
        return artifacts

    timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S_%f")
    base_name = f"{name_prefix}_{timestamp}"

    # Save Screenshot
    try:
        screenshot_path = target_dir / f"{base_name}.png"
        page.screenshot(path=str(screenshot_path), full_page=True)
        artifacts["screenshotPath"] = str(screenshot_path)
        logger.debug(f"Saved screenshot to {screenshot_path}")
    except Exception as e:
        logger.error(f"Failed to save screenshot: {e}")

    # Save HTML
    try:
        html_path = target_dir / f"{base_name}.html"
        with open(html_path, "w", encoding="utf-8") as f:
            f.write(page.content())
        artifacts["htmlPath"] = str(html_path)
        logger.debug(f"Saved HTML dump to {html_path}")
    except Exception as e:
        logger.error(f"Failed to save HTML dump: {e}")

    return artifacts
