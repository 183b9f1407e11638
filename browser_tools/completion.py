"""Completion and blocking-state detection for remote web UIs.

Chat front-ends stream their answers and expose no "done" event, so completion
is inferred by polling DOM activity indicators until they stay absent for one
settle cycle. Blocking states (login wall, CAPTCHA, anti-bot challenge,
off-target redirect) are checked separately by :meth:`CompletionDetector.handle_errors`.
"""
import random
import time
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import urlparse

from browser_tools.errors import CompletionTimeout
from browser_tools.human_actions import jitter_mouse
from browser_tools.locators import any_visible, resolve
from browser_tools.logger import get_logger, save_debug_artifact

logger = get_logger("CompletionDetector")

POLLING = "polling"
STALLED = "stalled"
COMPLETED = "completed"
TIMED_OUT = "timed_out"

REASON_NONE = "none"
REASON_REDIRECTED = "redirected"
REASON_LOGIN = "login-required"
REASON_CAPTCHA = "captcha"
REASON_CLOUDFLARE = "cloudflare"

ACTIVITY_ROLES = ("generatingIndicators", "typingIndicators", "spinnerIndicators")

SETTLE_DELAY = 0.6
POLL_INTERVAL = 0.75


@dataclass
class CompletionResult:
    completed: bool
    heuristics_observed: List[str] = field(default_factory=list)
    elapsed_ms: int = 0

    def to_dict(self):
        return {
            "completed": self.completed,
            "heuristicsObserved": list(self.heuristics_observed),
            "elapsedMs": self.elapsed_ms,
        }


@dataclass
class ErrorState:
    recovered: bool
    requires_user: bool = False
    reason: str = REASON_NONE
    artifacts: Optional[dict] = None

    def to_dict(self):
        data = {"recovered": self.recovered, "requiresUser": self.requires_user, "reason": self.reason}
        if self.artifacts:
            data["artifacts"] = self.artifacts
        return data


def is_on_target(url, base_url):
    """True while ``url`` is still under the origin of ``base_url`` (subdomains included)."""
    if not url:
        return False
    expected = urlparse(base_url)
    current = urlparse(url)
    if expected.scheme == "file":
        return current.scheme == "file" and current.path.startswith(expected.path.rsplit("/", 1)[0])
    host = (current.hostname or "").lower()
    expected_host = (expected.hostname or "").lower()
    if not expected_host:
        return True
    return host == expected_host or host.endswith("." + expected_host)


class CompletionDetector:
    def __init__(self, page, profile, artifacts_dir=None, sleep=time.sleep, clock=time.monotonic,
                 settle_delay=SETTLE_DELAY, poll_interval=POLL_INTERVAL):
        self.page = page
        self.profile = profile
        self.catalog = profile.selectors
        self.artifacts_dir = artifacts_dir
        self._sleep = sleep
        self._clock = clock
        self.settle_delay = settle_delay
        self.poll_interval = poll_interval
        self.state = POLLING

    # ------------------------------------------------------------------
    # Completion polling
    # ------------------------------------------------------------------
    def _activity_groups(self, stall_heuristics):
        groups = [(role, self.catalog.get(role)) for role in ACTIVITY_ROLES]
        extra = tuple(self.profile.additional_stall_indicators) + tuple(stall_heuristics or ())
        if extra:
            groups.append(("stallHeuristics", extra))
        return groups

    def _active_signature(self, groups):
        return tuple(name for name, candidates in groups if any_visible(self.page, candidates))

    def await_completion(self, timeout=None, stall_heuristics=None):
        """Polls until the remote UI goes idle. Raises CompletionTimeout if it never does."""
        timeout = self.profile.completion_timeout if timeout is None else timeout
        groups = self._activity_groups(stall_heuristics)
        stop_candidates = self.catalog.get("stopButton")
        stall_after = self.profile.anti_stall.stall_after

        observed = []
        start = self._clock()
        last_update = start
        last_signature = None
        self.state = POLLING

        while self._clock() - start < timeout:
            signature = self._active_signature(groups)
            if not signature:
                self._sleep(self.settle_delay)
                # idle must hold on two consecutive checks
                signature = self._active_signature(groups)
                stop_visible = any_visible(self.page, stop_candidates)
                if not signature and not stop_visible:
                    self.state = COMPLETED
                    elapsed_ms = int((self._clock() - start) * 1000)
                    logger.debug(f"[{self.profile.target_id}] completed after {elapsed_ms}ms ({observed})")
                    return CompletionResult(True, observed, elapsed_ms)
                if stop_visible:
                    signature = signature + ("stopButton",)

            for name in signature:
                if name not in observed:
                    observed.append(name)

            now = self._clock()
            if signature != last_signature:
                last_signature = signature
                last_update = now
            elif now - last_update > stall_after:
                self.state = STALLED
                logger.info(f"[{self.profile.target_id}] No UI change for {now - last_update:.0f}s, nudging")
                self.nudge()
                if "anti-stall" not in observed:
                    observed.append("anti-stall")
                last_update = self._clock()
                self.state = POLLING

            self._sleep(self.poll_interval)

        self.state = TIMED_OUT
        artifacts = save_debug_artifact(self.page, f"{self.profile.target_id}_timeout", self.artifacts_dir)
        logger.error(f"[{self.profile.target_id}] Response did not complete within {timeout}s")
        raise CompletionTimeout(self.profile.target_id, timeout, observed, artifacts)

    def nudge(self):
        """Harmless interaction so the remote UI does not consider the tab idle."""
        config = self.profile.anti_stall
        if config.scroll:
            try:
                self.page.mouse.wheel(0, random.randint(80, 240))
            except Exception as e:
                logger.debug(f"Anti-stall scroll failed: {e}")
        if config.refocus:
            prompt = resolve(self.page, self.catalog.get("promptInput"))
            if prompt is not None:
                try:
                    prompt.click(timeout=2000)
                except Exception as e:
                    logger.debug(f"Anti-stall refocus failed: {e}")
        if config.jitter:
            jitter_mouse(self.page)

    # ------------------------------------------------------------------
    # Blocking states
    # ------------------------------------------------------------------
    def handle_errors(self):
        """Checks, in priority order, for redirect, login wall, CAPTCHA and anti-bot challenge."""
        target = self.profile.target_id
        try:
            current_url = self.page.url
        except Exception:
            current_url = ""

        if not is_on_target(current_url, self.profile.base_url):
            return self._blocked(REASON_REDIRECTED, f"redirected away to {current_url}")
        if any_visible(self.page, self.catalog.get("loginIndicators")):
            return self._blocked(REASON_LOGIN, "login required")
        if any_visible(self.page, self.catalog.get("captchaIndicators")):
            return self._blocked(REASON_CAPTCHA, "CAPTCHA shown")
        if any_visible(self.page, self.catalog.get("cloudflareIndicators")):
            return self._blocked(REASON_CLOUDFLARE, "anti-bot challenge shown")

        logger.debug(f"[{target}] no blocking state")
        return ErrorState(recovered=True)

    def _blocked(self, reason, message):
        logger.warning(f"[{self.profile.target_id}] {message}, user action required")
        artifacts = save_debug_artifact(self.page, f"{self.profile.target_id}_{reason}", self.artifacts_dir)
        return ErrorState(recovered=False, requires_user=True, reason=reason, artifacts=artifacts)
