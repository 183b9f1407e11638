import os
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from playwright.sync_api import sync_playwright

from browser_tools.errors import SessionError
from browser_tools.logger import get_logger

logger = get_logger("SessionManager")

DISABLE_ENV_VAR = "CAREER_PILOT_DISABLE_AUTOMATION"
DEFAULT_NAV_TIMEOUT_MS = 45_000
SUPPORTED_ENGINES = ("chromium", "firefox", "webkit")

# Hides the most common automation fingerprint from page scripts.
STEALTH_INIT_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
window.chrome = window.chrome || { runtime: {} };
Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en'] });
"""

UNOPENED = "unopened"
OPEN = "open"
DISABLED = "disabled"
CLOSED = "closed"


def automation_disabled_by_env():
    return os.getenv(DISABLE_ENV_VAR, "").strip().lower() in ("1", "true", "yes", "on")


@dataclass
class SessionHandle:
    target_id: str
    profile_dir: str
    state: str
    context: Any = None
    page: Any = None
    opened_at: Optional[str] = None
    last_error: Optional[str] = None


class SessionManager:
    """Owns the persistent browser profile and context of exactly one target.

    All work against the session should go through :meth:`submit`, which runs it
    on the session's own single worker thread (Playwright's sync objects are
    bound to the thread that created them).
    """

    def __init__(self, profile, profiles_dir="profiles", disabled=False, playwright_factory=sync_playwright):
        self.profile = profile
        self.target_id = profile.target_id
        self.profile_dir = Path(profiles_dir) / profile.target_id
        self.disabled = disabled
        self._playwright_factory = playwright_factory
        self._playwright = None
        self.context = None
        self._page = None
        self.state = UNOPENED
        self.opened_at = None
        self.last_error = None
        self._executor = None
        self._executor_lock = threading.Lock()
        self._worker_prefix = f"session-{profile.target_id}"

    # ------------------------------------------------------------------
    # Context lifecycle
    # ------------------------------------------------------------------
    def ensure_context(self):
        """Returns a usable browser context, or None when automation is unavailable.

        None is never an error for callers: it means "use static data".
        """
        if self.state == CLOSED:
            raise SessionError(f"[{self.target_id}] session was disposed")
        if self.state == OPEN and self.context is not None:
            return self.context
        if self.state == DISABLED:
            return None
        if self.disabled or automation_disabled_by_env():
            logger.info(f"[{self.target_id}] Automation disabled, skipping browser launch")
            return None

        browser = self.profile.browser
        engine = browser.engine if browser.engine in SUPPORTED_ENGINES else "chromium"
        if engine != browser.engine:
            logger.warning(f"[{self.target_id}] Unknown engine '{browser.engine}', using chromium")

        try:
            self.profile_dir.mkdir(parents=True, exist_ok=True)
            if self._playwright is None:
                self._playwright = self._playwright_factory().start()
            browser_type = getattr(self._playwright, engine)

            launch_kwargs = {
                "user_data_dir": str(self.profile_dir),
                "headless": browser.headless,
                "locale": browser.locale,
                "viewport": {"width": browser.viewport[0], "height": browser.viewport[1]},
                "slow_mo": browser.slow_mo,
            }
            if browser.user_agent:
                launch_kwargs["user_agent"] = browser.user_agent
            if engine == "chromium":
                launch_kwargs["args"] = list(browser.launch_args)
                launch_kwargs["ignore_default_args"] = ["--enable-automation"]

            context = browser_type.launch_persistent_context(**launch_kwargs)
            context.add_init_script(STEALTH_INIT_SCRIPT)
        except Exception as e:
            self.last_error = str(e)
            self.state = DISABLED
            logger.warning(f"[{self.target_id}] Failed to launch browser, falling back: {e}")
            self._stop_playwright()
            return None

        self.context = context
        self.state = OPEN
        self.opened_at = datetime.now().isoformat()
        self.last_error = None
        logger.info(f"[{self.target_id}] Browser launched with profile: {self.profile_dir}")
        return context

    def new_page(self, url=None, wait_until="networkidle", timeout=DEFAULT_NAV_TIMEOUT_MS):
        """Opens a page (becoming the active one) and navigates to ``url``. None if no context.

        The session keeps a single tab: the previous active page is closed once the
        new one has loaded, and a page whose navigation fails is closed before the
        error propagates.
        """
        context = self.ensure_context()
        if context is None:
            return None
        page = context.new_page()
        if url:
            try:
                page.goto(url, wait_until=wait_until, timeout=timeout)
            except Exception:
                self._close_page(page)
                raise
        previous = self._page
        if previous is not None and previous is not page:
            self._close_page(previous)
        self._page = page
        return page

    def active_page(self, url=None, wait_until="networkidle", timeout=DEFAULT_NAV_TIMEOUT_MS):
        """Returns the single active page, reusing it when it is still open.

        A persistent context starts with one blank page; it is adopted instead of
        opening a second tab.
        """
        context = self.ensure_context()
        if context is None:
            return None
        page = self._page
        if page is None or page.is_closed():
            page = context.pages[0] if context.pages else context.new_page()
            self._page = page
            if url:
                page.goto(url, wait_until=wait_until, timeout=timeout)
        return page

    @property
    def page(self):
        if self.state != OPEN or self._page is None:
            raise SessionError(f"[{self.target_id}] no open session; call open_session() first")
        return self._page

    @property
    def is_open(self):
        return self.state == OPEN

    def handle(self):
        return SessionHandle(
            target_id=self.target_id,
            profile_dir=str(self.profile_dir),
            state=self.state,
            context=self.context,
            page=self._page,
            opened_at=self.opened_at,
            last_error=self.last_error,
        )

    def restart(self):
        """Closes the context (profile data stays on disk) and returns to Unopened."""
        if self.state == CLOSED:
            raise SessionError(f"[{self.target_id}] session was disposed")
        self._close_context()
        self.state = UNOPENED
        self.last_error = None

    def dispose(self):
        """Terminal: closes the context, stops Playwright and the session worker.

        Playwright objects belong to the worker thread, so teardown runs there
        when a worker exists.
        """
        if self.state == CLOSED:
            return
        executor = self._executor
        if executor is not None and not threading.current_thread().name.startswith(self._worker_prefix):
            executor.submit(self._release).result()
        else:
            self._release()
        self.state = CLOSED
        if executor is not None:
            executor.shutdown(wait=False)
            self._executor = None
        logger.info(f"[{self.target_id}] Session disposed")

    def _release(self):
        self._close_context()
        self._stop_playwright()

    def _close_page(self, page):
        try:
            if not page.is_closed():
                page.close()
        except Exception as e:
            logger.debug(f"[{self.target_id}] Error closing page: {e}")

    def _close_context(self):
        if self.context is not None:
            try:
                self.context.close()
            except Exception as e:
                logger.debug(f"[{self.target_id}] Error closing context: {e}")
        self.context = None
        self._page = None

    def _stop_playwright(self):
        if self._playwright is not None:
            try:
                self._playwright.stop()
            except Exception as e:
                logger.debug(f"[{self.target_id}] Error stopping playwright: {e}")
        self._playwright = None

    # ------------------------------------------------------------------
    # Single worker
    # ------------------------------------------------------------------
    def submit(self, fn, *args, **kwargs):
        """Schedules ``fn`` on this session's worker thread; returns a Future.

        Work submitted to one session runs strictly in submission order.
        """
        if self.state == CLOSED:
            raise SessionError(f"[{self.target_id}] session was disposed")
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=self._worker_prefix)
            executor = self._executor
        return executor.submit(fn, *args, **kwargs)

    def run(self, fn, *args, **kwargs):
        """Runs ``fn`` on the session worker and waits for its result."""
        return self.submit(fn, *args, **kwargs).result()


class BrowserManager:
    """Registry of the per-target session managers of this process."""

    def __init__(self, profiles_dir="profiles", disabled=False, playwright_factory=sync_playwright):
        self.profiles_dir = profiles_dir
        self.disabled = disabled
        self._playwright_factory = playwright_factory
        self._sessions = {}
        self._lock = threading.Lock()

    def session_for(self, profile):
        """Returns the one SessionManager of ``profile.target_id``, creating it on first use."""
        with self._lock:
            session = self._sessions.get(profile.target_id)
            if session is None or session.state == CLOSED:
                session = SessionManager(
                    profile,
                    profiles_dir=self.profiles_dir,
                    disabled=self.disabled,
                    playwright_factory=self._playwright_factory,
                )
                self._sessions[profile.target_id] = session
            return session

    def close_all(self):
        """Disposes every session."""
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        logger.info(f"Force closing all {len(sessions)} sessions...")
        for session in sessions:
            if session.state == CLOSED:
                continue
            try:
                session.dispose()
            except Exception as e:
                logger.warning(f"[{session.target_id}] Error while closing: {e}")
