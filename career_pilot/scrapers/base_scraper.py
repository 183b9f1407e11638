import hashlib
import urllib.parse
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

from browser_tools.completion import CompletionDetector
from browser_tools.form_filler import auto_fill_questions
from browser_tools.human_actions import dismiss_cookie_banner, human_delay, human_scroll, with_retry
from browser_tools.locators import any_visible, first_visible, resolve
from browser_tools.logger import get_logger, save_debug_artifact
from career_pilot.models import ApplyResult, Fallback, JobPosting, Live

logger = get_logger("JobBoardScraper")

DEFAULT_LIMIT = 25
MAX_FORM_STEPS = 8


class JobBoardScraper:
    """Search and apply on one job board, driven entirely by its SiteProfile.

    Site differences are selector data, not subclasses.
    """

    def __init__(self, profile, session, throttle, dataset, artifacts_dir=None, sleep=None):
        self.profile = profile
        self.source = profile.target_id
        self.session = session
        self.throttle = throttle
        self.dataset = dataset
        self.artifacts_dir = artifacts_dir
        self.catalog = profile.selectors
        self._sleep_kwargs = {"sleep": sleep} if sleep else {}

    def log(self, msg, level="info"):
        getattr(logger, level)(f"[{self.profile.display_name}] {msg}")

    # ==========================================
    # DISCOVERY
    # ==========================================
    def search_jobs(self, filters: Optional[Dict[str, Any]] = None):
        """Live scrape of the board; falls back to the static dataset when that is impossible.

        Returns ``Live(source, jobs)`` or ``Fallback(source, jobs, reason)``.
        """
        filters = filters or {}
        if self.session.ensure_context() is None:
            return self.fallback(filters, "automation-disabled")
        self.throttle.throttle(self.source)

        try:
            url = self.search_url(filters)
            page = with_retry(lambda: self.session.new_page(url), **self._sleep_kwargs)
            if page is None:
                return self.fallback(filters, "automation-disabled")

            state = CompletionDetector(page, self.profile, self.artifacts_dir).handle_errors()
            if not state.recovered:
                return self.fallback(filters, state.reason)

            dismiss_cookie_banner(page, self.catalog.get("cookieAccept"))
            human_scroll(page, **self._sleep_kwargs)
            jobs = self.collect_job_data(page, limit=int(filters.get("limit") or DEFAULT_LIMIT))
        except Exception as e:
            self.log(f"Live search failed, using static data: {e}", "warning")
            return self.fallback(filters, str(e) or e.__class__.__name__)

        self.log(f"Found {len(jobs)} jobs live")
        return Live(self.source, tuple(jobs))

    def fallback(self, filters, reason):
        jobs = self.dataset.load_jobs_for_source(self.source, filters)
        self.log(f"Serving {len(jobs)} static jobs ({reason})")
        return Fallback(self.source, tuple(jobs), reason)

    def search_url(self, filters):
        template = self.profile.search_url or self.profile.base_url
        keywords = filters.get("keywords") or ""
        if isinstance(keywords, (list, tuple)):
            keywords = " ".join(keywords)
        location = filters.get("location") or ""
        return template.format(
            keywords=urllib.parse.quote(str(keywords)),
            location=urllib.parse.quote(str(location)),
        )

    def _card_text(self, card, role):
        for sel in self.catalog.get(role):
            try:
                el = card.locator(sel).first
                if el.count() > 0:
                    text = (el.inner_text() or "").strip()
                    if text:
                        return text
            except Exception as e:
                self.log(f"{role} lookup '{sel}' failed: {e}", "debug")
        return ""

    def _card_link(self, card):
        for sel in self.catalog.get("cardLink"):
            try:
                el = card.locator(sel).first
                if el.count() > 0:
                    href = el.get_attribute("href")
                    if href:
                        return urljoin(self.profile.base_url, href)
            except Exception as e:
                self.log(f"link lookup '{sel}' failed: {e}", "debug")
        return ""

    def collect_job_data(self, page, limit=DEFAULT_LIMIT) -> List[JobPosting]:
        cards = []
        for sel in self.catalog.get("jobCards"):
            found = page.locator(sel)
            if found.count() > 0:
                cards = found.all()
                break
        if not cards:
            self.log("No job cards found on the page", "warning")
            return []
        self.log(f"Found {len(cards)} cards on this page.")

        jobs, seen_urls = [], set()
        for card in cards:
            if len(jobs) >= limit:
                break
            title = self._card_text(card, "cardTitle")
            url = self._card_link(card)
            if not title or not url or url in seen_urls:
                continue
            seen_urls.add(url)
            jobs.append(JobPosting(
                id=f"{self.source}-{hashlib.sha1(url.encode('utf-8')).hexdigest()[:12]}",
                source=self.source,
                url=url,
                title=title,
                company=self._card_text(card, "cardCompany") or "Unknown",
                location=self._card_text(card, "cardLocation") or "Unknown",
            ))
        return jobs

    # ==========================================
    # APPLY
    # ==========================================
    def apply(self, job: JobPosting, answer_source, resume_path=None, on_unknown=None) -> ApplyResult:
        """Walks the apply flow of ``job``. Always returns an ApplyResult, never raises."""
        steps: List[str] = []
        errors: List[Dict[str, str]] = []
        page = None
        try:
            if self.session.ensure_context() is None:
                return ApplyResult(False, steps, errors, reason="automation-disabled")
            self.throttle.throttle(self.source)
            page = self.session.new_page(job.url)
            if page is None:
                return ApplyResult(False, steps, errors, reason="automation-disabled")
            steps.append("navigate")

            state = CompletionDetector(page, self.profile, self.artifacts_dir).handle_errors()
            if not state.recovered:
                return ApplyResult(False, steps, errors, reason=state.reason, artifacts=state.artifacts)
            steps.append("loginCheck")

            dismiss_cookie_banner(page, self.catalog.get("cookieAccept"))

            if any_visible(page, self.catalog.get("appliedIndicators")):
                self.log(f"Already applied: {job.title} @ {job.company}")
                return ApplyResult(False, steps, errors, reason="already-applied")

            apply_button = first_visible(page, self.catalog.get("applyButton"))
            if apply_button is not None:
                apply_button.click()
                human_delay(**self._sleep_kwargs)
                steps.append("openForm")

            return self._walk_form(page, answer_source, resume_path, steps, errors, on_unknown)
        except Exception as e:
            self.log(f"Apply flow crashed for {job.url}: {e}", "error")
            errors.append({"field": "exception", "reason": str(e)})
            artifacts = save_debug_artifact(page, f"{self.source}_apply_error", self.artifacts_dir)
            return ApplyResult(False, steps, errors, reason="exception", artifacts=artifacts)

    def _walk_form(self, page, answer_source, resume_path, steps, errors, on_unknown):
        uploaded = False
        for _ in range(MAX_FORM_STEPS):
            if resume_path and not uploaded:
                file_input = resolve(page, self.catalog.get("fileInput"))
                if file_input is not None:
                    try:
                        file_input.set_input_files(resume_path)
                        steps.append("fileUpload")
                        uploaded = True
                    except Exception as e:
                        errors.append({"field": "resume", "reason": f"upload-failed: {e}"})

            auto_fill_questions(page, answer_source, steps, errors, catalog=self.catalog, on_unknown=on_unknown)

            submit = first_visible(page, self.catalog.get("submitButton"))
            if submit is not None:
                submit.click()
                human_delay(**self._sleep_kwargs)
                steps.append("submit")
                self.log("Application submitted")
                return ApplyResult(True, steps, errors)

            next_button = first_visible(page, self.catalog.get("nextButton"))
            if next_button is None:
                break
            next_button.click()
            human_delay(**self._sleep_kwargs)
            steps.append("next")

        errors.append({"field": "submit", "reason": "selector-not-found"})
        artifacts = save_debug_artifact(page, f"{self.source}_no_submit", self.artifacts_dir)
        return ApplyResult(False, steps, errors, reason="submit-not-found", artifacts=artifacts)

    def close(self):
        self.session.dispose()
