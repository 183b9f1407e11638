from concurrent.futures import as_completed
from typing import Any, Dict, List, Optional

from langdetect import DetectorFactory, detect
from langdetect.lang_detect_exception import LangDetectException

from browser_tools.browser_manager import BrowserManager
from browser_tools.form_filler import normalize_question_key
from browser_tools.logger import get_logger
from browser_tools.throttle import Throttle
from career_pilot.config import JOB_SOURCES, Settings, load_site_profiles
from career_pilot.data_manager import DataManager
from career_pilot.job_dataset import StaticDataset
from career_pilot.llm_session import BrowserLLM
from career_pilot.models import (
    AnswerCacheEntry, Application, PromptPayload, UserProfile, compute_match_score,
)
from career_pilot.pipeline_store import JobCache, PipelineStore
from career_pilot.prompts import PromptRenderer
from career_pilot.scrapers.base_scraper import JobBoardScraper

logger = get_logger("Orchestrator")

# langdetect is randomized unless seeded
DetectorFactory.seed = 0


def detect_language(text, default="en"):
    try:
        return detect(text)
    except LangDetectException:
        return default


class Orchestrator:
    """Composes scrapers, the LLM session and the stores into the operator-facing operations.

    The job cache and pipeline store are mutated only here, from the caller's
    thread; browser work runs on each session's own worker.
    """

    def __init__(self, scrapers: Dict[str, JobBoardScraper], llm: BrowserLLM, profile: UserProfile,
                 pipeline: PipelineStore, job_cache: JobCache, answer_vault, resume_path: Optional[str] = None):
        self.scrapers = scrapers
        self.llm = llm
        self.profile = profile
        self.pipeline = pipeline
        self.job_cache = job_cache
        self.answer_vault = answer_vault
        self.resume_path = resume_path
        self.last_discovery = {}

    # ==========================================
    # DISCOVERY
    # ==========================================
    def discover_jobs(self, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Searches every source concurrently (one session each) and caches the jobs found."""
        filters = filters or {}
        futures = {
            scraper.session.submit(scraper.search_jobs, filters): source
            for source, scraper in self.scrapers.items()
        }
        results = {}
        for future in as_completed(futures):
            source = futures[future]
            try:
                results[source] = future.result()
            except Exception as e:
                # search_jobs falls back on its own; this only guards the worker itself
                logger.error(f"[{source}] discovery worker failed: {e}")
                scraper = self.scrapers[source]
                results[source] = scraper.fallback(filters, str(e))

        discovered = []
        for source in self.scrapers:
            result = results[source]
            self.last_discovery[source] = result
            for job in result.jobs:
                self.job_cache.put(job)
                discovered.append({"job": job, "match": compute_match_score(job, self.profile)})
        logger.info(f"Discovered {len(discovered)} jobs across {len(results)} sources")
        return discovered

    # ==========================================
    # LLM TASKS
    # ==========================================
    def _llm(self, method, payload):
        return self.llm.session.run(getattr(self.llm, method), payload)

    def build_resume(self, job_id: str, resume_text: str):
        job = self.job_cache.require(job_id)
        payload = PromptPayload(
            purpose="resume_tailoring",
            inputs={"JOB_TEXT": job.description, "RESUME_TEXT": resume_text},
            constraints={"TARGET_SKILLS": list(job.skills)},
        )
        return self._llm("tailor_resume", payload)

    def build_cover_letter(self, job_id: str, achievements=None, tone: Optional[str] = None, language: str = "en"):
        job = self.job_cache.require(job_id)
        payload = PromptPayload(
            purpose="cover_letter",
            inputs={
                "JOB_TEXT": job.description,
                "ACHIEVEMENTS": achievements or self.profile.highlights,
                "COMPANY_NOTES": f"Research notes about {job.company}",
            },
            constraints={"TONE": tone or self.profile.cover_tone, "LANG": language},
        )
        return self._llm("generate_cover_letter", payload)

    def answer_question(self, question: str) -> Dict[str, Any]:
        """Stored answer when the vault has one, otherwise asks the LLM and stores its answer."""
        key = normalize_question_key(question)
        stored = self.answer_vault.get(key)
        if stored is not None:
            return {"answer": stored.answer, "needsUserApproval": False, "source": "vault", "questionKey": key}

        payload = PromptPayload(
            purpose="form_qa",
            inputs={"QUESTION": question, "PROFILE": self.profile.to_dict()},
            constraints={"VAULT": {}},
        )
        result = self._llm("answer_form_question", payload)
        if result.get("error"):
            return dict(result, source="llm", questionKey=key)

        if result.get("answer"):
            entry = AnswerCacheEntry(key, result["answer"], lang=detect_language(question))
            self.answer_vault.upsert(entry)
        return dict(result, source="llm", questionKey=key)

    def ask_for_missing_fields(self, missing_fields: List[str]):
        payload = PromptPayload(
            purpose="missing_info",
            inputs={"MISSING_FIELDS": missing_fields, "PROFILE": self.profile.to_dict()},
        )
        return self._llm("ask_for_missing", payload)

    def test_session(self):
        return self.llm.session.run(self.llm.test_session)

    # ==========================================
    # PIPELINE
    # ==========================================
    def apply_to_job(self, job_id: str, notes: Optional[str] = None, resume_variant_id: Optional[str] = None,
                     cover_letter_id: Optional[str] = None) -> Application:
        """Creates (or refreshes) the pipeline record of a discovered job."""
        job = self.job_cache.require(job_id)
        return self.pipeline.create_from_job(
            job, resume_variant_id=resume_variant_id, cover_letter_id=cover_letter_id, notes=notes,
        )

    def submit_application(self, job_id: str, notes: Optional[str] = None) -> Dict[str, Any]:
        """Runs the live apply flow for a job and records the outcome in the pipeline."""
        job = self.job_cache.require(job_id)
        application = self.apply_to_job(job_id, notes=notes)
        scraper = self.scrapers.get(job.source)
        if scraper is None:
            return {"success": False, "steps": [], "errors": [], "reason": "unsupported-source",
                    "applicationId": application.id}

        def on_unknown(question):
            self.answer_vault.log_unknown_question(question, job.title, job.company)

        result = scraper.session.run(scraper.apply, job, self.answer_vault, self.resume_path, on_unknown)
        if result.artifacts:
            self.pipeline.patch(application.id, evidence={
                "screenshotPath": result.artifacts.get("screenshotPath"),
                "logPath": result.artifacts.get("htmlPath"),
            })
        if result.success:
            self.pipeline.update_status(application.id, "applied")
        return dict(result.to_dict(), applicationId=application.id)

    def update_application_status(self, application_id: str, status: str) -> Application:
        return self.pipeline.update_status(application_id, status)

    def list_applications(self) -> List[Application]:
        return self.pipeline.list()

    def pipeline_summary(self) -> Dict[str, int]:
        return self.pipeline.summarize()

    def close(self):
        for scraper in self.scrapers.values():
            scraper.close()
        self.llm.close()


def build_orchestrator(settings: Optional[Settings] = None, profile: Optional[UserProfile] = None,
                       resume_path: Optional[str] = None) -> Orchestrator:
    """Wires the default components from settings (env + YAML)."""
    settings = settings or Settings.from_env()
    site_profiles = load_site_profiles(settings.site_profiles_file, headless=settings.headless)
    browsers = BrowserManager(profiles_dir=settings.profiles_dir, disabled=settings.automation_disabled)
    throttle = Throttle(settings.rate_limits)
    dataset = StaticDataset()

    scrapers = {
        source: JobBoardScraper(site_profiles[source], browsers.session_for(site_profiles[source]),
                                throttle, dataset, artifacts_dir=settings.artifacts_dir)
        for source in JOB_SOURCES if source in site_profiles
    }
    llm_profile = site_profiles[settings.llm_provider]
    llm = BrowserLLM(
        llm_profile, browsers.session_for(llm_profile), PromptRenderer(settings.templates_file), throttle,
        artifacts_dir=settings.artifacts_dir, max_chars=settings.prompt_max_chars, overlap=settings.prompt_overlap,
    )
    vault = DataManager(settings.data_dir, seed_defaults=True)
    pipeline = PipelineStore.load(vault.applications_file)
    return Orchestrator(scrapers, llm, profile or UserProfile(), pipeline, JobCache(), vault, resume_path=resume_path)
