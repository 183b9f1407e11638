import json
import os
import uuid
from typing import Dict, List, Optional, Any

from browser_tools.logger import get_logger
from career_pilot.models import Application, JobPosting, STATUSES, now_iso, summarize_pipeline

logger = get_logger("PipelineStore")


class UnknownJobError(KeyError):
    """An application referenced a job that is not in the job cache."""


class ApplicationNotFound(KeyError):
    pass


def normalize_status(status: Optional[str]) -> str:
    if not status:
        return "found"
    normalized = status.lower()
    return normalized if normalized in STATUSES else "found"


class JobCache:
    """Process-wide id -> JobPosting lookup filled by discovery."""

    def __init__(self):
        self._jobs: Dict[str, JobPosting] = {}

    def put(self, job: JobPosting) -> JobPosting:
        self._jobs[job.id] = job
        return job

    def put_all(self, jobs) -> None:
        for job in jobs:
            self.put(job)

    def get(self, job_id: str) -> Optional[JobPosting]:
        return self._jobs.get(job_id)

    def require(self, job_id: str) -> JobPosting:
        job = self._jobs.get(job_id)
        if job is None:
            raise UnknownJobError(job_id)
        return job

    def __contains__(self, job_id) -> bool:
        return job_id in self._jobs

    def __len__(self) -> int:
        return len(self._jobs)

    def all(self) -> List[JobPosting]:
        return list(self._jobs.values())


class PipelineStore:
    """Application records and their lifecycle status.

    Statuses follow found -> applied -> hr/tech -> offer/rejected, but any
    status may be set from any other. The one special case: the first entry into
    ``applied`` stamps ``submitted_at``, which is never overwritten afterwards.
    """

    def __init__(self, applications: Optional[List[Application]] = None, path: Optional[str] = None):
        self.path = path
        self._applications: Dict[str, Application] = {}
        for app in applications or []:
            self._applications[app.id] = app.copy()

    # --- QUERIES ---
    def list(self) -> List[Application]:
        """All records, most recently updated first."""
        return sorted(self._applications.values(), key=lambda a: a.updated_at, reverse=True)

    def find(self, application_id: str) -> Optional[Application]:
        return self._applications.get(application_id)

    def find_by_job(self, job_id: str) -> Optional[Application]:
        for app in self._applications.values():
            if app.job_id == job_id:
                return app
        return None

    def group_by_status(self) -> Dict[str, List[Application]]:
        grouped: Dict[str, List[Application]] = {}
        for app in self.list():
            grouped.setdefault(normalize_status(app.status), []).append(app)
        return grouped

    def summarize(self) -> Dict[str, int]:
        """Record count per status."""
        return summarize_pipeline(self.list())

    def __len__(self) -> int:
        return len(self._applications)

    # --- MUTATIONS ---
    def create_from_job(self, job: JobPosting, resume_variant_id: Optional[str] = None,
                        cover_letter_id: Optional[str] = None, notes: Optional[str] = None) -> Application:
        """Creates the application for ``job`` or updates the existing one (one per job)."""
        now = now_iso()
        existing = self.find_by_job(job.id)
        if existing is not None:
            if resume_variant_id is not None:
                existing.resume_variant_id = resume_variant_id
            if cover_letter_id is not None:
                existing.cover_letter_id = cover_letter_id
            if notes is not None:
                existing.notes = notes
            existing.updated_at = now
            self.save()
            return existing

        application = Application(
            id=str(uuid.uuid4()),
            job_id=job.id,
            resume_variant_id=resume_variant_id or "",
            cover_letter_id=cover_letter_id or "",
            status="found",
            created_at=now,
            updated_at=now,
            notes=notes or "",
        )
        self._applications[application.id] = application
        logger.info(f"Tracking application for {job.title} @ {job.company}")
        self.save()
        return application

    def update_status(self, application_id: str, status: str) -> Application:
        application = self._require(application_id)
        now = now_iso()
        application.status = normalize_status(status)
        application.updated_at = now
        if application.status == "applied" and not application.submitted_at:
            application.submitted_at = now
        self.save()
        return application

    def patch(self, application_id: str, notes: Optional[str] = None,
              evidence: Optional[Dict[str, Any]] = None, resume_variant_id: Optional[str] = None,
              cover_letter_id: Optional[str] = None) -> Application:
        application = self._require(application_id)
        if notes is not None:
            application.notes = notes
        if evidence:
            application.evidence.update({k: v for k, v in evidence.items() if v})
        if resume_variant_id is not None:
            application.resume_variant_id = resume_variant_id
        if cover_letter_id is not None:
            application.cover_letter_id = cover_letter_id
        application.updated_at = now_iso()
        self.save()
        return application

    def delete(self, application_id: str) -> None:
        self._applications.pop(application_id, None)
        self.save()

    def _require(self, application_id: str) -> Application:
        application = self._applications.get(application_id)
        if application is None:
            raise ApplicationNotFound(application_id)
        return application

    # --- PERSISTENCE ---
    def to_dict(self) -> Dict[str, Any]:
        return {"applications": [a.to_dict() for a in self.list()]}

    def save(self) -> None:
        """Writes every record to ``path``; a store without a path lives in memory only."""
        if not self.path:
            return
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)

    @classmethod
    def load(cls, path: str) -> "PipelineStore":
        applications = []
        if os.path.exists(path):
            try:
                with open(path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                applications = [Application.from_dict(a) for a in data.get("applications", [])]
            except (OSError, ValueError, KeyError) as e:
                logger.error(f"Could not read pipeline file {path}: {e}")
        return cls(applications, path=path)
