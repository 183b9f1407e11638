from dataclasses import dataclass, field, asdict, replace
from datetime import datetime
from typing import Optional, Dict, Any, List, Tuple

STATUSES = ("found", "applied", "hr", "tech", "offer", "rejected")


def now_iso() -> str:
    return datetime.now().isoformat()


@dataclass(frozen=True)
class JobPosting:
    id: str
    source: str
    url: str
    title: str
    company: str
    location: str = "Unknown"
    description: str = ""
    skills: Tuple[str, ...] = ()
    salary_hint: Dict[str, Any] = field(default_factory=dict, hash=False, compare=True)
    apply_method: str = "platform"
    remote: str = "any"
    roles: Tuple[str, ...] = ()
    language: str = "Unknown"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "url": self.url,
            "title": self.title,
            "company": self.company,
            "location": self.location,
            "description": self.description,
            "skills": list(self.skills),
            "salaryHint": dict(self.salary_hint),
            "applyMethod": self.apply_method,
            "remote": self.remote,
            "roles": list(self.roles),
            "language": self.language,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobPosting":
        # Accept both the camelCase wire format and snake_case field names
        mapping = {
            "salaryHint": "salary_hint",
            "applyMethod": "apply_method",
            "link": "url",
            "platform": "source",
        }
        normalized = {}
        for k, v in data.items():
            normalized[mapping.get(k, k)] = v

        valid_fields = cls.__dataclass_fields__.keys()
        filtered = {k: v for k, v in normalized.items() if k in valid_fields}
        for key in ("skills", "roles"):
            if key in filtered:
                filtered[key] = tuple(filtered[key] or ())
        if "salary_hint" in filtered:
            filtered["salary_hint"] = dict(filtered["salary_hint"] or {})

        # Fallback for missing required fields
        if "title" not in filtered: filtered["title"] = "Unknown"
        if "company" not in filtered: filtered["company"] = "Unknown"
        if "url" not in filtered: filtered["url"] = ""
        if "source" not in filtered: filtered["source"] = "Unknown"
        if "id" not in filtered: filtered["id"] = f"{filtered['title']}-{filtered['company']}"
        return cls(**filtered)


@dataclass
class Application:
    id: str
    job_id: str
    resume_variant_id: str = ""
    cover_letter_id: str = ""
    status: str = "found"
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)
    submitted_at: Optional[str] = None
    notes: str = ""
    evidence: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        timestamps = {"createdAt": self.created_at, "updatedAt": self.updated_at}
        if self.submitted_at:
            timestamps["submittedAt"] = self.submitted_at
        return {
            "id": self.id,
            "jobId": self.job_id,
            "resumeVariantId": self.resume_variant_id,
            "coverLetterId": self.cover_letter_id,
            "status": self.status,
            "timestamps": timestamps,
            "notes": self.notes,
            "evidence": dict(self.evidence),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Application":
        timestamps = data.get("timestamps", {})
        return cls(
            id=data["id"],
            job_id=data["jobId"],
            resume_variant_id=data.get("resumeVariantId", ""),
            cover_letter_id=data.get("coverLetterId", ""),
            status=data.get("status", "found"),
            created_at=timestamps.get("createdAt", now_iso()),
            updated_at=timestamps.get("updatedAt", now_iso()),
            submitted_at=timestamps.get("submittedAt"),
            notes=data.get("notes", ""),
            evidence=dict(data.get("evidence", {})),
        )

    def copy(self) -> "Application":
        return replace(self, evidence=dict(self.evidence))


@dataclass
class AnswerCacheEntry:
    question_key: str
    answer: str
    lang: str = "en"
    updated_at: str = field(default_factory=now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {"questionKey": self.question_key, "answer": self.answer, "lang": self.lang, "updatedAt": self.updated_at}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnswerCacheEntry":
        return cls(
            question_key=data["questionKey"],
            answer=data.get("answer", ""),
            lang=data.get("lang", "en"),
            updated_at=data.get("updatedAt", now_iso()),
        )


@dataclass
class PromptPayload:
    purpose: str
    role: str = "user"
    inputs: Dict[str, Any] = field(default_factory=dict)
    constraints: Dict[str, Any] = field(default_factory=dict)

    def variables(self) -> Dict[str, Any]:
        merged = dict(self.inputs)
        merged.update(self.constraints)
        return merged


@dataclass
class UserProfile:
    name: str = ""
    email: str = ""
    locations: List[str] = field(default_factory=list)
    roles: List[str] = field(default_factory=list)
    skills: List[str] = field(default_factory=list)
    languages: List[Dict[str, str]] = field(default_factory=lambda: [{"code": "en", "level": "native"}])
    work_auth: str = ""
    relocation: bool = False
    remote_preference: str = "any"
    notice_period: str = ""
    highlights: List[str] = field(default_factory=list)
    cover_tone: str = "friendly"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserProfile":
        valid_fields = cls.__dataclass_fields__.keys()
        return cls(**{k: v for k, v in (data or {}).items() if k in valid_fields})


@dataclass
class ApplyResult:
    success: bool
    steps: List[str] = field(default_factory=list)
    errors: List[Dict[str, str]] = field(default_factory=list)
    reason: Optional[str] = None
    artifacts: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"success": self.success, "steps": list(self.steps), "errors": list(self.errors)}
        if self.reason:
            data["reason"] = self.reason
        if self.artifacts:
            data["artifacts"] = self.artifacts
        return data


@dataclass(frozen=True)
class Live:
    """Discovery result scraped from the live site."""
    source: str
    jobs: Tuple[JobPosting, ...]
    is_fallback = False


@dataclass(frozen=True)
class Fallback:
    """Discovery result served from the static dataset instead of the live site."""
    source: str
    jobs: Tuple[JobPosting, ...]
    reason: str
    is_fallback = True


def compute_match_score(job: JobPosting, profile: UserProfile) -> Dict[str, Any]:
    """Share of the job's skills the profile lists (0-100)."""
    skills = list(job.skills or ())
    profile_skills = {s.lower() for s in (profile.skills or [])}
    if not skills or not profile_skills:
        return {"score": 0, "matchedSkills": []}
    matched = [s for s in skills if s.lower() in profile_skills]
    return {"score": round(len(matched) / len(skills) * 100), "matchedSkills": matched}


def summarize_pipeline(applications: List[Application]) -> Dict[str, int]:
    summary: Dict[str, int] = {}
    for app in applications:
        summary[app.status] = summary.get(app.status, 0) + 1
    return summary
