"""Static job postings served when live scraping is unavailable."""
import copy
from typing import Any, Dict, List, Optional

from career_pilot.models import JobPosting

JOB_DATASET = (
    JobPosting(
        id="linkedin-001",
        source="linkedin",
        url="https://www.linkedin.com/jobs/view/001",
        title="Senior Product Manager",
        company="Anka Tech",
        location="Istanbul · Hybrid",
        remote="hybrid",
        description="Senior product manager to design LLM-powered experiences in scalable SaaS products, "
                    "track OKRs and lead cross-functional teams.",
        skills=("Product Strategy", "Roadmap", "OKR", "Stakeholder Management"),
        roles=("product", "pm"),
        language="tr",
        salary_hint={"currency": "TRY", "min": 900000, "max": 1100000},
        apply_method="platform",
    ),
    JobPosting(
        id="linkedin-002",
        source="linkedin",
        url="https://www.linkedin.com/jobs/view/002",
        title="Senior Software Engineer (Node.js)",
        company="Stratus Systems",
        location="Remote · Europe",
        remote="remote",
        description="We are looking for a software engineer experienced with distributed microservices "
                    "on Node.js, GraphQL and AWS.",
        skills=("Node.js", "GraphQL", "AWS", "Microservices"),
        roles=("software", "backend"),
        language="en",
        salary_hint={"currency": "EUR", "min": 85000, "max": 105000},
        apply_method="platform",
    ),
    JobPosting(
        id="indeed-001",
        source="indeed",
        url="https://www.indeed.com/viewjob?jk=001",
        title="Product Marketing Manager",
        company="Nova Labs",
        location="Remote · Global",
        remote="remote",
        description="Product marketing manager to own go-to-market strategy, content and growth campaigns "
                    "for new product launches.",
        skills=("Go-To-Market", "Content Strategy", "Analytics"),
        roles=("marketing", "product"),
        language="en",
        salary_hint={"currency": "USD", "min": 100000, "max": 130000},
        apply_method="external",
    ),
    JobPosting(
        id="indeed-002",
        source="indeed",
        url="https://www.indeed.com/viewjob?jk=002",
        title="UX/UI Designer",
        company="Pixelcraft",
        location="Izmir · Office",
        remote="onsite",
        description="UX/UI designer with research and visual design skills to improve the user experience "
                    "of our mobile and web apps.",
        skills=("UX Research", "Figma", "Design Systems"),
        roles=("design",),
        language="tr",
        salary_hint={"currency": "TRY", "min": 600000, "max": 750000},
        apply_method="platform",
    ),
    JobPosting(
        id="hiringcafe-001",
        source="hiringcafe",
        url="https://hiring.cafe/job/001",
        title="AI Product Lead",
        company="Crescent AI",
        location="Remote · GMT+3",
        remote="remote",
        description="AI product lead to build the roadmap for LLM-assisted workflows; prompt engineering and "
                    "experiment design experience required.",
        skills=("Prompt Engineering", "Product Discovery", "Analytics"),
        roles=("product", "ai"),
        language="en",
        salary_hint={"currency": "USD", "min": 120000, "max": 150000},
        apply_method="external",
    ),
    JobPosting(
        id="hiringcafe-002",
        source="hiringcafe",
        url="https://hiring.cafe/job/002",
        title="Customer Success Specialist",
        company="Supportly",
        location="Ankara · Hybrid",
        remote="hybrid",
        description="Customer success specialist to run onboarding and support processes for B2B SaaS customers.",
        skills=("Customer Success", "CRM", "Training"),
        roles=("support", "operations"),
        language="tr",
        salary_hint={"currency": "TRY", "min": 450000, "max": 520000},
        apply_method="platform",
    ),
)


def _tokens(value):
    if isinstance(value, (list, tuple)):
        return [str(v).strip().lower() for v in value if str(v).strip()]
    return [t.strip().lower() for t in str(value).split(",") if t.strip()]


def matches(job: JobPosting, filters: Optional[Dict[str, Any]] = None) -> bool:
    if not filters:
        return True
    remote = filters.get("remote")
    if remote and remote != "any" and job.remote != remote:
        return False
    if filters.get("location"):
        location_text = job.location.lower()
        if not any(token in location_text for token in _tokens(filters["location"])):
            return False
    roles = filters.get("roles")
    if roles:
        job_roles = {r.lower() for r in job.roles}
        if not any(role in job_roles for role in _tokens(roles)):
            return False
    if filters.get("keywords"):
        haystack = f"{job.title} {job.description}".lower()
        if not all(token in haystack for token in _tokens(filters["keywords"])):
            return False
    languages = filters.get("languages")
    if languages and job.language not in languages:
        return False
    if filters.get("salaryMin"):
        try:
            salary_min = float(filters["salaryMin"])
        except (TypeError, ValueError):
            salary_min = None
        job_min = job.salary_hint.get("min")
        if salary_min is not None and job_min and job_min < salary_min:
            return False
    return True


class StaticDataset:
    """Fallback job source: filtered shallow copies of a fixed posting list."""

    def __init__(self, jobs=JOB_DATASET):
        self.jobs = tuple(jobs)

    def load_jobs_for_source(self, source: str, filters: Optional[Dict[str, Any]] = None) -> List[JobPosting]:
        return [copy.copy(job) for job in self.jobs if job.source == source and matches(job, filters)]
