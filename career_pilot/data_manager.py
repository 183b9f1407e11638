import json
import os
import re
from datetime import datetime
from typing import List, Dict, Any, Optional

from browser_tools.form_filler import normalize_question_key
from browser_tools.logger import get_logger
from career_pilot.models import AnswerCacheEntry

logger = get_logger("DataManager")

DATA_DIR = os.getenv("CAREER_PILOT_DATA_DIR", "data")
ANSWERS_FILE = "answer_vault.json"
APPLICATIONS_FILE = "applications.json"

DEFAULT_ANSWERS = {
    "years of experience": "3",
    "authorized to work": "Yes",
    "require sponsorship": "No",
    "willing to relocate": "Yes",
    "notice period": "2 weeks",
    "when can you start": "Immediately",
}


def _normalize_loose(text: str) -> str:
    return re.sub(r'[^\w\s]', '', (text or "").lower().replace("_", " ")).strip()


class DataManager:
    """JSON-file answer vault: question key -> stored answer, plus the unknown-question log.

    Implements the ``lookup(question_key | raw_text)`` answer-source interface the
    form filler consumes.
    """

    def __init__(self, data_dir: Optional[str] = None, seed_defaults: bool = False):
        self.data_dir = data_dir or DATA_DIR
        self.answers_file = os.path.join(self.data_dir, ANSWERS_FILE)
        self.applications_file = os.path.join(self.data_dir, APPLICATIONS_FILE)
        self._ensure_files(seed_defaults)

    def _ensure_files(self, seed_defaults: bool):
        os.makedirs(self.data_dir, exist_ok=True)
        if not os.path.exists(self.answers_file):
            entries = {}
            if seed_defaults:
                for question, answer in DEFAULT_ANSWERS.items():
                    entry = AnswerCacheEntry(normalize_question_key(question), answer)
                    entries[entry.question_key] = entry.to_dict()
            self._write({"answers": entries, "unknown_questions": []})

    def _read(self) -> Dict[str, Any]:
        try:
            with open(self.answers_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Could not read answer vault: {e}")
            data = {}
        data.setdefault("answers", {})
        data.setdefault("unknown_questions", [])
        return data

    def _write(self, data: Dict[str, Any]):
        with open(self.answers_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

    # --- ANSWERS ---
    def get(self, question_key: str) -> Optional[AnswerCacheEntry]:
        raw = self._read()["answers"].get(question_key)
        return AnswerCacheEntry.from_dict(raw) if raw else None

    def upsert(self, entry: AnswerCacheEntry) -> AnswerCacheEntry:
        data = self._read()
        entry.updated_at = datetime.now().isoformat()
        data["answers"][entry.question_key] = entry.to_dict()
        data["unknown_questions"] = [
            q for q in data["unknown_questions"]
            if normalize_question_key(q.get("question", "")) != entry.question_key
        ]
        self._write(data)
        return entry

    def add_answer(self, question: str, answer: str, lang: str = "en") -> AnswerCacheEntry:
        return self.upsert(AnswerCacheEntry(normalize_question_key(question), answer, lang))

    def remove(self, question_key: str) -> bool:
        data = self._read()
        if question_key in data["answers"]:
            del data["answers"][question_key]
            self._write(data)
            return True
        return False

    def list_entries(self) -> Dict[str, AnswerCacheEntry]:
        return {k: AnswerCacheEntry.from_dict(v) for k, v in self._read()["answers"].items()}

    def import_entries(self, entries: List[AnswerCacheEntry]):
        for entry in entries:
            self.upsert(entry)

    def lookup(self, question: str) -> Optional[str]:
        """Answer for a question key or raw question text, or None.

        Tries the exact key, then the normalized key, then a loose substring /
        keyword-overlap match against stored keys.
        """
        if not question:
            return None
        answers = self._read()["answers"]
        for key in (question, normalize_question_key(question)):
            if key in answers:
                return answers[key].get("answer")

        q_norm = _normalize_loose(question)
        if not q_norm:
            return None

        # Substring match
        for key, raw in answers.items():
            p_norm = _normalize_loose(key)
            if p_norm and (p_norm in q_norm or q_norm in p_norm):
                return raw.get("answer")

        # Keyword overlap
        q_words = set(q_norm.split())
        best_match, max_overlap = None, 0
        for key, raw in answers.items():
            p_words = set(_normalize_loose(key).split())
            if not p_words:
                continue
            overlap = len(q_words & p_words)
            if overlap > max_overlap and (overlap >= 2 or overlap == len(p_words)):
                max_overlap, best_match = overlap, raw.get("answer")
        return best_match

    # --- UNKNOWN QUESTIONS ---
    def log_unknown_question(self, question_text: str, job_title: str = "", company: str = ""):
        data = self._read()
        key = normalize_question_key(question_text)
        if any(normalize_question_key(q.get("question", "")) == key for q in data["unknown_questions"]):
            return
        data["unknown_questions"].append({
            "question": question_text.strip(),
            "job_title": job_title,
            "company": company,
            "timestamp": datetime.now().isoformat()
        })
        self._write(data)

    def unknown_questions(self) -> List[Dict[str, Any]]:
        return self._read()["unknown_questions"]

    def clear_unknown_questions(self):
        data = self._read()
        data["unknown_questions"] = []
        self._write(data)
