import argparse
import json
import sys

from career_pilot.config import Settings
from career_pilot.models import UserProfile
from career_pilot.orchestrator import build_orchestrator
from career_pilot.pipeline_store import UnknownJobError


def _print(data):
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def run_search(orchestrator, args):
    filters = {"keywords": args.keyword, "location": args.location}
    if args.remote:
        filters["remote"] = args.remote
    if args.limit:
        filters["limit"] = args.limit
    found = orchestrator.discover_jobs(filters)
    for source, result in orchestrator.last_discovery.items():
        branch = f"fallback ({result.reason})" if result.is_fallback else "live"
        print(f"{source}: {len(result.jobs)} jobs [{branch}]")
    _print([{"job": item["job"].to_dict(), "match": item["match"]} for item in found])
    return 0


def run_apply(orchestrator, args):
    orchestrator.discover_jobs({"keywords": args.keyword} if args.keyword else {})
    try:
        result = orchestrator.submit_application(args.job_id, notes=args.notes)
    except UnknownJobError:
        print(f"Unknown job id '{args.job_id}'; run a search first or pass --keyword", file=sys.stderr)
        return 1
    _print(result)
    return 0 if result["success"] else 1


def run_ask(orchestrator, args):
    _print(orchestrator.answer_question(args.question))
    return 0


def run_answer(orchestrator, args):
    vault = orchestrator.answer_vault
    if args.question is None:
        _print(vault.unknown_questions())
        return 0
    if args.text is None:
        print("An answer is required when a question is given", file=sys.stderr)
        return 2
    _print(vault.add_answer(args.question, args.text).to_dict())
    return 0


def run_test_session(orchestrator, args):
    result = orchestrator.test_session()
    _print(result)
    return 0 if result["ok"] else 1


def run_pipeline(orchestrator, args):
    _print({
        "summary": orchestrator.pipeline_summary(),
        "applications": [a.to_dict() for a in orchestrator.list_applications()],
    })
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(description="Job search and application automation")
    parser.add_argument("--skills", nargs="*", default=[], help="Your skills, used for match scoring")
    parser.add_argument("--resume", default=None, help="Resume file to upload when applying")
    sub = parser.add_subparsers(dest="command", required=True)

    search = sub.add_parser("search", help="Discover jobs on all boards")
    search.add_argument("--keyword", required=True, help="Job title or keyword")
    search.add_argument("--location", required=False, default="", help="Location")
    search.add_argument("--remote", choices=["remote", "hybrid", "onsite", "any"], default=None)
    search.add_argument("--limit", type=int, default=None, help="Max jobs per platform")
    search.set_defaults(func=run_search)

    apply = sub.add_parser("apply", help="Apply to a discovered job")
    apply.add_argument("job_id")
    apply.add_argument("--keyword", default="", help="Search keyword used to rediscover the job")
    apply.add_argument("--notes", default=None)
    apply.set_defaults(func=run_apply)

    ask = sub.add_parser("ask", help="Answer an application form question")
    ask.add_argument("question")
    ask.set_defaults(func=run_ask)

    answer = sub.add_parser("answer", help="Store an answer, or list unanswered questions")
    answer.add_argument("question", nargs="?", default=None)
    answer.add_argument("text", nargs="?", default=None)
    answer.set_defaults(func=run_answer)

    test = sub.add_parser("test-session", help="Check the LLM web session")
    test.set_defaults(func=run_test_session)

    pipeline = sub.add_parser("pipeline", help="Show tracked applications")
    pipeline.set_defaults(func=run_pipeline)

    args = parser.parse_args(argv)
    orchestrator = build_orchestrator(Settings.from_env(), UserProfile(skills=args.skills), resume_path=args.resume)
    try:
        return args.func(orchestrator, args)
    finally:
        orchestrator.close()


if __name__ == "__main__":
    sys.exit(main())
