import argparse
import json
import os
import sys

# Add project root to sys.path to ensure imports work
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from plainstep.config import PLAINSTEP_AI_PROVIDER, PLAINSTEP_AI_HEALING, PLAINSTEP_HEADLESS, check_api_key
from plainstep.executor.orchestrator import TestExecutor
from plainstep.models.dsl import TestCase
from plainstep.parser.step_parser import parse, parse_raw_steps
from plainstep.providers.file import FileProvider


def make_ai_service(provider: str):
    if provider == "none":
        return None
    check_api_key(provider)
    if provider == "openai":
        from plainstep.llm.openai_service import OpenAIService
        return OpenAIService()
    from plainstep.llm.backend import BackendAIService
    return BackendAIService()


def load_cases(args):
    if args.file:
        return FileProvider(args.file).get_cases()
    if args.step:
        return [TestCase(id=args.id, title=args.title, steps=args.step, expected_result=args.expected)]
    if not sys.stdin.isatty():
        steps = parse_raw_steps(sys.stdin.read())
        if steps:
            return [TestCase(id=args.id, title=args.title, steps=steps, expected_result=args.expected)]
    return []


def process_run(args):
    """Handler for run command"""
    cases = load_cases(args)
    if not cases:
        print("Error: no steps given. Use --step, --file or pipe steps on stdin.")
        return 1

    ai_enabled = PLAINSTEP_AI_HEALING and not args.no_ai
    ai_service = make_ai_service(args.ai_provider) if ai_enabled else None
    executor = TestExecutor(
        ai_service=ai_service,
        ai_enabled=ai_enabled,
        headless=not args.headful and PLAINSTEP_HEADLESS,
        echo=args.verbose,
    )

    results = []
    try:
        for idx, case in enumerate(cases):
            print(f"\n[{idx+1}/{len(cases)}] Running: {case.title or case.id} ({len(case.steps)} steps)")
            result = executor.execute_test_case(
                case.id, case.steps,
                expected_result=case.expected_result,
                base_url=args.base_url or case.base_url or "",
                title=case.title,
            )
            for step in result.steps:
                mark = "PASS" if step.status == "passed" else "FAIL"
                healed = f" (healed: {step.healed_step})" if step.healed_step else ""
                print(f"  {mark} {step.step_number}. {step.step_description}{healed}")
                if step.message:
                    print(f"       {step.message}")
            print(f"Result: {result.status} in {result.duration_ms}ms")
            results.append(result)
    finally:
        executor.close()

    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            json.dump([r.model_dump(by_alias=True) for r in results], f, indent=2)
        print(f"Saved results to {args.output}")

    return 0 if all(r.status == "passed" for r in results) else 1


def process_parse(args):
    """Handler for parse command"""
    steps = args.steps or parse_raw_steps(sys.stdin.read())
    for step in steps:
        parsed = parse(step)
        print(parsed.model_dump_json(by_alias=True, exclude_none=True, indent=2))
    return 0


def main():
    parser = argparse.ArgumentParser(description="Plain-English browser test runner")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Command: run
    parser_run = subparsers.add_parser("run", help="Run test steps in a browser")
    parser_run.add_argument("--step", action="append", help="A test step (repeatable, in order)")
    parser_run.add_argument("--file", help="Test case file (yaml, json or txt with one step per line)")
    parser_run.add_argument("--id", default="cli", help="Test case id for --step input")
    parser_run.add_argument("--title", help="Test case title for --step input")
    parser_run.add_argument("--expected", help="Overall expected result, used by plain assertions")
    parser_run.add_argument("--base-url", help="Base URL for relative navigate steps")
    parser_run.add_argument("--headful", action="store_true", help="Show the browser window")
    parser_run.add_argument("--no-ai", action="store_true", help="Disable AI healing and interpretation")
    parser_run.add_argument("--ai-provider", choices=['backend', 'openai', 'none'], default=PLAINSTEP_AI_PROVIDER,
                            help="Where AI suggestions come from")
    parser_run.add_argument("--output", help="Write JSON results to this file")
    parser_run.add_argument("-v", "--verbose", action="store_true", help="Echo the run log to the console")

    # Command: parse
    parser_parse = subparsers.add_parser("parse", help="Show how steps are parsed")
    parser_parse.add_argument("steps", nargs="*", help="Steps to parse (stdin if omitted)")

    args = parser.parse_args()

    if args.command == "run":
        sys.exit(process_run(args))
    elif args.command == "parse":
        sys.exit(process_parse(args))
    else:
        parser.print_help()

if __name__ == "__main__":
    main()
