# main.py
"""
Command-line entry point for the RunwayTwin look engine.

Runs one style plan (JSON file or stdin) through the assembly worker and
prints the narrated look followed by the LookResponse JSON.

    python main.py plan.json
    python main.py plan.json --offline      # seed catalog only, no network
"""
import argparse
import asyncio
import json
import sys

from contracts.models import LookResponse, PlanValidationError, parse_style_plan
from integrations.registry import adapters_for_plan
from services.job_store import get_job_store
from services.look_worker import LookAssemblyWorker


async def run_plan(payload, offline: bool = False) -> LookResponse:
    """
    Assemble a look for a raw style plan payload.

    Raises:
        PlanValidationError: if the payload is not a valid style plan
    """
    plan = parse_style_plan(payload)
    adapters = [] if offline else adapters_for_plan(plan)

    def on_snapshot(job):
        if job.status == "partial" and job.result:
            print(f"[partial] missing: {', '.join(job.result.missing_slots) or 'none'}", file=sys.stderr)

    worker = LookAssemblyWorker(adapters, get_job_store(), listener=on_snapshot)
    return await worker.run(plan)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Assemble a look from a style plan")
    parser.add_argument("plan", nargs="?", default="-", help="Style plan JSON file ('-' for stdin)")
    parser.add_argument("--offline", action="store_true", help="Use the seed catalog only")
    parser.add_argument("--json-only", action="store_true", help="Print only the LookResponse JSON")
    args = parser.parse_args(argv)

    if args.plan == "-":
        raw = sys.stdin.read()
    else:
        with open(args.plan, encoding="utf-8") as fh:
            raw = fh.read()

    try:
        result = asyncio.run(run_plan(raw, offline=args.offline))
    except PlanValidationError as e:
        print("Invalid style plan:", file=sys.stderr)
        for problem in e.problems:
            print(f"  - {problem}", file=sys.stderr)
        return 2

    if not args.json_only:
        print(result.message)
        print("=" * 60)
    print(json.dumps(result.model_dump(mode="json"), indent=2, ensure_ascii=False))
    return 0 if result.status != "failed" else 1


if __name__ == "__main__":
    sys.exit(main())
