# scripts/smoke_demo.py
"""
Smoke test / demo script for the RunwayTwin look engine.
Assembles a look offline against the seed catalog, then replays the same
plan to show the fingerprint cache short-circuit.
"""
import os
import sys
import json
import asyncio
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Add parent directory to path
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

from contracts.models import parse_style_plan
from infra.cache import MemoryCache
from services.job_store import JobStore
from services.look_worker import LookAssemblyWorker


def demo_plan():
    """
    Returns a separates-based demo style plan.
    """
    return {
        "look_id": "demo-look-001",
        "required_slots": ["anchor", "top", "bottom", "shoe", "accessory"],
        "per_slot": [
            {"slot": "anchor", "category": "outerwear", "keywords": ["trench", "coat"],
             "allowed_colors": ["beige", "camel"], "banned_materials": ["polyester"],
             "min_price": 80, "max_price": 220},
            {"slot": "top", "category": "top", "keywords": ["knit", "merino"],
             "allowed_colors": ["cream", "white"], "banned_materials": [],
             "min_price": 30, "max_price": 120},
            {"slot": "bottom", "category": "bottom", "keywords": ["tailored", "trouser"],
             "allowed_colors": ["black"], "banned_materials": [],
             "min_price": 60, "max_price": 160},
            {"slot": "shoe", "category": "shoes", "keywords": ["leather", "boots"],
             "allowed_colors": ["black"], "banned_materials": [],
             "min_price": 80, "max_price": 200},
            {"slot": "accessory", "category": "accessory", "keywords": ["belt"],
             "allowed_colors": ["black"], "banned_materials": [],
             "min_price": 20, "max_price": 60},
        ],
        "budget_total": 600,
        "currency": "EUR",
        "retailer_priority": ["COS", "Zara", "& Other Stories"],
        "search_queries": [
            {"slot": "anchor", "query": "beige trench coat"},
            {"slot": "shoe", "query": "black leather ankle boots"},
        ],
        "preferences": {"gender": "female", "country": "NL", "sizes": {"shoe": "38"},
                        "prompt": "a polished look for a rainy gallery opening"},
        "aesthetic_read": "Quiet tailoring with a soft neutral base",
    }


async def run_demo():
    plan = parse_style_plan(demo_plan())
    store = JobStore(MemoryCache())

    snapshots = []
    worker = LookAssemblyWorker([], store, listener=lambda job: snapshots.append(job.status))

    print("=" * 70)
    print(" " * 22 + "RUNWAYTWIN SMOKE TEST")
    print("=" * 70)

    first = await worker.run(plan)
    print(first.message)
    print()
    print(f"Status: {first.status}   Total: {first.currency} {first.total_price}")
    print(f"Missing: {first.missing_slots or 'none'}")
    print(f"Job states observed: {' -> '.join(snapshots)}")
    print()

    snapshots.clear()
    replay = await worker.run(plan.model_copy(update={"look_id": "demo-look-002"}))
    print(f"Replay served from cache: {replay.status} ({' -> '.join(snapshots)})")

    output_file = "demo_output.json"
    with open(output_file, "w") as f:
        json.dump(first.model_dump(mode="json"), f, indent=2, ensure_ascii=False)
    print(f"Full output saved to: {output_file}")


def main():
    asyncio.run(run_demo())


if __name__ == "__main__":
    main()
