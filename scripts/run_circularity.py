#!/usr/bin/env python3
"""
Run circularity analysis over a JSON export of companies and deals.

Input file layout:
    {"companies": [{...Company...}], "deals": [{...Deal...}]}

Usage:
    python scripts/run_circularity.py --input data/deals.json --output results.json
    python scripts/run_circularity.py -i data/deals.json --null-model --seed 42
    python scripts/run_circularity.py -i data/deals.json --slugs openai microsoft --sensitivity
"""

import argparse
import asyncio
import json
import logging
from pathlib import Path

from circularity.config import settings
from circularity.schemas import Company, Deal, GraphFilters
from circularity.service import CircularityService, InMemoryDealRepository

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def load_repository(path: Path) -> InMemoryDealRepository:
    """Validate the input file into companies and deals."""
    with open(path) as f:
        data = json.load(f)

    companies = [Company.model_validate(c) for c in data.get("companies", [])]
    deals = [Deal.model_validate(d) for d in data.get("deals", [])]
    logger.info(f"Loaded {len(companies)} companies and {len(deals)} deals from {path}")
    return InMemoryDealRepository(companies, deals)


async def run(args: argparse.Namespace) -> dict:
    service = CircularityService(load_repository(args.input), settings)

    filters = GraphFilters(min_confidence=args.min_confidence)
    response = await service.get_graph(args.slugs or "all", filters)
    result = response.to_dict()

    if args.null_model:
        comparison = await service.get_null_model_comparison(
            response, iterations=args.iterations, seed=args.seed
        )
        result["null_model"] = comparison.to_dict()

    if args.sensitivity:
        analysis = await service.get_sensitivity_analysis(response)
        result["sensitivity"] = analysis.to_dict()

    return result


def print_summary(result: dict) -> None:
    print("\n" + "=" * 60)
    print("CIRCULARITY SUMMARY")
    print("=" * 60)
    print(f"Companies: {len(result['nodes'])}")
    print(f"Edges: {len(result['edges'])}")
    print(f"Loops: {len(result['loops'])}")
    print(f"Multi-party cycles: {len(result['multi_party_cycles'])}")
    if result["issues"]:
        print(f"Skipped deals: {len(result['issues'])}")

    print("\nTop hubs:")
    for hub in result["hub_scores"][:5]:
        print(f"  {hub['company_slug']:<24} {hub['hub_score']:.3f} "
              f"({hub['loop_count']} loops, {hub['cycle_count']} cycles)")

    if "null_model" in result:
        sig = result["null_model"]["significance"]["loop_count"]
        print(f"\nLoop count p-value: {sig['p_value']:.4f} ({sig['p_value_method']})")
        for warning in result["null_model"]["warnings"]:
            print(f"  warning: {warning}")

    if "sensitivity" in result:
        stability = result["sensitivity"]["ranking_stability"]
        print(f"\nRanking consistent across schemes: {stability['consistent']}")


def main():
    parser = argparse.ArgumentParser(description="Circularity analysis of company deals")
    parser.add_argument(
        "--input", "-i",
        type=Path,
        required=True,
        help="JSON file with companies and deals"
    )
    parser.add_argument(
        "--output", "-o",
        type=Path,
        default=None,
        help="Write the full result as JSON"
    )
    parser.add_argument(
        "--slugs",
        nargs="*",
        default=None,
        help="Restrict the graph to these company slugs"
    )
    parser.add_argument(
        "--min-confidence",
        type=int,
        default=None,
        help="Minimum average source confidence (1-5)"
    )
    parser.add_argument("--null-model", action="store_true", help="Run the null model comparison")
    parser.add_argument("--iterations", type=int, default=None, help="Null model iterations")
    parser.add_argument("--seed", type=int, default=None, help="Null model seed")
    parser.add_argument("--sensitivity", action="store_true", help="Run the sensitivity analysis")
    args = parser.parse_args()

    result = asyncio.run(run(args))
    print_summary(result)

    if args.output:
        with open(args.output, "w") as f:
            json.dump(result, f, indent=2, ensure_ascii=False)
        logger.info(f"Results saved to {args.output}")


if __name__ == "__main__":
    main()
