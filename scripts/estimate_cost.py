"""Select the best registry model for given criteria and print cost estimates."""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import argparse

from genbridge.catalog import ModelRegistry, PerformancePriority, SelectionCriteria, UseCase
from genbridge.config import ProviderType
from genbridge.errors import NoMatchingModelError


def parse_args() -> argparse.Namespace:
    """Parse CLI options."""
    parser = argparse.ArgumentParser(description="Estimate per-request generation cost")
    parser.add_argument("--catalog", type=Path, default=None, help="Model catalog YAML (default: packaged seed)")
    parser.add_argument("--provider", choices=[kind.value for kind in ProviderType], default=None)
    parser.add_argument("--priority", choices=[p.value for p in PerformancePriority], default="balanced")
    parser.add_argument("--use-case", choices=[u.value for u in UseCase], default="general_chat")
    parser.add_argument("--min-context", type=int, default=None)
    parser.add_argument("--max-cost", type=float, default=None, help="Max USD per reference request")
    parser.add_argument("--require", action="append", default=[], help="Required capability (repeatable)")
    parser.add_argument("--input-tokens", type=int, default=1000)
    parser.add_argument("--output-tokens", type=int, default=500)
    parser.add_argument("--requests", type=int, default=1, help="Multiply estimates by this many requests")
    parser.add_argument("--include-unavailable", action="store_true")
    return parser.parse_args()


def main() -> None:
    """CLI entry point."""
    args = parse_args()
    registry = ModelRegistry.from_catalog(config_path=args.catalog) if args.catalog else ModelRegistry()

    criteria = SelectionCriteria(
        provider=ProviderType.parse(args.provider) if args.provider else None,
        max_cost_per_request=args.max_cost,
        min_context_length=args.min_context,
        required_capabilities=set(args.require),
        performance_priority=PerformancePriority(args.priority),
        use_case=UseCase(args.use_case),
    )

    descriptors = registry.all_models() if args.include_unavailable else registry.list_models(criteria.provider)
    if args.include_unavailable and criteria.provider is not None:
        descriptors = [d for d in descriptors if d.provider is criteria.provider]

    print(f"Estimates for {args.requests} request(s) of {args.input_tokens} in / {args.output_tokens} out tokens")
    print(f"{'model':<18} {'provider':<10} {'available':<9} {'score':>7} {'cost_usd':>12}")
    for descriptor in sorted(descriptors, key=lambda d: registry.estimate_cost(d, args.input_tokens, args.output_tokens)):
        cost = registry.estimate_cost(descriptor, args.input_tokens, args.output_tokens) * args.requests
        score = registry.score(descriptor, criteria)
        print(
            f"{descriptor.id:<18} {descriptor.provider.value:<10} {str(descriptor.available):<9} "
            f"{score:>7.1f} {cost:>12.6f}"
        )

    try:
        best = registry.select_best(criteria)
    except NoMatchingModelError as exc:
        print(f"No model matches: {exc.message}")
        sys.exit(1)

    best_cost = registry.estimate_cost(best, args.input_tokens, args.output_tokens) * args.requests
    print(f"Selected: {best.id} ({best.provider.value}, wire id {best.api_model}) est ${best_cost:.6f}")


if __name__ == "__main__":
    main()
