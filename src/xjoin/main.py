"""
CLI Entrypoint for XJoin

Runs one external join over a file of search results and prints the joined
response as JSON. Handy for checking a provider's configuration against the
live service before wiring it into a search engine.

The results file is one of:
- a JSON list of documents
- {"response": [...]} or {"response": {"docs": [...]}}
- {"grouped": {...}}, with --group-field and --group-format
- {"shards": [{"shard": "<address>", "response": {...}}, ...]} for a distributed join
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Any, Dict, List, Optional, Tuple

from dotenv import load_dotenv

# Load .env file before argparse reads XJOIN_CONFIG
load_dotenv()

from xjoin.coordinator import JoinCoordinator
from xjoin.errors import ConfigurationError, XJoinError
from xjoin.models import GroupFormat, GroupingSpec, QueryContext, SearchResponse, SearchResult, ShardResponse
from xjoin.providers.registry import available_providers, create_provider

logger = logging.getLogger(__name__)


def key_value(text: str) -> Tuple[str, str]:
    """argparse type for KEY=VALUE pairs."""
    key, sep, value = text.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"expected KEY=VALUE, got {text!r}")
    return key, value


# Parse command-line arguments
def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="XJoin - join external results (sequence search, ontology terms) onto search results",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--provider", "-p", required=True, choices=available_providers(),
                        help="Which external results provider to use")
    parser.add_argument("--join-field", "-j", required=True,
                        help="Document field holding the join id")
    parser.add_argument("--docs", "-d", required=True,
                        help="JSON file of search results to join onto")
    parser.add_argument("--name", default="xjoin",
                        help="Join name, used as parameter prefix and output section (default: xjoin)")
    parser.add_argument("--config", "-c", default=os.environ.get("XJOIN_CONFIG"),
                        help="JSON file of provider settings (default: $XJOIN_CONFIG)")
    parser.add_argument("--init", "-i", type=key_value, action="append", default=[], metavar="KEY=VALUE",
                        help="Provider setting, overrides --config (repeatable)")
    parser.add_argument("--param", "-P", type=key_value, action="append", default=[], metavar="KEY=VALUE",
                        help="External query parameter (repeatable)")
    parser.add_argument("--fl", default="*", help="Fields of the join section (default: *)")
    parser.add_argument("--doc-fl", default="*", help="Fields of each joined record (default: *)")
    parser.add_argument("--group-field", action="append", default=[],
                        help="Grouping field of a grouped results file (repeatable)")
    parser.add_argument("--group-format", choices=[f.value for f in GroupFormat], default=GroupFormat.GROUPED.value,
                        help="Grouped results format (default: grouped)")
    parser.add_argument("--output", "-o", default=None,
                        help="Output file path (default: print to stdout)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    # suppress noisy httpx logs
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def load_config(path: Optional[str], overrides: List[Tuple[str, str]]) -> Dict[str, str]:
    config: Dict[str, str] = {}
    if path:
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Cannot read config file {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must hold a JSON object")
        config.update({k: str(v) for k, v in data.items()})
    config.update(dict(overrides))
    return config


def build_params(name: str, args: argparse.Namespace) -> Dict[str, str]:
    params = {
        name: "true",
        f"{name}.fl": args.fl,
        f"{name}.doc.fl": args.doc_fl,
    }
    for key, value in args.param:
        params[f"{name}.external.{key}"] = value
    return params


async def run(args: argparse.Namespace) -> Dict[str, Any]:
    with open(args.docs, encoding="utf-8") as f:
        data = json.load(f)

    grouping = None
    if args.group_field:
        grouping = GroupingSpec(tuple(args.group_field), GroupFormat(args.group_format))

    provider = create_provider(args.provider, load_config(args.config, args.init))
    try:
        coordinator = JoinCoordinator(args.name, provider, args.join_field)
        params = build_params(args.name, args)
        context = QueryContext()

        await coordinator.prepare(params, context)

        response = SearchResponse()
        if isinstance(data, dict) and "shards" in data:
            shards = [ShardResponse(s.get("shard", f"shard{i}"), s.get("response"))
                      for i, s in enumerate(data["shards"])]
            response = coordinator.finalize(params, context, response, shards, grouping)
        elif isinstance(data, dict) and "grouped" in data:
            response = response.with_value("grouped", data["grouped"])
            # without --group-field, every field in the file is a grouping field
            grouping = grouping or GroupingSpec(tuple(data["grouped"]), GroupFormat(args.group_format))
            result = SearchResult(grouped=data["grouped"], grouping=grouping)
            response = coordinator.process(params, context, response, result)
        else:
            docs = data.get("response", []) if isinstance(data, dict) else data
            response = response.with_value("response", docs)
            response = coordinator.process(params, context, response, SearchResult(docs=docs))
        return response.to_dict()
    finally:
        await provider.close()


# Main entry point
async def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.verbose)

    try:
        result = await run(args)
    except XJoinError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1

    output = json.dumps(result, indent=2, ensure_ascii=False)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(output)
        print(f"Results saved to {args.output}", file=sys.stderr)
    else:
        print(output)
    return 0


def cli():
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
