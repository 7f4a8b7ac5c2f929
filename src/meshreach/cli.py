"""
meshreach - Main Entry Point

Generates Istio Sidecar or TSB TrafficSetting reachability from the
observed service topology:

    meshreach -s tsb.example.com -u admin -p secret --start 2024-01-01 > reachability.yaml
"""

from __future__ import annotations

from typing import IO, List, Optional
import argparse
import io
import json
import logging
import sys

from rich.console import Console

from meshreach import __version__
from meshreach.config import ConfigError, ReachabilityConfig, parse_date
from meshreach.integration.base import ReachabilityAPIClient
from meshreach.integration.tsb_client import TSBAPIError, TSBClient
from meshreach.policy.exporter import render_json, write_yaml
from meshreach.policy.generator import DedupScope, generate_policies
from meshreach.policy.objects import PolicyObject, PolicySerializationError
from meshreach.topology.graph import TrafficGroupLookupError, build_call_graph

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_PIPELINE_ERROR = 2


def setup_logging(level: str = "WARNING"):
    """Set up logging."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="meshreach",
        description=(
            "Create Istio Sidecar or TSB TrafficSetting reachability "
            "based on the observed service topology"
        ),
    )
    parser.add_argument(
        "-s", "--server",
        help="Address of the TSB API server, e.g. tsb.example.com. REQUIRED "
             "(default: MESHREACH_SERVER env var)",
    )
    parser.add_argument(
        "-u", "--http-auth-user",
        dest="username",
        help="Username to call TSB with via HTTP Basic Auth. REQUIRED",
    )
    parser.add_argument(
        "-p", "--http-auth-password",
        dest="password",
        help="Password to call TSB with via HTTP Basic Auth. REQUIRED",
    )
    parser.add_argument("--org", help="TSB org to query against (default: tetrate)")
    parser.add_argument(
        "--start",
        help="Start of the time range to query the topology in YYYY-MM-DD format "
             "(default: 5 days ago)",
    )
    parser.add_argument(
        "--end",
        help="End of the time range to query the topology in YYYY-MM-DD format (default: today)",
    )
    parser.add_argument(
        "-k", "--insecure",
        action="store_true",
        default=None,
        help="Skip certificate verification when calling TSB",
    )
    parser.add_argument("--timeout", type=int, help="Request timeout in seconds (default: 30)")
    parser.add_argument(
        "--dedup-scope",
        choices=[s.value for s in DedupScope],
        help="Share seen destinations between DIRECT and bridged groups (shared) "
             "or track them per mode (per-mode). Default: shared",
    )
    parser.add_argument(
        "-o", "--output",
        help="Write the generated YAML to this file instead of stdout",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (overrides --debug)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        default=True,
        help="Explain why policy was generated; otherwise only the policy documents "
             "are printed (default)",
    )
    parser.add_argument(
        "--noverbose",
        action="store_true",
        help="Disable verbose output; overrides --verbose",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def config_from_args(args: argparse.Namespace) -> ReachabilityConfig:
    """Layer CLI flags over the environment config and validate it."""
    config = ReachabilityConfig.from_env()

    if args.server:
        config.server = args.server
    if args.username:
        config.username = args.username
    if args.password:
        config.password = args.password
    if args.org:
        config.org = args.org
    if args.insecure:
        config.insecure = True
    if args.timeout is not None:
        config.timeout = args.timeout
    if args.dedup_scope:
        config.dedup_scope = DedupScope(args.dedup_scope)
    if args.start:
        config.start = parse_date(args.start)
    if args.end:
        config.end = parse_date(args.end)
    if args.output:
        config.output = args.output

    config.debug = args.debug
    config.verbose = args.verbose and not args.noverbose

    return config.validate()


def _debug_dump(config: ReachabilityConfig, label: str, data) -> None:
    if config.verbose and logger.isEnabledFor(logging.DEBUG):
        logger.debug(f"{label}:\n{json.dumps(data, indent=4, default=str)}")


def run(
    config: ReachabilityConfig,
    client: ReachabilityAPIClient,
    stream: IO[str],
    console: Optional[Console] = None,
) -> List[PolicyObject]:
    """
    Fetch the inputs, build the call graph and write the policy YAML.

    Any failure aborts the run before anything is written.
    """
    console = console or Console(stderr=True)

    topology = client.fetch_topology(config.start, config.end)
    _debug_dump(config, "topology", topology.model_dump(by_alias=True))

    services = client.fetch_services()
    _debug_dump(config, "services", [s.model_dump(by_alias=True) for s in services])

    graph = build_call_graph(client, topology, services, console=console)
    objects = generate_policies(client, graph, dedup_scope=config.dedup_scope)
    if config.verbose and logger.isEnabledFor(logging.DEBUG):
        logger.debug(f"generated objects:\n{render_json(objects)}")

    write_yaml(objects, stream)

    if config.verbose:
        kinds = [o.kind for o in objects]
        console.print(
            f"[bold]{len(objects)}[/bold] policy objects "
            f"({kinds.count('Sidecar')} Sidecar, {kinds.count('TrafficSetting')} TrafficSetting) "
            f"from {len(graph)} calls ({graph.summary()['n_ungoverned']} ungoverned)"
        )
    return objects


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    console = Console(stderr=True)

    level = args.log_level or ("DEBUG" if args.debug else "WARNING")
    setup_logging(level)

    try:
        config = config_from_args(args)
    except ConfigError as e:
        console.print(f"[red]configuration error:[/red] {e}", highlight=False)
        return EXIT_CONFIG_ERROR
    logger.debug(f"got TSB string {config.server!r}")

    client = TSBClient(
        server=config.server,
        username=config.username,
        password=config.password,
        org=config.org,
        verify_ssl=not config.insecure,
        timeout=config.timeout,
    )
    buffer = io.StringIO()
    try:
        with client:
            run(config, client, buffer, console=console)
        if config.output:
            with open(config.output, "w") as f:
                f.write(buffer.getvalue())
        else:
            sys.stdout.write(buffer.getvalue())
    except (TSBAPIError, TrafficGroupLookupError, PolicySerializationError, OSError) as e:
        logger.debug("run failed", exc_info=True)
        console.print(f"[red]error:[/red] {e}", highlight=False)
        return EXIT_PIPELINE_ERROR

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
