import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

from .exceptions import ConfigError
from .metrics.sink import MetricSink
from .models.config import ScenarioConfig, resolve_config
from .report import format_summary
from .runner.executor import Executor, RunSummary

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONFIG_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wsload",
        description=(
            "Constant-concurrency load generator for streaming WebSocket endpoints. "
            "Unset options fall back to WS_URL, TOPIC, VUS, DURATION, ... from the environment."
        ),
    )
    parser.add_argument("--version", action="version", version="%(prog)s 1.0.0")
    parser.add_argument("--url", dest="ws_url", help="Target WebSocket URL")
    parser.add_argument("--topic", help="Topic every virtual user subscribes to")
    parser.add_argument("--vus", type=int, help="Number of concurrent virtual users")
    parser.add_argument("--duration", help="Steady-state duration, e.g. 30s, 2m, 1h30m")
    parser.add_argument("--connect-timeout", help="Handshake timeout per connection")
    parser.add_argument("--close-timeout", help="Close grace per virtual user at shutdown")
    parser.add_argument("--shutdown-grace", help="Overall wait for virtual users at shutdown")
    parser.add_argument(
        "--reconnect",
        action="store_const",
        const=True,
        default=None,
        help="Start a new connection whenever a virtual user terminates",
    )
    parser.add_argument("--reconnect-delay", help="Pause before reconnecting")
    parser.add_argument("--progress-interval", help="Log running counters at this interval")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    return parser


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


async def run(config: ScenarioConfig, sink: Optional[MetricSink] = None) -> RunSummary:
    """
    Execute a scenario with SIGINT/SIGTERM wired to a graceful early stop.
    """
    executor = Executor(config, sink)
    loop = asyncio.get_running_loop()

    installed = []
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, executor.stop)
            installed.append(signum)
        except (NotImplementedError, RuntimeError):
            logger.debug(f"Signal handler for {signum} not supported here")

    try:
        return await executor.execute()
    finally:
        for signum in installed:
            loop.remove_signal_handler(signum)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    try:
        config = resolve_config(
            ws_url=args.ws_url,
            topic=args.topic,
            vus=args.vus,
            duration=args.duration,
            connect_timeout=args.connect_timeout,
            close_timeout=args.close_timeout,
            shutdown_grace=args.shutdown_grace,
            reconnect=args.reconnect,
            reconnect_delay=args.reconnect_delay,
            progress_interval=args.progress_interval,
        )
    except ConfigError as e:
        logger.error(e.message)
        return EXIT_CONFIG_ERROR

    summary = asyncio.run(run(config))
    print(format_summary(summary))
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
