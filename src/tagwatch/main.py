import argparse
import logging
import signal
import sys
import threading

from tagwatch.core.client_manager import ClientManager
from tagwatch.core.log import setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tagwatch-monitor",
        description="Connect the configured clients and print every value change."
    )
    parser.add_argument("-c", "--config", default="clients.json",
                        help="client configuration file (default: clients.json)")
    parser.add_argument("--log-dir", default="logs",
                        help="directory for per-key value logs (default: logs)")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"])
    return parser


def main(argv=None):
    """
    Monitor entry point.
    """
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    manager = ClientManager(config_path=args.config, log_directory=args.log_dir)
    if manager.load_configuration() == 0:
        logger.error(f"No clients configured in {args.config}")
        return 1

    manager.on("value_changed", lambda name, key, value: print(f"{name} | {key} = {value}", flush=True))
    manager.on("client_event", lambda name, event: logger.info(f"{name}: {event}"))

    results = manager.connect_all()
    if not any(results.values()):
        logger.error("No client could connect")
        return 2

    stop = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: stop.set())
    signal.signal(signal.SIGTERM, lambda *_: stop.set())
    try:
        while not stop.wait(0.5):
            pass
    finally:
        manager.disconnect_all()
    return 0


if __name__ == "__main__":
    sys.exit(main())
