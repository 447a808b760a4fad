import argparse
import logging
import signal
import sys

from .config import ClientConfig, load_config
from .logging_utils import setup_logger
from .worker import TelemetryWorker


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Poll a vision sensor's pose estimates from the telemetry bus")
    ap.add_argument("--config", required=True, help="Path to JSON/YAML config")

    ap.add_argument("--sensor-name")
    ap.add_argument("--broker-host")
    ap.add_argument("--broker-port", type=int)
    ap.add_argument("--topic-root")
    ap.add_argument("--megatag2", action="store_true")
    ap.add_argument("--use-alliance", action="store_true")
    ap.add_argument("--alliance", choices=["red", "blue"])
    ap.add_argument("--rate-hz", type=float)
    ap.add_argument("--duration", type=float)
    ap.add_argument("--max-cycles", type=int)
    ap.add_argument("--max-ambiguity", type=float)
    ap.add_argument("--out")
    ap.add_argument("--publish-key")
    ap.add_argument("--dry-run", action="store_true")
    ap.add_argument("--verbose", action="store_true")

    return ap


def _apply_args(cfg: ClientConfig, args: argparse.Namespace) -> ClientConfig:
    cfg.apply_overrides(
        sensor_name=args.sensor_name,
        broker_host=args.broker_host,
        broker_port=args.broker_port,
        topic_root=args.topic_root,
        megatag2=True if args.megatag2 else None,
        use_alliance=True if args.use_alliance else None,
        alliance=args.alliance,
        rate_hz=args.rate_hz,
        duration_sec=args.duration,
        max_cycles=args.max_cycles,
        max_ambiguity=args.max_ambiguity,
        session_root=args.out,
        publish_key=args.publish_key,
        dry_run=True if args.dry_run else None,
    )
    return cfg


def main(argv=None) -> int:
    ap = _build_parser()
    args = ap.parse_args(argv)

    cfg = load_config(args.config)
    cfg = _apply_args(cfg, args)

    logger = setup_logger(cfg.sensor_name, logging.DEBUG if args.verbose else logging.INFO)
    worker = TelemetryWorker(cfg, logger=logger)

    def _handle_signal(_sig, _frame):
        worker.stop()

    signal.signal(signal.SIGINT, _handle_signal)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, _handle_signal)

    summary = worker.run()
    print(summary)
    return 0


if __name__ == "__main__":
    sys.exit(main())
