from __future__ import annotations

import argparse
import json
import logging
import time

from diskio_tap.collector import MetricsCollector
from diskio_tap.config import load_config
from diskio_tap.logging_utils import configure_logging, resolve_log_level
from diskio_tap.module import DiskIoModule
from diskio_tap.mqtt_client import MqttPublisher
from diskio_tap.schema import validate_payload


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Disk I/O rate exporter")
    parser.add_argument(
        "--config",
        default="config/example.cfg",
        help="Path to CFG configuration file",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Enable debug logging (-v) or trace logging (-vv)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log payloads without publishing to MQTT",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Collect and publish a single payload, then exit",
    )
    parser.add_argument(
        "--dump-json",
        help="Write the JSON payload to a file (overwrites on each loop)",
    )
    parser.add_argument(
        "--publish-status",
        metavar="STATUS",
        help="Publish a status (e.g., 'sleeping', 'online') to the availability topic and exit.",
    )
    return parser


def _emit(
    payload: dict,
    publisher: MqttPublisher | None,
    args: argparse.Namespace,
    pretty_print: bool,
) -> str:
    logger = logging.getLogger("diskio_tap")
    schema_errors = validate_payload(payload)
    if schema_errors:
        logger.warning("Schema validation failed with %s errors.", len(schema_errors))
        logger.debug("Schema errors: %s", schema_errors)
    else:
        logger.debug("Schema validation passed.")
    payload_json = json.dumps(payload, indent=2) if pretty_print else json.dumps(payload)
    if args.dump_json:
        with open(args.dump_json, "w", encoding="utf-8") as handle:
            handle.write(payload_json)
    if args.dry_run:
        logger.debug("Payload: %s", payload_json)
    elif publisher is not None:
        publisher.publish(payload_json)
    return payload_json


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()

    level = resolve_log_level(args.verbose, args.log_level)
    configure_logging(level)
    logger = logging.getLogger("diskio_tap")
    config = load_config(args.config)
    pretty_print = level <= logging.DEBUG

    if args.publish_status:
        publisher = MqttPublisher(config.mqtt)
        publisher.connect()
        # Wait briefly for connection to establish
        time.sleep(0.5)
        if publisher.connected:
            publisher.publish_status(args.publish_status)
            time.sleep(0.5)
        else:
            logger.error("Failed to connect to MQTT broker")
        publisher.disconnect()
        return

    module = DiskIoModule(config.diskio)
    module.init()
    collector = MetricsCollector(module)
    publisher = None if args.dry_run else MqttPublisher(config.mqtt)

    try:
        if publisher is not None:
            publisher.connect()

        initial_payload = collector.collect()
        if args.dry_run:
            logger.info("Dry run enabled; skipping MQTT publish.")
        elif publisher is not None:
            publisher.publish_discovery(module.metrics, initial_payload)
        _emit(initial_payload, publisher, args, pretty_print)

        if args.once:
            logger.info("Single-run mode enabled; exiting after initial payload.")
            return

        interval = max(1, config.publish.interval_s)
        logger.info("Disk I/O tap started. Publishing every %s seconds.", interval)
        while True:
            time.sleep(interval)
            _emit(collector.collect(), publisher, args, pretty_print)
    except KeyboardInterrupt:
        logger.info("Disk I/O tap stopped.")
    finally:
        if publisher is not None:
            publisher.disconnect()
        module.cleanup()


if __name__ == "__main__":
    main()
