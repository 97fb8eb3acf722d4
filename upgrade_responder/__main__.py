"""
Run the upgrade responder:

  python -m upgrade_responder start \
      --upgrade-response-config response.json \
      --request-schema schema.json \
      --application-name longhorn \
      --influxdb-url http://influxdb:8086 \
      --geodb GeoLite2-City.mmdb

Every flag falls back to its environment variable (e.g. INFLUXDB_URL).
"""
from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from typing import List, Optional

import uvicorn

from .app import create_app
from .config import Config, load_config
from .errors import ConfigurationError

logger = logging.getLogger("upgrade_responder")

VERSION = "v0.0.0-dev"


def _setup_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    for noisy in ("urllib3.connectionpool", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def build_parser(env: Config) -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="upgrade-responder")
    ap.add_argument("--version", action="version", version=VERSION)
    ap.add_argument("-d", "--debug", action="store_true", default=env.debug, help="enable debug logging level")
    sub = ap.add_subparsers(dest="command", required=True)

    start = sub.add_parser("start", help="start the upgrade responder server")
    start.add_argument("--upgrade-response-config", default=env.response_config_path,
                       help="response configuration file for upgrade query [UPGRADE_RESPONSE_CONFIG]")
    start.add_argument("--request-schema", default=env.request_schema_path,
                       help="request schema file used to validate request data before writing to the database [REQUEST_SCHEMA]")
    start.add_argument("--application-name", default=env.application_name,
                       help="application name; data goes to database <application-name>_upgrade_responder [APPLICATION_NAME]")
    start.add_argument("--influxdb-url", default=env.influxdb_url, help="URL of InfluxDB [INFLUXDB_URL]")
    start.add_argument("--influxdb-user", default=env.influxdb_user, help="InfluxDB user name [INFLUXDB_USER]")
    start.add_argument("--influxdb-pass", default=env.influxdb_pass, help="InfluxDB password [INFLUXDB_PASS]")
    start.add_argument("--query-period", default=env.query_period,
                       help="how often each application instance makes the request; cannot change after first set [QUERY_PERIOD]")
    start.add_argument("--geodb", default=env.geodb_path, help="path to the GeoDB file [GEODB]")
    start.add_argument("--port", type=int, default=env.port, help="port number [PORT]")
    start.add_argument("--cache-sync-interval", type=float, default=env.cache_sync_interval_s,
                       help="seconds between flushes of cached points to InfluxDB [CACHE_SYNC_INTERVAL]")
    start.add_argument("--cache-size", type=int, default=env.cache_size,
                       help="flush as soon as this many points are cached [CACHE_SIZE]")
    start.add_argument("--scarf-endpoint", default=env.scarf_endpoint,
                       help="Scarf.sh endpoint template with {version} placeholder; empty disables [SCARF_ENDPOINT]")
    start.add_argument("--scarf-timeout", type=float, default=env.scarf_timeout_s,
                       help="timeout in seconds for Scarf.sh requests [SCARF_TIMEOUT]")
    return ap


def config_from_args(env: Config, args: argparse.Namespace) -> Config:
    return replace(
        env,
        response_config_path=args.upgrade_response_config,
        request_schema_path=args.request_schema,
        application_name=args.application_name,
        influxdb_url=args.influxdb_url,
        influxdb_user=args.influxdb_user,
        influxdb_pass=args.influxdb_pass,
        query_period=args.query_period,
        geodb_path=args.geodb,
        port=args.port,
        cache_sync_interval_s=args.cache_sync_interval,
        cache_size=args.cache_size,
        scarf_endpoint=args.scarf_endpoint,
        scarf_timeout_s=args.scarf_timeout,
        debug=args.debug,
    )


def main(argv: Optional[List[str]] = None) -> int:
    env = load_config()
    args = build_parser(env).parse_args(argv)
    cfg = config_from_args(env, args)
    _setup_logging(cfg.debug)

    try:
        cfg.validate()
        app = create_app(cfg)
    except ConfigurationError as e:
        logger.error("%s", e)
        return 1

    logger.info("Server is listening at 0.0.0.0:%d", cfg.port)
    uvicorn.run(app, host="0.0.0.0", port=cfg.port, log_level="debug" if cfg.debug else "info")
    return 0


if __name__ == "__main__":
    sys.exit(main())
