# src/order_tracking_status/cli.py
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from .config.env import EnvError, get_app_env
from .config.logging_config import ROOT_LOGGER, get_logger
from .io.schema import BUSINESSES, NOT_FOUND_MESSAGE
from .io.store import StoreError


def _common_options() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(add_help=False)
    p.add_argument(
        "--store",
        type=Path,
        default=None,
        help="JSON fixture ({collection: {id: doc}}) used instead of MongoDB.",
    )
    p.add_argument(
        "--replay",
        type=Path,
        default=None,
        help="JSON file of recorded provider bodies used instead of the live API.",
    )
    p.add_argument(
        "--no-console",
        action="store_true",
        help="Disable console logging (file logging remains).",
    )
    p.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write logs to this file (rotating).",
    )
    p.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR). Default: INFO",
    )
    p.add_argument(
        "--strict-env",
        action="store_true",
        help="Require SHIPDAY_API_KEY to be present; otherwise exit 2.",
    )
    return p


def build_parser() -> argparse.ArgumentParser:
    common = _common_options()
    p = argparse.ArgumentParser(
        prog="order-tracking-status",
        description="Order tracking snapshots and delivery metrics.",
    )
    sub = p.add_subparsers(dest="command", required=True)

    track = sub.add_parser("track", parents=[common], help="Print the tracking snapshot for one order.")
    track.add_argument("order", help="Order number, provider order number/id, or document id.")

    metrics = sub.add_parser("metrics", parents=[common], help="Print dashboard metrics for a scope.")
    metrics.add_argument("--business-id", default=None, help="Only orders of this business.")
    metrics.add_argument("--driver-id", default=None, help="Only orders of this driver.")
    metrics.add_argument("--limit", type=int, default=None, help="Cap on orders read.")
    metrics.add_argument("--tz", default=None, help="IANA zone for calendar days (default: system local).")

    serve = sub.add_parser("serve", parents=[common], help="Run the HTTP API with uvicorn.")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    return p


def _open_store(args, env_cfg, logger):
    if args.store:
        from .io.store import InMemoryStore

        logger.info("Fixture store: %s", args.store)
        return InMemoryStore.from_json(args.store)

    from .io.store import MongoStore

    logger.info("MongoDB store: db=%s", env_cfg.MONGODB_DB)
    return MongoStore(env_cfg.MONGODB_URI, env_cfg.MONGODB_DB)


def _build_aggregator(args, env_cfg, store, logger):
    from .pipelines.tracking import TrackingAggregator

    if args.replay:
        from .api.client import ReplayClient

        logger.info("Replay mode enabled: %s", args.replay)
        return TrackingAggregator.from_env(env_cfg, store, provider=ReplayClient(args.replay))

    if not env_cfg.has_provider_credentials:
        logger.info("SHIPDAY_API_KEY not set; live order lookups are skipped.")
    return TrackingAggregator.from_env(env_cfg, store)


def _emit(payload) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logger = get_logger(
        ROOT_LOGGER,
        level=args.log_level,
        console=not args.no_console,
        log_file=args.log_file,
    )
    logger.debug("Logger initialized.")

    # Load env (don't fail unless user asked for strict)
    try:
        env_cfg = get_app_env(strict=args.strict_env)
        if args.strict_env:
            logger.info("Strict env passed; provider credential present.")
        else:
            logger.debug("Env loaded (non-strict).")
    except EnvError as e:
        logger.error("Environment error: %s", e)
        return 2

    try:
        store = _open_store(args, env_cfg, logger)
    except (ValueError, json.JSONDecodeError) as e:
        logger.error("Cannot open store: %s", e)
        return 2

    try:
        return _run(args, env_cfg, store, logger)
    finally:
        store.close()


def _run(args, env_cfg, store, logger) -> int:
    if args.command == "serve":
        import uvicorn

        from .web.app import create_app

        try:
            app = create_app(_build_aggregator(args, env_cfg, store, logger), store=store, env_cfg=env_cfg)
        except ValueError as e:
            logger.error("Cannot start: %s", e)
            return 2
        logger.info("Serving on http://%s:%d", args.host, args.port)
        uvicorn.run(app, host=args.host, port=args.port, log_level=str(args.log_level).lower())
        return 0

    try:
        if args.command == "track":
            from .pipelines.tracking import TrackingNotFoundError

            try:
                aggregator = _build_aggregator(args, env_cfg, store, logger)
            except ValueError as e:
                logger.error("Cannot load replay file: %s", e)
                return 2
            try:
                snapshot = aggregator.get_snapshot(args.order)
            except TrackingNotFoundError:
                _emit({"error": NOT_FOUND_MESSAGE, "orderNumber": args.order})
                return 1
            _emit(snapshot.to_dict())
            return 0

        from .pipelines.metrics import analyze_orders, compute_business_metrics, load_scoped_orders

        orders = load_scoped_orders(
            store, business_id=args.business_id, driver_id=args.driver_id, limit=args.limit)
        business = store.get(BUSINESSES, args.business_id) if args.business_id else None
        summary = compute_business_metrics(
            orders,
            business=business,
            tz=args.tz,
            on_time_tolerance_minutes=env_cfg.ON_TIME_TOLERANCE_MINUTES,
        )
        _emit({
            "businessId": args.business_id,
            "driverId": args.driver_id,
            "metrics": summary.to_dict(),
            "analytics": analyze_orders(orders, tz=args.tz).to_dict(),
        })
        return 0
    except StoreError as e:
        logger.error("Datastore unavailable: %s", e)
        return 1
    except Exception as e:
        logger.exception("Failed to run %s: %s", args.command, e)
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
