"""Entry point: serve the points API or run lifetime reconciliation"""
import argparse
import asyncio
import logging

from vitalpoints.config import LOG_LEVEL, validate_config

# Configure logging
logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=getattr(logging, LOG_LEVEL)
)

logger = logging.getLogger(__name__)


async def run_reconciliation(repair: bool) -> int:
    """
    Reconcile lifetime_points against the ledger for every account

    Returns:
        Number of accounts that drifted
    """
    from vitalpoints.db.store import get_store
    from vitalpoints.points.aggregator import reconcile_all

    store = get_store()
    try:
        logger.info("Validating configuration...")
        validate_config()

        logger.info("Opening points store...")
        await store.init()

        drifted = await reconcile_all(store, repair=repair)
        for report in drifted:
            logger.warning(
                f"User {report.user_id}: recorded={report.recorded_lifetime_points}, "
                f"ledger={report.ledger_total_points}, drift={report.drift}, "
                f"repaired={report.repaired}"
            )
        return len(drifted)
    finally:
        logger.info("Closing points store...")
        await store.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="VitalPoints points engine")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8080)

    reconcile = subparsers.add_parser("reconcile", help="Check lifetime_points against the ledger")
    reconcile.add_argument("--repair", action="store_true", help="Rewrite drifted counters")

    args = parser.parse_args()

    if args.command == "serve":
        import uvicorn

        uvicorn.run("vitalpoints.api.server:app", host=args.host, port=args.port)
    else:
        drifted = asyncio.run(run_reconciliation(args.repair))
        raise SystemExit(1 if drifted and not args.repair else 0)


if __name__ == "__main__":
    main()
