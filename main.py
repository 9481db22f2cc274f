#!/usr/bin/env python3

import argparse
import asyncio

import uvicorn

from config.config import API_HOST, API_PORT, DEFAULT_NETWORK, FETCH_TRANSACTION_HISTORY, LEDGER_RPC_URL, NETWORKS
from log_utils import get_logger, setup_logging
from session.session import Session
from web.web import create_app

logger = get_logger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Reactive ledger account and transaction stores')
    parser.add_argument('--rpc-url', type=str, default=LEDGER_RPC_URL,
                        help='JSON-RPC endpoint of a ledger node (default: in-memory ledger)')
    parser.add_argument('--network', choices=NETWORKS, default=DEFAULT_NETWORK,
                        help=f'Network to follow (default: {DEFAULT_NETWORK})')
    parser.add_argument('--no-history', action='store_true', default=not FETCH_TRANSACTION_HISTORY,
                        help='Do not fetch transaction history for tracked addresses')
    parser.add_argument('--track', action='append', default=[], metavar='ADDRESS',
                        help='Address to track from startup (repeatable)')
    parser.add_argument('--host', type=str, default=API_HOST,
                        help=f'API host (default: {API_HOST})')
    parser.add_argument('--port', type=int, default=API_PORT,
                        help=f'API port (default: {API_PORT})')
    parser.add_argument('--log-level', type=str, default='INFO',
                        help='Log level (default: INFO)')
    parser.add_argument('--log-file', type=str, default=None,
                        help='Also write logs to this file')
    return parser.parse_args(argv)


async def main(args):
    logger.info("Starting ledger stores")
    logger.info(f"Network: {args.network}, RPC: {args.rpc_url or 'in-memory'}, history: {not args.no_history}")

    def configure(builder):
        if args.rpc_url:
            builder.rpc(args.rpc_url)

    session = Session()
    app = create_app(session, configure, {"network": args.network, "fetchTransactionHistory": not args.no_history})

    @app.on_event("startup")
    async def track_addresses():
        if args.track:
            session.accounts.add(args.track)
            logger.info(f"Tracking {len(args.track)} address(es) from the command line")

    config_web = uvicorn.Config(
        app,
        host=args.host,
        port=args.port,
        log_level=args.log_level.lower(),
        access_log=True
    )
    server_web = uvicorn.Server(config_web)
    logger.info(f"Web server configured on {args.host}:{args.port}")

    try:
        await server_web.serve()
    except asyncio.CancelledError:
        logger.info("Server cancelled, shutting down gracefully")
    finally:
        logger.info("Shutdown completed")


def cli(argv=None):
    args = parse_args(argv)

    setup_logging(
        level=args.log_level,
        log_file=args.log_file,
        enable_console=True,
        enable_structured=True
    )

    try:
        asyncio.run(main(args))
    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down")
    except Exception as e:
        logger.critical(f"Fatal error: {str(e)}")
        raise


if __name__ == "__main__":
    cli()
