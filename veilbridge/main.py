"""Application entry points: indexer, settlement processor and read API."""

import asyncio
import logging
import signal

import uvicorn

from veilbridge.app import create_app
from veilbridge.config import Config
from veilbridge.datasources import (
    Web3EventSource,
    Web3IngressReader,
    Web3VaultClient,
    connect,
)
from veilbridge.datasources.abis import INGRESS_ABI, VAULT_ABI
from veilbridge.errors import ConfigError
from veilbridge.models import Chain, DESTINATION_EVENTS, SOURCE_EVENTS
from veilbridge.services import (
    ChainIndexer,
    IdentifierResolver,
    IndexerApiTransferSource,
    ReconciliationEngine,
    SettlementProcessor,
    StoreTransferSource,
)
from veilbridge.store import RecordStore, open_store

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


def _load_config() -> Config:
    config = Config.from_env()
    logging.getLogger().setLevel(config.log_level.upper())
    return config


def _stop_on_signals(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)


def build_indexers(config: Config, store: RecordStore) -> list[ChainIndexer]:
    """Wire one indexer per chain around a shared reconciliation engine."""
    source_w3 = connect(config.source_rpc_url)
    destination_w3 = connect(config.destination_rpc_url)

    resolver = IdentifierResolver(
        Web3IngressReader(source_w3, config.ingress_address),
        default_domain=config.destination_domain,
    )
    engine = ReconciliationEngine(
        store,
        resolver,
        default_domain=config.destination_domain,
        max_pending_attempts=config.pending_max_attempts,
    )

    return [
        ChainIndexer(
            Web3EventSource(Chain.SOURCE, source_w3, config.ingress_address, INGRESS_ABI, SOURCE_EVENTS),
            engine,
            store,
            start_block=config.ingress_start_block,
            block_range=config.block_range,
            poll_interval=config.indexer_poll_interval,
            retry_pending=True,
        ),
        ChainIndexer(
            Web3EventSource(Chain.DESTINATION, destination_w3, config.vault_address, VAULT_ABI, DESTINATION_EVENTS),
            engine,
            store,
            start_block=config.vault_start_block,
            block_range=config.block_range,
            poll_interval=config.indexer_poll_interval,
        ),
    ]


async def run_indexer(config: Config) -> None:
    """Index both chains until SIGINT/SIGTERM."""
    config.validate_indexer()
    store = await open_store(config.database_url)
    indexers = build_indexers(config, store)

    stop_event = asyncio.Event()
    _stop_on_signals(stop_event)

    logger.info(f"[Config] Source RPC: {config.source_rpc_url}")
    logger.info(f"[Config] Destination RPC: {config.destination_rpc_url}")
    logger.info(f"[Config] Ingress: {config.ingress_address}  Vault: {config.vault_address}")

    try:
        await asyncio.gather(*(indexer.run(stop_event) for indexer in indexers))
    finally:
        stop_event.set()
        for indexer in indexers:
            await indexer.source.close()
        await store.close()


async def run_processor(config: Config) -> None:
    """Run the settlement processor until SIGINT/SIGTERM."""
    config.validate_processor()

    store = None
    if config.indexer_api_url:
        source = IndexerApiTransferSource(config.indexer_api_url)
    else:
        store = await open_store(config.database_url)
        source = StoreTransferSource(store)

    vault = Web3VaultClient(connect(config.destination_rpc_url), config.vault_address, config.owner_private_key)
    processor = SettlementProcessor(
        source,
        vault,
        poll_interval=config.poll_interval,
        max_retries=config.max_retries,
        retry_delay=config.retry_delay,
    )

    logger.info("🚀 Transfer settlement processor starting...")
    logger.info(f"[Config] Candidates from: {config.indexer_api_url or config.database_url}")
    logger.info(f"[Config] Destination RPC: {config.destination_rpc_url}")
    logger.info(f"[Config] Vault Address: {config.vault_address}")
    logger.info(f"[Config] Signer: {vault.address}")
    logger.info(f"[Config] Poll Interval: {config.poll_interval_ms}ms")

    stop_event = asyncio.Event()
    _stop_on_signals(stop_event)

    processor.start()
    try:
        await stop_event.wait()
        logger.info("🛑 Shutting down service...")
    finally:
        await processor.stop()
        await source.close()
        await vault.close()
        if store is not None:
            await store.close()


def _run(coro_factory) -> None:
    try:
        config = _load_config()
        asyncio.run(coro_factory(config))
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        raise SystemExit(1)


def indexer():
    """Console entry point for the chain indexer."""
    _run(run_indexer)


def processor():
    """Console entry point for the settlement processor."""
    _run(run_processor)


def main():
    """Run the read API."""
    config = _load_config()
    app = create_app(config)

    uvicorn.run(
        app,
        host=config.host,
        port=config.port,
    )


if __name__ == "__main__":
    main()
