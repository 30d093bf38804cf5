#!/usr/bin/env python3
import asyncio
import logging
from typing import Dict

import aiohttp

import constants
from config import AppConfig, load_config
from logging_utils import configure_logging
from reports.daily_update import DailyUpdateService, UpdateFeatures
from scheduler import DailyAlarm
from services.aave_client import AaveRateClient
from services.blockchain_info_client import BlockchainInfoClient
from services.coingecko_client import CoinGeckoClient
from services.fear_greed_client import FearGreedClient
from services.meshcore_transport import Channel, MeshTransport, TransportError
from storage import PriceHistory, PriceHistoryRepository

logger = logging.getLogger("mesh_bitcoin_bot")


async def resolve_channels(transport: MeshTransport, wanted: Dict[str, str]) -> Dict[str, Channel]:
    """Looks up every configured channel; raises TransportError for the first missing one."""
    channels: Dict[str, Channel] = {}
    for channel_type, channel_name in wanted.items():
        channel = await transport.find_channel_by_name(channel_name)
        if channel is None:
            raise TransportError(f'Channel {channel_type}: "{channel_name}" not found!')
        channels[channel_type] = channel
    return channels


def build_update_service(
    config: AppConfig,
    session: aiohttp.ClientSession,
    transport: MeshTransport,
    channel: Channel,
    repository: PriceHistoryRepository,
    history: PriceHistory,
) -> DailyUpdateService:
    policy = config.retry_policy
    return DailyUpdateService(
        transport=transport,
        channel=channel,
        repository=repository,
        history=history,
        coingecko_client=CoinGeckoClient(session, config.coingecko_api_key, policy=policy),
        fear_greed_client=FearGreedClient(session, policy=policy),
        hashrate_client=BlockchainInfoClient(session, policy=policy),
        aave_client=AaveRateClient(
            session,
            rpc_urls=config.rpc_urls,
            pool_address=config.aave_pool_address,
            policy=policy,
        ),
        features=UpdateFeatures(
            show_fear_greed=config.show_fear_greed,
            show_hashrate=config.show_hashrate,
            show_borrow_rates=config.show_borrow_rates,
        ),
    )


async def run(config: AppConfig) -> int:
    transport = MeshTransport(config.port)
    logger.info("Connecting to %s", config.port)
    try:
        await transport.connect()
    except TransportError as exc:
        logger.error("%s", exc)
        return 1

    session = aiohttp.ClientSession(headers={'User-Agent': constants.HTTP_USER_AGENT})
    alarm = None
    try:
        try:
            channels = await resolve_channels(transport, config.channels)
        except TransportError as exc:
            logger.error("%s", exc)
            return 1

        repository = PriceHistoryRepository(config.price_file)
        history = await repository.load()
        logger.info(
            "Loaded price history: lastPrice=%s lastUpdate=%s",
            history.last_price,
            history.last_update.isoformat() if history.last_update else None,
        )

        service = build_update_service(config, session, transport, channels['bitcoin'], repository, history)

        if config.run_now:
            return 0 if await service.run_daily_update() else 1

        await transport.start_message_logging()
        alarm = DailyAlarm(config.alarm_time, service.run_daily_update)
        alarm_task = alarm.start()
        logger.info("bitcoinBot ready.")
        await alarm_task
        return 0
    finally:
        if alarm is not None:
            await alarm.stop()
        await session.close()
        await transport.close()


def main() -> None:
    """The main synchronous entry point for the application."""
    config = load_config()
    configure_logging(config.verbose)
    try:
        exit_code = asyncio.run(run(config))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down.")
        exit_code = 0
    if exit_code:
        exit(exit_code)


if __name__ == "__main__":
    main()
