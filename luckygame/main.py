from __future__ import annotations

import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

import asyncio
import logging

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.fsm.storage.memory import MemoryStorage
from aiogram.fsm.storage.redis import RedisStorage
from aiogram.webhook.aiohttp_server import SimpleRequestHandler, setup_application
from aiohttp import web

from config import (
    BOT_MODE,
    BOT_TOKEN,
    REDIS_URL,
    WEBHOOK_LISTEN,
    WEBHOOK_PATH,
    WEBHOOK_PORT,
    WEBHOOK_SECRET_TOKEN,
    WEBHOOK_URL,
)
from luckygame.background import run_background_tasks
from luckygame.db import create_pool, init_db
from luckygame.handlers import routers
from luckygame.logging_setup import setup_logging
from luckygame.miniapp import build_web_app

logger = logging.getLogger(__name__)


async def build_storage() -> MemoryStorage | RedisStorage:
    if REDIS_URL:
        return RedisStorage.from_url(REDIS_URL)
    return MemoryStorage()


async def start_web_app(app: web.Application) -> web.AppRunner:
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host=WEBHOOK_LISTEN, port=WEBHOOK_PORT)
    await site.start()
    logger.info("Web app listening on %s:%s", WEBHOOK_LISTEN, WEBHOOK_PORT)
    return runner


async def run_polling(bot: Bot, dispatcher: Dispatcher, app: web.Application) -> None:
    runner = await start_web_app(app)
    try:
        await bot.delete_webhook(drop_pending_updates=False)
        await dispatcher.start_polling(bot, allowed_updates=None)
    finally:
        await runner.cleanup()


async def run_webhook(bot: Bot, dispatcher: Dispatcher, app: web.Application) -> None:
    webhook_path = WEBHOOK_PATH if WEBHOOK_PATH.startswith("/") else f"/{WEBHOOK_PATH}"
    handler = SimpleRequestHandler(
        dispatcher=dispatcher, bot=bot, secret_token=WEBHOOK_SECRET_TOKEN or None
    )
    handler.register(app, path=webhook_path)
    setup_application(app, dispatcher, bot=bot)
    await start_web_app(app)

    if WEBHOOK_URL:
        await bot.set_webhook(
            url=WEBHOOK_URL + webhook_path,
            secret_token=WEBHOOK_SECRET_TOKEN or None,
            drop_pending_updates=True,
        )
    while True:
        await asyncio.sleep(3600)


async def main() -> None:
    setup_logging()
    if not BOT_TOKEN:
        raise SystemExit("BOT_TOKEN is not set")

    pool = await create_pool()
    await init_db(pool)

    storage = await build_storage()
    bot = Bot(
        token=BOT_TOKEN,
        default=DefaultBotProperties(parse_mode=ParseMode.HTML),
    )
    dispatcher = Dispatcher(storage=storage)
    dispatcher["db_pool"] = pool
    for router in routers:
        dispatcher.include_router(router)

    app = build_web_app(pool, bot)
    app["background_tasks"] = run_background_tasks(pool)

    mode = BOT_MODE or "polling"
    if mode == "webhook" or WEBHOOK_URL:
        await run_webhook(bot, dispatcher, app)
    else:
        await run_polling(bot, dispatcher, app)


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
