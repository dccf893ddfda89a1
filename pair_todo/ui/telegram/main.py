from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode

from pair_todo.config import load_settings
from pair_todo.domain.tasks.service import TaskService
from pair_todo.domain.tasks.week import WeekClock
from pair_todo.infra.clock.system_clock import SystemClock
from pair_todo.infra.db.factory import build_task_store
from pair_todo.infra.ids.uuid_gen import UuidGenerator
from pair_todo.ui.telegram.handlers import router as handlers_router
from pair_todo.ui.telegram.middlewares.auth import AllowedUsersMiddleware
from pair_todo.ui.telegram.middlewares.di import DIMiddleware

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [PID:%(process)d] - %(message)s"


async def main() -> None:
    settings = load_settings()

    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)

    repo_root = Path(__file__).resolve().parents[3]  # .../pair_todo/ui/telegram/main.py -> repo root

    store = build_task_store(settings, repo_root)
    await store.init()

    clock = SystemClock()
    service = TaskService(
        store=store,
        clock=clock,
        ids=UuidGenerator(),
        week_clock=WeekClock(settings.week_timezone),
    )

    # --- bot/dispatcher ---
    bot = Bot(
        token=settings.bot_token,
        default=DefaultBotProperties(parse_mode=ParseMode.HTML),
    )
    dp = Dispatcher()

    # --- middlewares ---
    dp.message.middleware(AllowedUsersMiddleware(settings.allowed_telegram_ids))
    dp.callback_query.middleware(AllowedUsersMiddleware(settings.allowed_telegram_ids))

    dp.message.middleware(DIMiddleware(service, clock, settings.week_timezone))
    dp.callback_query.middleware(DIMiddleware(service, clock, settings.week_timezone))

    # --- routers ---
    dp.include_router(handlers_router)

    logger.info("Starting polling (backend=%s, week tz=%s)", settings.db_backend, settings.week_timezone)
    try:
        await dp.start_polling(bot)
    finally:
        await bot.session.close()
        await store.close()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
