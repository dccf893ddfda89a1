"""
Handlers module - combines all handler routers.
"""
from __future__ import annotations

from aiogram import Router

from pair_todo.ui.telegram.handlers import comments, partner, start, tasks

router = Router()

router.include_router(start.router)
router.include_router(tasks.router)
router.include_router(partner.router)
router.include_router(comments.router)

__all__ = ["router"]
