# smartbroker/worker/runner.py
"""Execução em segundo plano dentro do processo (asyncio), sem fila externa.

Tarefas não sobrevivem a um restart; quem agenda grava o estado de erro no
próprio documento (campanha, sessão) para permitir nova tentativa.
"""

import asyncio
from typing import Awaitable, Optional, Set

from fastapi import Request
from loguru import logger

from smartbroker.core.logging_config import UNSET_TRACE_ID, new_trace_id, trace_id_var


class BackgroundRunner:
    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def schedule(self, coro: Awaitable, name: Optional[str] = None) -> asyncio.Task:
        """Agenda ``coro`` no loop atual e devolve imediatamente."""
        trace_id = trace_id_var.get()
        if trace_id == UNSET_TRACE_ID:
            trace_id = new_trace_id("task")

        async def _run():
            trace_id_var.set(trace_id)
            with logger.contextualize(trace_id=trace_id):
                try:
                    await coro
                except asyncio.CancelledError:
                    logger.warning(f"Background task '{name}' cancelled.")
                    raise
                except Exception:
                    logger.exception(f"Background task '{name}' failed.")

        task = asyncio.get_running_loop().create_task(_run(), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug(f"Background task scheduled: {name}")
        return task

    async def drain(self) -> None:
        """Aguarda todas as tarefas pendentes, incluindo as agendadas durante a espera."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self, timeout: float = 10.0) -> None:
        if not self._tasks:
            return
        logger.info(f"Waiting for {len(self._tasks)} background task(s) to finish...")
        try:
            await asyncio.wait_for(self.drain(), timeout=timeout)
        except asyncio.TimeoutError:
            remaining = list(self._tasks)
            logger.warning(f"Cancelling {len(remaining)} background task(s) after {timeout}s.")
            for task in remaining:
                task.cancel()
            await asyncio.gather(*remaining, return_exceptions=True)


def get_runner(request: Request) -> BackgroundRunner:
    return request.app.state.runner
