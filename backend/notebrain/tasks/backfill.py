"""On-demand embedding backfill.

Embeds every note stored without an embedding, e.g. after the embedding
provider was unavailable during note creation::

    python -m notebrain.tasks.backfill
"""

from __future__ import annotations

import asyncio
import logging

from notebrain.config import Settings, get_settings
from notebrain.search.indexer import BackfillResult
from notebrain.services.note_service import NoteService

logger = logging.getLogger(__name__)


async def run_backfill(service: NoteService) -> BackfillResult:
    logger.info("Starting embedding backfill (%d notes stored)", await service.count())
    result = await service.backfill_embeddings()
    logger.info("Embedding backfill done: updated=%d failed=%d", result.updated, result.failed)
    return result


async def _main(settings: Settings) -> BackfillResult:
    service = NoteService.from_settings(settings)
    try:
        return await run_backfill(service)
    finally:
        await service.close()


def main() -> int:
    settings = get_settings()
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    result = asyncio.run(_main(settings))
    return 1 if result.failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
