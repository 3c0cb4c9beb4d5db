"""Per-viewer favourites, stored apart from the command records.

Viewers cannot edit commands, so their favourites live in one JSON map
(`{"<command id>": true}`) under a dedicated key. A command counts as a
favourite for the viewer if either the viewer starred it or an admin set
its stored favourite flag.
"""

import json
from typing import Set

from core.config import Settings
from core.logging import get_logger
from core.storage import StorageAdapter
from models.entities import Command
from models.results import ErrorKind, OperationResult

logger = get_logger(__name__)


class ViewerFavorites:

    def __init__(self, adapter: StorageAdapter, settings: Settings):
        self.adapter = adapter
        self.key = settings.viewer_favorites_key
        self._ids: Set[int] = set()

    async def load(self) -> Set[int]:
        raw = await self.adapter.get(self.key)
        if raw is None:
            self._ids = set()
            return set()

        try:
            data = json.loads(raw)
            self._ids = {int(command_id) for command_id, starred in data.items() if starred}
        except (ValueError, AttributeError, TypeError) as e:
            logger.error("Error reading viewer favorites", error=str(e))
            self._ids = set()
        return set(self._ids)

    def ids(self) -> Set[int]:
        return set(self._ids)

    def is_favorited(self, command: Command) -> bool:
        return command.favorite or command.id in self._ids

    async def toggle(self, command_id: int) -> OperationResult:
        """Flip the viewer's star for a command.

        A failed write leaves the in-memory set unchanged.
        """
        ids = set(self._ids)
        ids.symmetric_difference_update({command_id})

        payload = json.dumps({str(starred_id): True for starred_id in sorted(ids)})
        if not await self.adapter.set(self.key, payload):
            logger.warning("Error saving viewer favorites", command_id=command_id)
            if not self.adapter.available:
                return OperationResult.fail(ErrorKind.NOT_AVAILABLE, "Storage is not available")
            return OperationResult.fail(ErrorKind.WRITE_FAILED, "Failed to save favorites")

        self._ids = ids
        return OperationResult.ok(command_id)
