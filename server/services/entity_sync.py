"""Commands and tags kept in step with the storage adapter.

Key schema:
    <command_key_prefix><id>  -> Command JSON
    <tag_key_prefix><id>      -> Tag JSON

The synchronizer owns the in-memory collections the presentation layer
renders, and is the only writer of entity records. A single logical writer
is assumed: ids are assigned as max(existing) + 1 with no locking.

Tag rename and delete cascade into every command that references the tag
by name. Each rewrite is an independent write; if one fails the earlier
ones stay applied and the failure is reported in `failed_ids`.
"""

from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Set, Type, TypeVar

from pydantic import ValidationError

from core.config import Settings
from core.logging import get_logger
from core.storage import StorageAdapter
from models.entities import (
    CATEGORIES,
    Command,
    Tag,
    VersionedRecord,
    default_commands,
    default_tags,
    get_category,
)
from models.results import ErrorKind, OperationResult

logger = get_logger(__name__)

RecordT = TypeVar("RecordT", bound=VersionedRecord)

SELECT_ALL = "all"
SELECT_FAVORITES = "favorites"


@dataclass
class LoadResult:
    """Outcome of load_all()."""
    commands: List[Command]
    tags: List[Tag]
    skipped_keys: List[str] = field(default_factory=list)  # Unparseable records
    seeded: List[str] = field(default_factory=list)        # Collections seeded from defaults


class EntitySynchronizer:
    """Reconciles command/tag collections with persistent storage."""

    def __init__(self, adapter: StorageAdapter, settings: Settings):
        self.adapter = adapter
        self.command_prefix = settings.command_key_prefix
        self.tag_prefix = settings.tag_key_prefix
        if (self.command_prefix.startswith(self.tag_prefix)
                or self.tag_prefix.startswith(self.command_prefix)):
            raise ValueError(
                f"Entity key prefixes overlap: {self.command_prefix!r} / {self.tag_prefix!r}"
            )

        self.commands: List[Command] = []
        self.tags: List[Tag] = []
        self._loaded = False

    def command_key(self, command_id: int) -> str:
        return f"{self.command_prefix}{command_id}"

    def tag_key(self, tag_id: int) -> str:
        return f"{self.tag_prefix}{tag_id}"

    # =========================================================================
    # LOADING
    # =========================================================================

    async def load_all(self) -> LoadResult:
        """Load tags and commands, seeding defaults into empty collections.

        If a prefix cannot be listed the defaults are used without being
        written, since seeding could overwrite records the store still holds.
        """
        skipped: List[str] = []
        seeded: List[str] = []

        tags = await self._load_collection("tags", self.tag_prefix, Tag, default_tags,
                                           self.tag_key, skipped, seeded)
        commands = await self._load_collection("commands", self.command_prefix, Command,
                                               default_commands, self.command_key, skipped, seeded)

        self.tags = tags
        self.commands = commands
        self._loaded = True

        logger.info(
            "Entities loaded",
            commands=len(commands),
            tags=len(tags),
            skipped=len(skipped),
            seeded=seeded,
        )
        return LoadResult(commands=list(commands), tags=list(tags),
                          skipped_keys=skipped, seeded=seeded)

    async def _load_collection(self, collection: str, prefix: str, model: Type[RecordT],
                               defaults: Callable[[], List[RecordT]],
                               key_for: Callable[[int], str],
                               skipped: List[str], seeded: List[str]) -> List[RecordT]:
        """Parsed records under `prefix` sorted by id, or the defaults."""
        keys = await self.adapter.scan(prefix)
        if keys is None:
            logger.warning("Using unsaved defaults, storage could not be listed",
                           collection=collection, storage_available=self.adapter.available)
            return defaults()
        if not keys:
            entities = defaults()
            await self._seed(entities, key_for)
            seeded.append(collection)
            return entities

        records: List[RecordT] = []
        for key in keys:
            raw = await self.adapter.get(key)
            if raw is None:
                logger.warning("Record vanished during load", key=key)
                continue
            try:
                records.append(model.from_record(raw))
            except ValidationError as e:
                logger.error("Error loading record", key=key, error_kind=ErrorKind.PARSE_ERROR.value,
                             error=str(e))
                skipped.append(key)

        return sorted(records, key=lambda r: r.id)

    async def _seed(self, entities: Iterable[VersionedRecord],
                    key_for: Callable[[int], str]) -> None:
        for entity in entities:
            if not await self.adapter.set(key_for(entity.id), entity.to_record()):
                logger.error("Error saving default", key=key_for(entity.id))

    async def ensure_loaded(self) -> None:
        """Load once; ids and lookups are only meaningful afterwards."""
        if not self._loaded:
            await self.load_all()

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    def get_command(self, command_id: int) -> Optional[Command]:
        return next((c for c in self.commands if c.id == command_id), None)

    def get_tag(self, tag_id: int) -> Optional[Tag]:
        return next((t for t in self.tags if t.id == tag_id), None)

    def find_tag(self, name: str) -> Optional[Tag]:
        return next((t for t in self.tags if t.name == name), None)

    def find_tag_conflict(self, name: str, exclude_id: Optional[int] = None) -> Optional[Tag]:
        """Another tag whose name equals `name` ignoring case."""
        folded = name.strip().casefold()
        return next(
            (t for t in self.tags if t.id != exclude_id and t.name.casefold() == folded),
            None,
        )

    def next_command_id(self) -> int:
        return max((c.id for c in self.commands), default=0) + 1

    def next_tag_id(self) -> int:
        return max((t.id for t in self.tags), default=0) + 1

    def filter_commands(self, selector: str = SELECT_ALL,
                        viewer_favorites: Optional[Set[int]] = None) -> List[Command]:
        """Commands matching a filter chip.

        `selector` is "all", "favorites", a category id or a tag name.
        `viewer_favorites` is the viewer's personal favourite ids; None
        means admin view, where only the stored favourite flag counts.
        """
        if selector == SELECT_ALL:
            return list(self.commands)
        if selector == SELECT_FAVORITES:
            personal = viewer_favorites or set()
            return [c for c in self.commands if c.favorite or c.id in personal]
        if get_category(selector):
            return [c for c in self.commands if c.category == selector]
        return [c for c in self.commands if c.has_tag(selector)]

    def favorites_count(self, viewer_favorites: Optional[Set[int]] = None) -> int:
        return len(self.filter_commands(SELECT_FAVORITES, viewer_favorites))

    # =========================================================================
    # COMMANDS
    # =========================================================================

    async def save_command(self, command: Command, create: bool = False) -> OperationResult:
        """Validate and persist a new or edited command.

        With `create`, an id that already belongs to a stored command is
        rejected instead of overwriting it.
        """
        await self.ensure_loaded()
        if create and self.get_command(command.id):
            return OperationResult.fail(ErrorKind.VALIDATION_ERROR,
                                        f"Command id {command.id} is already in use")

        name = command.name.strip()
        text = command.command.strip()
        if not name or not text:
            return OperationResult.fail(ErrorKind.VALIDATION_ERROR,
                                        "Both name and command are required")
        if command.category is not None and get_category(command.category) is None:
            return OperationResult.fail(
                ErrorKind.VALIDATION_ERROR,
                f"Unknown category {command.category!r}; expected one of "
                f"{[c.id for c in CATEGORIES]}",
            )

        image = command.image.strip() if command.image else None
        normalized = command.model_copy(update={"name": name, "command": text, "image": image or None})
        return await self._write_command(normalized)

    async def toggle_favorite(self, command_id: int) -> OperationResult:
        """Flip the stored (admin) favourite flag."""
        await self.ensure_loaded()
        command = self.get_command(command_id)
        if command is None:
            return OperationResult.fail(ErrorKind.NOT_FOUND, f"Command {command_id} not found")
        return await self._write_command(command.model_copy(update={"favorite": not command.favorite}))

    async def delete_command(self, command_id: int) -> OperationResult:
        await self.ensure_loaded()
        command = self.get_command(command_id)
        if command is None:
            return OperationResult.fail(ErrorKind.NOT_FOUND, f"Command {command_id} not found")

        if not await self.adapter.delete(self.command_key(command_id)):
            return self._write_failure("Failed to delete command")

        self.commands = [c for c in self.commands if c.id != command_id]
        logger.info("Command deleted", command_id=command_id)
        return OperationResult.ok(command)

    async def _write_command(self, command: Command) -> OperationResult:
        """Size-check and store one command, then update the collection."""
        record = command.to_record()
        if not self.adapter.fits_quota(record):
            size = self.adapter.size_of(record)
            logger.error("Command data too large", command_id=command.id, size=size)
            return OperationResult.fail(
                ErrorKind.QUOTA_EXCEEDED,
                f"Command data is too large ({size // 1024} KB). Try a smaller image.",
            )

        if not await self.adapter.set(self.command_key(command.id), record):
            return self._write_failure(f"Failed to save command {command.id}")

        self._replace(self.commands, command)
        logger.debug("Command saved", command_id=command.id, size=len(record))
        return OperationResult.ok(command)

    # =========================================================================
    # TAGS
    # =========================================================================

    async def save_tag(self, tag: Tag, create: bool = False) -> OperationResult:
        """Persist a new or edited tag; a changed name cascades into commands."""
        await self.ensure_loaded()
        if create and self.get_tag(tag.id):
            return OperationResult.fail(ErrorKind.VALIDATION_ERROR,
                                        f"Tag id {tag.id} is already in use")

        name = tag.name.strip()
        if not name:
            return OperationResult.fail(ErrorKind.VALIDATION_ERROR, "Tag name is required")
        conflict = self.find_tag_conflict(name, exclude_id=tag.id)
        if conflict:
            return OperationResult.fail(ErrorKind.VALIDATION_ERROR,
                                        f"A tag named {conflict.name!r} already exists")

        updated = tag.model_copy(update={"name": name})
        record = updated.to_record()
        if not self.adapter.fits_quota(record):
            return OperationResult.fail(ErrorKind.QUOTA_EXCEEDED, "Tag data is too large")

        previous = self.get_tag(tag.id)
        if not await self.adapter.set(self.tag_key(tag.id), record):
            return self._write_failure(f"Failed to save tag {tag.id}")
        self._replace(self.tags, updated)

        if previous is None or previous.name == name:
            return OperationResult.ok(updated)

        old_name = previous.name
        logger.info("Tag renamed", tag_id=tag.id, old_name=old_name, new_name=name)
        return await self._cascade(
            updated,
            old_name,
            lambda tags: list(dict.fromkeys(name if t == old_name else t for t in tags)),
        )

    async def rename_tag(self, old_name: str, new_name: str) -> OperationResult:
        """Rename a tag and rewrite every command that references it.

        A case-insensitive clash with another tag aborts before any write.
        """
        await self.ensure_loaded()
        tag = self.find_tag(old_name)
        if tag is None:
            return OperationResult.fail(ErrorKind.NOT_FOUND, f"Tag {old_name!r} not found")
        return await self.save_tag(tag.model_copy(update={"name": new_name}))

    async def delete_tag(self, tag_id: int) -> OperationResult:
        """Delete a tag record, then strip its name from referencing commands."""
        await self.ensure_loaded()
        tag = self.get_tag(tag_id)
        if tag is None:
            return OperationResult.fail(ErrorKind.NOT_FOUND, f"Tag {tag_id} not found")

        if not await self.adapter.delete(self.tag_key(tag_id)):
            return self._write_failure("Failed to delete tag")

        self.tags = [t for t in self.tags if t.id != tag_id]
        logger.info("Tag deleted", tag_id=tag_id, name=tag.name)
        return await self._cascade(tag, tag.name, lambda tags: [t for t in tags if t != tag.name])

    async def _cascade(self, tag: Tag, old_name: str,
                       rewrite: Callable[[List[str]], List[str]]) -> OperationResult:
        """Rewrite the tag list of every command referencing `old_name`."""
        updated_ids: List[int] = []
        failed_ids: List[int] = []

        for command in [c for c in self.commands if c.has_tag(old_name)]:
            result = await self._write_command(command.model_copy(update={"tags": rewrite(command.tags)}))
            if result.success:
                updated_ids.append(command.id)
            else:
                logger.error("Cascade rewrite failed", command_id=command.id, tag=old_name,
                             error=result.message)
                failed_ids.append(command.id)

        if failed_ids:
            return OperationResult.fail(
                ErrorKind.CASCADE_WRITE_FAILURE,
                f"{len(failed_ids)} command(s) still reference {old_name!r}",
                entity=tag,
                updated_ids=updated_ids,
                failed_ids=failed_ids,
            )
        return OperationResult.ok(tag, updated_ids)

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _write_failure(self, message: str) -> OperationResult:
        if not self.adapter.available:
            return OperationResult.fail(ErrorKind.NOT_AVAILABLE, "Storage is not available")
        return OperationResult.fail(ErrorKind.WRITE_FAILED, message)

    @staticmethod
    def _replace(collection: list, entity) -> None:
        """Insert or replace by id, keeping the collection sorted."""
        for index, existing in enumerate(collection):
            if existing.id == entity.id:
                collection[index] = entity
                return
        collection.append(entity)
        collection.sort(key=lambda e: e.id)
