"""Edit sessions for commands and tags.

State transitions:
    IDLE -> EDITING                 (start_new / start_edit / update)
    EDITING -> VALIDATING           (submit)
    VALIDATING -> IDLE              (required field missing; error set, draft kept)
    VALIDATING -> SAVING
    SAVING -> SAVED -> IDLE         (after save_success_delay; draft cleared)
    SAVING -> ERROR -> EDITING      (error set, draft kept)
"""

import asyncio
import base64
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional

from core.config import Settings
from core.logging import get_logger
from models.entities import Command, Tag
from models.results import ErrorKind, OperationResult
from services.entity_sync import EntitySynchronizer

logger = get_logger(__name__)


class EditState(str, Enum):
    IDLE = "idle"
    EDITING = "editing"
    VALIDATING = "validating"
    SAVING = "saving"
    SAVED = "saved"
    ERROR = "error"


@dataclass
class CommandDraft:
    id: int
    name: str = ""
    command: str = ""
    image: str = ""
    tags: List[str] = field(default_factory=list)
    category: Optional[str] = None
    favorite: bool = False


@dataclass
class TagDraft:
    id: int
    name: str = ""
    color: str = "#3b82f6"


class EditSession:
    """Shared state machine; subclasses supply validation and persistence."""

    def __init__(self, synchronizer: EntitySynchronizer, settings: Settings):
        self.sync = synchronizer
        self.success_delay = settings.save_success_delay
        self.state = EditState.IDLE
        self.draft = None
        self.error: Optional[OperationResult] = None
        self._reset_task: Optional[asyncio.Task] = None
        self.creating = False

    @property
    def busy(self) -> bool:
        return self.state in (EditState.VALIDATING, EditState.SAVING)

    def _begin(self, draft, creating: bool = False) -> None:
        if self.busy:
            raise RuntimeError(f"Cannot start editing while {self.state.value}")
        self._cancel_reset()
        self.draft = draft
        self.creating = creating
        self.error = None
        self.state = EditState.EDITING

    def update(self, **changes) -> None:
        """Change draft fields; resumes editing after a validation error."""
        if self.draft is None:
            raise RuntimeError("No draft to update")
        if self.busy:
            raise RuntimeError(f"Cannot edit while {self.state.value}")
        self.draft = replace(self.draft, **changes)
        self.state = EditState.EDITING

    def cancel(self) -> None:
        if self.busy:
            raise RuntimeError(f"Cannot cancel while {self.state.value}")
        self._cancel_reset()
        self.draft = None
        self.error = None
        self.state = EditState.IDLE

    async def submit(self) -> OperationResult:
        if self.state != EditState.EDITING or self.draft is None:
            raise RuntimeError(f"Nothing to submit while {self.state.value}")

        self.state = EditState.VALIDATING
        message = self._validate()
        if message:
            self.error = OperationResult.fail(ErrorKind.VALIDATION_ERROR, message)
            self.state = EditState.IDLE
            return self.error

        self.state = EditState.SAVING
        result = await self._persist()

        if result.success:
            self.state = EditState.SAVED
            self.error = None
            self.creating = False
            self._reset_task = asyncio.ensure_future(self._finish_after_delay())
        else:
            self.state = EditState.ERROR
            logger.warning("Save failed", error=result.error.value if result.error else None,
                           message=result.message)
            self.error = result
            self.state = EditState.EDITING
        return result

    async def wait_until_idle(self) -> None:
        """Wait out the success display delay, if one is pending."""
        if self._reset_task:
            await self._reset_task

    async def _finish_after_delay(self) -> None:
        await asyncio.sleep(self.success_delay)
        if self.state == EditState.SAVED:
            self.draft = None
            self.state = EditState.IDLE

    def _cancel_reset(self) -> None:
        if self._reset_task and not self._reset_task.done():
            self._reset_task.cancel()
        self._reset_task = None

    def _validate(self) -> Optional[str]:
        raise NotImplementedError

    async def _persist(self) -> OperationResult:
        raise NotImplementedError


class CommandEditor(EditSession):
    """Create or edit one command."""

    def __init__(self, synchronizer: EntitySynchronizer, settings: Settings):
        super().__init__(synchronizer, settings)
        self.max_image_bytes = settings.max_image_upload_bytes

    async def start_new(self) -> CommandDraft:
        await self.sync.ensure_loaded()
        self._begin(CommandDraft(id=self.sync.next_command_id()), creating=True)
        return self.draft

    def start_edit(self, command: Command) -> CommandDraft:
        self._begin(CommandDraft(
            id=command.id,
            name=command.name,
            command=command.command,
            image=command.image or "",
            tags=list(command.tags),
            category=command.category,
            favorite=command.favorite,
        ))
        return self.draft

    def toggle_tag(self, tag_name: str) -> None:
        tags = list(self.draft.tags) if self.draft else []
        if tag_name in tags:
            tags.remove(tag_name)
        else:
            tags.append(tag_name)
        self.update(tags=tags)

    def attach_image(self, data: bytes, content_type: str) -> OperationResult:
        """Embed an uploaded image in the draft as a base64 data URL."""
        if not content_type or not content_type.startswith("image/"):
            return OperationResult.fail(ErrorKind.VALIDATION_ERROR, "Please select an image file")
        if len(data) > self.max_image_bytes:
            return OperationResult.fail(
                ErrorKind.VALIDATION_ERROR,
                f"Image is too large. Please use an image smaller than "
                f"{self.max_image_bytes // (1024 * 1024)}MB.",
            )

        encoded = base64.b64encode(data).decode("ascii")
        self.update(image=f"data:{content_type};base64,{encoded}")
        logger.debug("Image attached", size_kb=round(len(encoded) / 1024), content_type=content_type)
        return OperationResult.ok()

    def _validate(self) -> Optional[str]:
        if not self.draft.name.strip() or not self.draft.command.strip():
            return "Both name and command are required"
        return None

    async def _persist(self) -> OperationResult:
        existing = self.sync.get_command(self.draft.id)
        command = Command(
            id=self.draft.id,
            name=self.draft.name,
            command=self.draft.command,
            image=self.draft.image,
            tags=self.draft.tags,
            category=self.draft.category,
            favorite=existing.favorite if existing else self.draft.favorite,
        )
        return await self.sync.save_command(command, create=self.creating)


class TagEditor(EditSession):
    """Create or edit one tag. Renames cascade through the synchronizer."""

    async def start_new(self) -> TagDraft:
        await self.sync.ensure_loaded()
        self._begin(TagDraft(id=self.sync.next_tag_id()), creating=True)
        return self.draft

    def start_edit(self, tag: Tag) -> TagDraft:
        self._begin(TagDraft(id=tag.id, name=tag.name, color=tag.color))
        return self.draft

    def _validate(self) -> Optional[str]:
        name = self.draft.name.strip()
        if not name:
            return "Tag name is required"
        if self.sync.find_tag_conflict(name, exclude_id=self.draft.id):
            return "A tag with this name already exists"
        return None

    async def _persist(self) -> OperationResult:
        return await self.sync.save_tag(Tag(id=self.draft.id, name=self.draft.name,
                                            color=self.draft.color),
                                        create=self.creating)
