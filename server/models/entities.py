"""Command and tag records with a versioned JSON schema.

Each record is stored as one flat JSON document per key. Records written
before versioning was introduced carry no `schema_version` and are read as
version 1.
"""

from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

SCHEMA_VERSION = 1


class VersionedRecord(BaseModel):
    """Base for persisted entities."""

    schema_version: int = Field(default=SCHEMA_VERSION)

    model_config = {"extra": "ignore"}

    @field_validator("schema_version")
    @classmethod
    def validate_schema_version(cls, v):
        if v < 1 or v > SCHEMA_VERSION:
            raise ValueError(f"Unsupported schema version: {v}")
        return v

    def to_record(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_record(cls, raw: str):
        return cls.model_validate_json(raw)


class Command(VersionedRecord):
    """A console command shown as a card."""

    id: int = Field(ge=1)
    name: str
    command: str
    image: Optional[str] = None    # URL or data: URL
    tags: List[str] = Field(default_factory=list)
    category: Optional[str] = None
    favorite: bool = False

    @field_validator("image", "category", mode="before")
    @classmethod
    def empty_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("tags")
    @classmethod
    def unique_tags(cls, v):
        """Tags behave as a set; keep first occurrence order."""
        return list(dict.fromkeys(v))

    def has_tag(self, name: str) -> bool:
        return name in self.tags


class Tag(VersionedRecord):
    """A user-defined label. Names are unique case-insensitively."""

    id: int = Field(ge=1)
    name: str
    color: str = "#3b82f6"


class Category(BaseModel):
    """Static category, referenced by id only and never persisted."""

    id: str
    name: str
    color: str


CATEGORIES: List[Category] = [
    Category(id="give", name="Give", color="#059669"),
    Category(id="spawn", name="Spawn", color="#7c3aed"),
]


def get_category(category_id: Optional[str]) -> Optional[Category]:
    return next((c for c in CATEGORIES if c.id == category_id), None)


def default_commands() -> List[Command]:
    """Seed commands for an empty store. Fresh instances on every call."""
    return [
        Command(
            id=1,
            name="God Mode",
            command="c_godmode()",
            image="https://static.wikia.nocookie.net/dont-starve-game/images/4/42/Wilson_Portrait.png/revision/latest?cb=20160723191003",
            tags=["Admin"],
            favorite=False,
            category=None,
        ),
        Command(
            id=2,
            name="Spawn Spider",
            command='c_spawn("spider")',
            image="https://static.wikia.nocookie.net/dont-starve-game/images/1/14/Spider_Build.png/revision/latest?cb=20160723194014",
            tags=["Spawning"],
            favorite=False,
            category="spawn",
        ),
        Command(
            id=3,
            name="Give Gold",
            command='c_give("goldnugget", 40)',
            image="https://static.wikia.nocookie.net/dont-starve-game/images/9/92/Gold_Nugget.png/revision/latest?cb=20160723185614",
            tags=["Items"],
            favorite=True,
            category="give",
        ),
    ]


def default_tags() -> List[Tag]:
    return [
        Tag(id=1, name="Admin", color="#ef4444"),
        Tag(id=2, name="Spawning", color="#8b5cf6"),
        Tag(id=3, name="Items", color="#10b981"),
    ]
