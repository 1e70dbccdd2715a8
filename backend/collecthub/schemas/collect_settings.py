"""Pydantic schemas for the operator-editable collect settings."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

DedupField = Literal["name", "type", "year", "area", "lang", "actor", "director"]
UpdateField = Literal[
    "pic", "content", "remarks", "year", "area", "lang",
    "actor", "director", "writer", "pubdate", "duration", "play",
]
PlayUpdateMode = Literal["merge", "replace"]


class CollectSettings(BaseModel):
    """Ingestion policy stored under the ``collect`` settings key."""

    model_config = ConfigDict(extra="ignore")

    # Comma separated; a record whose name contains any entry is rejected
    filter_keywords: str = ""

    default_vod_status: Literal[0, 1] = 1

    # Randomized popularity seeding on insert
    random_hits: bool = False
    random_hits_min: int = 1
    random_hits_max: int = 1000
    random_up_down: bool = False
    random_up_min: int = 1
    random_up_max: int = 1000
    random_down_min: int = 1
    random_down_max: int = 1000
    random_score: bool = False
    random_score_min: float = 6.0
    random_score_max: float = 9.9

    # Synonyms are "find=replace" lines, applied in order
    enable_synonyms: bool = False
    name_synonyms_text: str = ""
    content_synonyms_text: str = ""
    play_from_synonyms_text: str = ""
    area_synonyms_text: str = ""
    lang_synonyms_text: str = ""

    dedup_fields: list[DedupField] = Field(default_factory=lambda: ["name", "type"])
    update_fields: list[UpdateField] = Field(default_factory=lambda: ["play", "remarks", "pic"])
    play_update_mode: PlayUpdateMode = "merge"

    def effective_update_fields(self) -> list[str]:
        """Update fields minus anything used to match the record."""
        return [f for f in self.update_fields if f not in self.dedup_fields]


class CollectSettingsUpdate(BaseModel):
    """Partial update; unset fields keep their stored value."""

    model_config = ConfigDict(extra="forbid")

    filter_keywords: str | None = None
    default_vod_status: Literal[0, 1] | None = None
    random_hits: bool | None = None
    random_hits_min: int | None = None
    random_hits_max: int | None = None
    random_up_down: bool | None = None
    random_up_min: int | None = None
    random_up_max: int | None = None
    random_down_min: int | None = None
    random_down_max: int | None = None
    random_score: bool | None = None
    random_score_min: float | None = None
    random_score_max: float | None = None
    enable_synonyms: bool | None = None
    name_synonyms_text: str | None = None
    content_synonyms_text: str | None = None
    play_from_synonyms_text: str | None = None
    area_synonyms_text: str | None = None
    lang_synonyms_text: str | None = None
    dedup_fields: list[DedupField] | None = None
    update_fields: list[UpdateField] | None = None
    play_update_mode: PlayUpdateMode | None = None


class SystemSettings(BaseModel):
    """Subset of the ``system`` settings key read by the ingestion endpoints."""

    model_config = ConfigDict(extra="ignore")

    interface_pass: str = ""
