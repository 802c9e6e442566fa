"""
Pydantic models for discovered artifacts and repository metadata.

Defines the records produced by discovery, the raw search hits that
feed it, and the criteria/results used by cleanup runs.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from urllib.parse import unquote, urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _blank_to_none(v: Any) -> Any:
    if isinstance(v, str) and not v.strip():
        return None
    return v


def _ensure_utc(v: datetime | None) -> datetime | None:
    if v is not None and v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v


class RepoClass(Enum):
    """Classification of a repository on the server."""

    LOCAL = "local"
    REMOTE = "remote"
    VIRTUAL = "virtual"


class RepositoryInfo(BaseModel):
    """One entry of the server's repository listing."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    key: str = Field(description="Repository key")
    rclass: RepoClass = Field(default=RepoClass.LOCAL, alias="type")
    package_type: str | None = Field(default=None, alias="packageType")
    url: str | None = Field(default=None, description="Repository URL")
    description: str | None = None

    @field_validator("rclass", mode="before")
    @classmethod
    def validate_rclass(cls, v):
        """Accept the server's upper-case class names."""
        if isinstance(v, str):
            try:
                return RepoClass(v.lower())
            except ValueError:
                return RepoClass.LOCAL
        return v


class SearchHit(BaseModel):
    """A raw result from a date-ranged search: a URI to resolve."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    uri: str
    last_downloaded: datetime | None = Field(default=None, alias="lastDownloaded")

    @field_validator("last_downloaded", mode="before")
    @classmethod
    def blank_last_downloaded(cls, v):
        return _blank_to_none(v)

    @field_validator("last_downloaded")
    @classmethod
    def utc_last_downloaded(cls, v):
        return _ensure_utc(v)


class DiscoveredArtifact(BaseModel):
    """
    Full metadata for one artifact, resolved from a search hit.

    Records are immutable; ``with_last_downloaded`` returns a copy with the
    usage timestamp attached.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    uri: str = Field(description="Storage API URI of the artifact")
    repo: str = Field(default="", description="Repository key")
    path: str = Field(default="", description="Path within the repository")
    size: int = Field(default=0, ge=0, description="Size in bytes")
    created: datetime = Field(description="Creation timestamp")
    created_by: str | None = Field(default=None, alias="createdBy")
    last_modified: datetime | None = Field(default=None, alias="lastModified")
    modified_by: str | None = Field(default=None, alias="modifiedBy")
    last_updated: datetime | None = Field(default=None, alias="lastUpdated")
    last_downloaded: datetime | None = Field(default=None, alias="lastDownloaded")
    download_uri: str = Field(default="", alias="downloadUri")
    mime_type: str | None = Field(default=None, alias="mimeType")
    checksums: dict[str, str] = Field(default_factory=dict)

    @field_validator(
        "created", "last_modified", "last_updated", "last_downloaded", mode="before"
    )
    @classmethod
    def blank_timestamps(cls, v):
        """The API sends empty strings for unset dates."""
        return _blank_to_none(v)

    @field_validator("created", "last_modified", "last_updated", "last_downloaded")
    @classmethod
    def utc_timestamps(cls, v):
        """Treat naive timestamps as UTC so ages can be compared."""
        return _ensure_utc(v)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "DiscoveredArtifact":
        """Build a record from the storage API's JSON payload."""
        return cls.model_validate(data)

    def with_last_downloaded(self, when: datetime | None) -> "DiscoveredArtifact":
        """Return a copy with the last-downloaded timestamp set."""
        if when is None:
            return self
        return self.model_copy(update={"last_downloaded": _ensure_utc(when)})

    def _activity_dates(self) -> list[datetime]:
        return [
            d
            for d in (self.created, self.last_modified, self.last_downloaded)
            if d is not None
        ]

    @property
    def earliest_date(self) -> datetime:
        """Earliest of created, last modified and last downloaded."""
        return min(self._activity_dates())

    @property
    def latest_date(self) -> datetime:
        """Latest of created, last modified and last downloaded."""
        return max(self._activity_dates())

    @property
    def relative_path(self) -> str:
        """Path of the artifact inside its repository."""
        if self.download_uri and self.repo:
            url_path = unquote(urlparse(self.download_uri).path)
            marker = f"/{self.repo}/"
            if marker in url_path:
                return url_path.split(marker, 1)[1]
        return self.path.lstrip("/")

    def age_days(self, now: datetime | None = None) -> float:
        """Days elapsed since the latest activity."""
        now = _ensure_utc(now) if now else datetime.now(timezone.utc)
        return (now - self.latest_date).total_seconds() / 86400

    def to_report_dict(self) -> dict[str, Any]:
        """Plain dict of the reported properties, timestamps as ISO strings."""
        data = {}
        for name in (
            "uri",
            "last_downloaded",
            "repo",
            "created",
            "last_modified",
            "last_updated",
            "download_uri",
            "mime_type",
            "size",
            "checksums",
        ):
            value = getattr(self, name)
            data[name] = value.isoformat() if isinstance(value, datetime) else value
        return data

    def __str__(self) -> str:
        return f"{self.repo}/{self.relative_path}" if self.repo else self.uri


class CleanupCriteria(BaseModel):
    """Date cutoffs an artifact must satisfy to be archived or deleted."""

    created_before: datetime | None = None
    modified_before: datetime | None = None
    downloaded_before: datetime | None = None
    last_used_before: datetime | None = None

    @field_validator("*")
    @classmethod
    def utc_cutoffs(cls, v):
        return _ensure_utc(v)

    @property
    def search_end(self) -> datetime | None:
        """Earliest provided cutoff; nothing newer can match."""
        cutoffs = [
            c
            for c in (
                self.created_before,
                self.modified_before,
                self.downloaded_before,
                self.last_used_before,
            )
            if c is not None
        ]
        return min(cutoffs) if cutoffs else None

    def is_met_by(self, artifact: DiscoveredArtifact) -> bool:
        """Return True if every provided cutoff holds for the artifact."""
        if self.created_before and not artifact.created < self.created_before:
            return False
        if self.modified_before:
            modified = artifact.last_modified or artifact.created
            if not modified < self.modified_before:
                return False
        if self.downloaded_before and artifact.last_downloaded is not None:
            if not artifact.last_downloaded < self.downloaded_before:
                return False
        if self.last_used_before and not artifact.latest_date < self.last_used_before:
            return False
        return True


class CleanupTally(BaseModel):
    """Count and byte total for one disposition."""

    artifact_count: int = 0
    bytes: int = 0

    def add(self, artifact: DiscoveredArtifact) -> None:
        self.artifact_count += 1
        self.bytes += artifact.size


class CleanupResult(BaseModel):
    """Per-item outcome of an archive or clean run."""

    success: bool = Field(default=True, description="False if any item failed")
    archived: CleanupTally = Field(default_factory=CleanupTally)
    deleted: CleanupTally = Field(default_factory=CleanupTally)
    skipped: CleanupTally = Field(default_factory=CleanupTally)
    failed: CleanupTally = Field(default_factory=CleanupTally)
    errors: list[str] = Field(default_factory=list, description="Any errors encountered")
