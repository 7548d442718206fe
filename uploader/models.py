"""
Domain models for the uploader.

Defines the video record, its upload status state machine and the wire
document format exchanged with the remote document store.
"""

from dataclasses import dataclass, replace as dataclass_replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any, FrozenSet

from pydantic import BaseModel, ConfigDict, ValidationError

from .errors import DecodeFailed, InvalidTransition


class UploadStatus(str, Enum):
    """Lifecycle states of a video record"""
    PENDING = "pending"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    COMPLETED = "completed"
    FAILED = "failed"
    PROCESSED_BY_THUNK = "processedByThunk"


ALLOWED_TRANSITIONS: Dict[UploadStatus, FrozenSet[UploadStatus]] = {
    UploadStatus.PENDING: frozenset({UploadStatus.UPLOADING, UploadStatus.FAILED}),
    UploadStatus.UPLOADING: frozenset({UploadStatus.UPLOADED, UploadStatus.FAILED}),
    UploadStatus.UPLOADED: frozenset({
        UploadStatus.COMPLETED,
        UploadStatus.FAILED,
        UploadStatus.PROCESSED_BY_THUNK,
    }),
    UploadStatus.COMPLETED: frozenset({UploadStatus.PROCESSED_BY_THUNK}),
    UploadStatus.FAILED: frozenset({UploadStatus.UPLOADING, UploadStatus.FAILED}),
    UploadStatus.PROCESSED_BY_THUNK: frozenset({UploadStatus.PROCESSED_BY_THUNK}),
}

PLAYABLE_STATUSES = frozenset({
    UploadStatus.COMPLETED,
    UploadStatus.UPLOADED,
    UploadStatus.PROCESSED_BY_THUNK,
})


def can_transition(current: UploadStatus, target: UploadStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def check_transition(current: UploadStatus, target: UploadStatus) -> None:
    """Raise InvalidTransition unless current -> target is permitted"""
    if not can_transition(current, target):
        raise InvalidTransition(f"Cannot move from {current.value} to {target.value}")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class VideoDocument(BaseModel):
    """Wire schema of a record as stored in the remote document store"""
    model_config = ConfigDict(extra="ignore")

    title: str
    videoURL: str = ""
    createdAt: datetime
    userId: str
    userEmail: str
    status: UploadStatus
    localURL: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class VideoRecord:
    """Represents one recorded-and-uploaded video"""
    id: str
    title: str
    video_url: str
    created_at: datetime
    user_id: str
    user_email: str
    status: UploadStatus
    local_url: Optional[str] = None
    error: Optional[str] = None

    def replace(self, **changes) -> 'VideoRecord':
        """Return a copy with the given fields changed"""
        return dataclass_replace(self, **changes)

    def same_for_display(self, other: Optional['VideoRecord']) -> bool:
        """Two snapshots render identically iff id, status and URL match"""
        if other is None:
            return False
        return (
            self.id == other.id
            and self.status == other.status
            and self.video_url == other.video_url
        )

    @property
    def is_playable(self) -> bool:
        # An uploaded/completed record without a URL is representable but
        # cannot be played.
        return self.status in PLAYABLE_STATUSES and bool(self.video_url)

    def to_document(self) -> Dict[str, Any]:
        """Encode for the remote document store (JSON-compatible)"""
        document = {
            "title": self.title,
            "videoURL": self.video_url,
            "createdAt": self.created_at.isoformat(),
            "userId": self.user_id,
            "userEmail": self.user_email,
            "status": self.status.value,
            "localURL": self.local_url,
        }
        if self.error is not None:
            document["error"] = self.error
        return document

    @classmethod
    def from_document(cls, record_id: str, data: Optional[Dict[str, Any]]) -> 'VideoRecord':
        """
        Decode a remote document.

        Args:
            record_id: Document id; takes precedence over any id in the payload
            data: Raw document fields

        Raises:
            DecodeFailed: if the payload does not match the document schema
        """
        if not record_id:
            raise DecodeFailed("Document has no id")
        if data is None:
            raise DecodeFailed(f"Document {record_id} has no payload")

        try:
            document = VideoDocument.model_validate(data)
        except ValidationError as e:
            raise DecodeFailed(f"Document {record_id} is malformed: {e}") from e

        created_at = document.createdAt
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)

        return cls(
            id=record_id,
            title=document.title,
            video_url=document.videoURL,
            created_at=created_at,
            user_id=document.userId,
            user_email=document.userEmail,
            status=document.status,
            local_url=document.localURL,
            error=document.error,
        )
