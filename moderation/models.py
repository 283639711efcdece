"""Typed moderation payloads and the track changes a decision implies."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional, Type, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from database.enums import Decision, ModerationType, TrackStatus

class PayloadModel(BaseModel):
    """Payloads are stored as JSONB with camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(mode='json', by_alias=True, exclude_none=True)

class TrackCreatePayload(PayloadModel):
    """Full snapshot of a newly uploaded track."""
    title: str
    description: str
    author_name: str
    genre_id: UUID
    price: Decimal
    media_url: str
    cover_url: Optional[str] = None

class TrackUpdatePayload(PayloadModel):
    """Proposed changes; a field left as None is not a change."""
    title: Optional[str] = None
    description: Optional[str] = None
    author_name: Optional[str] = None
    genre_id: Optional[UUID] = None
    price: Optional[Decimal] = None
    media_url: Optional[str] = None
    cover_url: Optional[str] = None

    def changes(self) -> Dict[str, Any]:
        """Column values for every field the seller actually provided."""
        return self.model_dump(exclude_none=True)

class TrackDeletePayload(PayloadModel):
    id: UUID
    title: str

TrackPayload = Union[TrackCreatePayload, TrackUpdatePayload, TrackDeletePayload]

PAYLOAD_MODELS: Dict[ModerationType, Type[PayloadModel]] = {
    ModerationType.TRACK_CREATE: TrackCreatePayload,
    ModerationType.TRACK_UPDATE: TrackUpdatePayload,
    ModerationType.TRACK_DELETE: TrackDeletePayload,
}

def parse_payload(request_type, data) -> TrackPayload:
    """Rebuild the typed payload of a request from its stored JSON."""
    model = PAYLOAD_MODELS[ModerationType(request_type)]
    if isinstance(data, model):
        return data
    return model.model_validate(data or {})

def plan_track_changes(
    request_type,
    payload: TrackPayload,
    decision,
    now: datetime
) -> Optional[Dict[str, Any]]:
    """Work out the column updates a decision applies to the track.

    Returns:
        Mapping of track column to new value, or None when the track
        stays as it is
    """
    request_type = ModerationType(request_type)
    decision = Decision(decision)

    if decision == Decision.REJECT:
        if request_type == ModerationType.TRACK_CREATE:
            return {'status': TrackStatus.REJECTED.value}
        return None

    if request_type == ModerationType.TRACK_CREATE:
        return {'status': TrackStatus.APPROVED.value, 'published_at': now}

    if request_type == ModerationType.TRACK_UPDATE:
        changes = payload.changes()
        changes['status'] = TrackStatus.APPROVED.value
        changes['published_at'] = now
        return changes

    return {'status': TrackStatus.ARCHIVED.value}


__all__ = [
    'TrackCreatePayload',
    'TrackUpdatePayload',
    'TrackDeletePayload',
    'TrackPayload',
    'PAYLOAD_MODELS',
    'parse_payload',
    'plan_track_changes'
]
