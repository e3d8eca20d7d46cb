"""Shared model helpers."""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String


def new_id() -> str:
    """Generate a new string UUID primary key."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Timezone-aware current time (UTC)."""
    return datetime.now(timezone.utc)


class EntityMixin:
    """
    UUID primary key plus Python-side defaults.

    Column defaults only apply on flush; entities built for the in-memory
    repositories never flush, so defaults listed in ``_init_defaults`` are
    applied at construction time instead.
    """

    _init_defaults = {}

    id = Column(String(36), primary_key=True, default=new_id)

    def __init__(self, **kwargs):
        kwargs.setdefault('id', new_id())
        for key, value in self._init_defaults.items():
            kwargs.setdefault(key, value)
        super().__init__(**kwargs)
