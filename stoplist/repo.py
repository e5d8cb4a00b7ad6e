"""
Repository layer for saved uploads.
Each processed workbook is stored as one row holding the geocoded route set.
"""

import json
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlmodel import Field, Session, SQLModel, create_engine, select

from .models import ParsedRouteSet
from .schemas import DatabaseConfig


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SavedUpload(SQLModel, table=True):
    """A processed stop-list upload."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    file_name: str = Field(index=True)
    created_at: datetime = Field(default_factory=_utcnow, index=True)
    data: str  # JSON dump of the ParsedRouteSet payload

    def route_set(self) -> ParsedRouteSet:
        return ParsedRouteSet.model_validate(json.loads(self.data))

    def summary(self) -> dict:
        return {"id": self.id, "fileName": self.file_name, "createdAt": self.created_at.isoformat()}


class UploadRepository:
    """Database repository for saved uploads."""

    def __init__(self, config: DatabaseConfig):
        """Initialize database connection."""
        self.config = config
        self.engine = create_engine(config.url, echo=config.echo)

    def create_tables(self) -> None:
        SQLModel.metadata.create_all(self.engine)

    def get_session(self) -> Session:
        return Session(self.engine)

    def save_upload(self, file_name: str, route_set: ParsedRouteSet) -> SavedUpload:
        with self.get_session() as session:
            upload = SavedUpload(file_name=file_name, data=json.dumps(route_set.to_payload()))
            session.add(upload)
            session.commit()
            session.refresh(upload)
            return upload

    def list_uploads(self) -> List[SavedUpload]:
        """All uploads, newest first."""
        with self.get_session() as session:
            return list(session.exec(
                select(SavedUpload).order_by(SavedUpload.created_at.desc())
            ).all())

    def get_upload(self, upload_id: str) -> Optional[SavedUpload]:
        with self.get_session() as session:
            return session.get(SavedUpload, upload_id)

    def delete_upload(self, upload_id: str) -> bool:
        with self.get_session() as session:
            upload = session.get(SavedUpload, upload_id)
            if upload is None:
                return False
            session.delete(upload)
            session.commit()
            return True

    def health_check(self) -> bool:
        """Check if database is accessible."""
        try:
            with self.get_session() as session:
                session.exec(select(1))
                return True
        except Exception:
            return False
