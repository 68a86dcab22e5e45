from datetime import datetime, time
from typing import List, Optional

from sqlalchemy.orm import Session

from .. import models
from ..schemas import AdminChatSettingsUpdate


def get_settings(db: Session, admin_id: str) -> models.AdminChatSettings:
    """Stored settings for ``admin_id``, or unsaved defaults."""
    row = db.query(models.AdminChatSettings).filter(models.AdminChatSettings.admin_id == admin_id).first()
    if row is not None:
        return row
    defaults = {
        column.name: column.default.arg
        for column in models.AdminChatSettings.__table__.columns
        if column.default is not None and column.default.is_scalar
    }
    return models.AdminChatSettings(admin_id=admin_id, **defaults)


def update_settings(db: Session, admin_id: str, changes: AdminChatSettingsUpdate) -> models.AdminChatSettings:
    row = get_settings(db, admin_id)
    for key, value in changes.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(row, key, value)
    if row.id is None:
        db.add(row)
    db.commit()
    db.refresh(row)
    return row


def set_online(db: Session, admin_id: str, online: bool) -> models.AdminChatSettings:
    return update_settings(db, admin_id, AdminChatSettingsUpdate(is_online=online))


def list_settings(db: Session) -> List[models.AdminChatSettings]:
    return db.query(models.AdminChatSettings).order_by(models.AdminChatSettings.admin_id).all()


def _parse_hhmm(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def is_available(settings: models.AdminChatSettings, now: Optional[datetime] = None) -> bool:
    if not settings.is_online:
        return False
    now = now or datetime.now()
    if now.weekday() >= 5 and not settings.weekend_available:
        return False
    start = _parse_hhmm(settings.working_hours_start)
    end = _parse_hhmm(settings.working_hours_end)
    current = now.time()
    if start <= end:
        return start <= current < end
    # overnight shift, e.g. 22:00-06:00
    return current >= start or current < end
