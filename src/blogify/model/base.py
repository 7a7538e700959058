from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, orm
from sqlalchemy.orm import mapped_column

from typing_extensions import Annotated

str256 = Annotated[str, 256]
str512 = Annotated[str, 512]
ulidpk = Annotated[str, mapped_column(String(32), primary_key=True)]


class Base(orm.DeclarativeBase):
    type_annotation_map = {
        str256: String(256),
        str512: String(512),
        ulidpk: String(32),
    }


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes returned by backends that drop the zone."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)
