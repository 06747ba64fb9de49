from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO timestamp (``Z`` suffix allowed) into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseModel:
    """
    Row-backed model. Core fields are declared in ``__init__``; anything the
    row carries beyond them is ignored, except the free-form ``metadata`` /
    ``context`` extension maps which subclasses declare explicitly.
    """

    # Fields parsed as datetimes regardless of their name
    DATETIME_FIELDS: tuple = ()
    # field name -> Enum class
    ENUM_FIELDS: Dict[str, type] = {}

    @staticmethod
    def _to_snake(key: str) -> str:
        attr_name = ''.join(['_' + c.lower() if c.isupper() else c for c in key])
        return attr_name.lstrip('_')

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        if not data:
            return None

        instance = cls()
        for key, value in data.items():
            attr_name = key if hasattr(instance, key) else cls._to_snake(key)
            if not hasattr(instance, attr_name):
                continue

            if attr_name.endswith('_at') or attr_name in cls.DATETIME_FIELDS:
                value = parse_datetime(value)
            elif attr_name in cls.ENUM_FIELDS and value is not None:
                enum_cls = cls.ENUM_FIELDS[attr_name]
                try:
                    value = enum_cls(value)
                except ValueError:
                    continue
            elif attr_name in ('metadata', 'context') and value is None:
                value = {}

            setattr(instance, attr_name, value)

        return instance

    def to_dict(self) -> Dict[str, Any]:
        result = {}
        for attr_name, attr_value in self.__dict__.items():
            if attr_name.startswith('_'):
                continue

            if isinstance(attr_value, datetime):
                attr_value = attr_value.isoformat()
            elif isinstance(attr_value, Enum):
                attr_value = attr_value.value
            elif isinstance(attr_value, dict):
                attr_value = dict(attr_value)

            result[attr_name] = attr_value

        return result

    def __repr__(self) -> str:
        ident = getattr(self, 'id', None)
        return f"<{type(self).__name__} id={ident}>"
