import logging
from typing import Any, Dict

from pydantic import BaseModel

logger = logging.getLogger(__name__)

_EMPTY_VALUES = {dict: dict, str: str, bool: bool, int: int, float: float}


class CustomBaseModel(BaseModel):
    """Custom base model for all schemas.
    - pre-process the stored document before init
    - coerce simple typed fields, fall back to the field default when the
      stored value is invalid (documents written by older versions may hold
      None or strings where numbers are expected)
    """

    def __init__(self, **data: Any) -> None:
        fields = self.__class__.model_fields
        for attr, value in data.items():
            field = fields.get(attr)
            if field is None:
                continue
            attr_type = field.annotation
            if attr_type not in _EMPTY_VALUES:
                continue
            try:
                if value is None:
                    raise TypeError("missing value")
                data[attr] = attr_type(value)
            except (TypeError, ValueError):
                logger.debug("invalid value for key %s: %r, using default", attr, value)
                if field.is_required():
                    data[attr] = _EMPTY_VALUES[attr_type]()
                else:
                    data[attr] = field.get_default(call_default_factory=True)
        super().__init__(**data)

    @classmethod
    def from_record(cls, record: Dict[str, Any], **extra: Any):
        if not isinstance(record, dict):
            raise ValueError(f"Invalid record type: {type(record)}")
        return cls(**{**record, **extra})
