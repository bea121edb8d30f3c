"""Custom SQLAlchemy column types."""

import json

from typing import Any

from sqlalchemy import Text, TypeDecorator


class ValidatedJSON(TypeDecorator[dict[str, Any]]):
    """
    JSON column stored as text, validated on write.

    Reading a NULL column yields an empty dict.

    Example:
        class BreathSessionRow(Base):
            quality_flags = mapped_column(ValidatedJSON, default=dict)

        row.quality_flags = {"shortDuration": False}
    """

    impl = Text
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Any) -> str | None:
        """
        Serialize before storing.

        Raises:
            ValueError: If value cannot be serialized to JSON
        """
        if value is None:
            return None

        try:
            return json.dumps(value, ensure_ascii=False, sort_keys=True)
        except (TypeError, ValueError) as e:
            raise ValueError(
                f"Cannot serialize value to JSON: {e}. Value type: {type(value).__name__}"
            ) from e

    def process_result_value(self, value: str | None, dialect: Any) -> Any:
        """
        Deserialize after retrieval.

        Raises:
            ValueError: If stored value is not valid JSON
        """
        if value is None:
            return {}

        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            raise ValueError(
                f"Stored value is not valid JSON: {e}. Value: {value[:100]}..."
            ) from e
