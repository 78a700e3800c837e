"""
Local rate cache.

The last successfully refreshed table is written to a JSON file that is not
keyed by user, so a cold start can show converted amounts before the first
network refresh completes. Cache problems are never fatal: a missing or
corrupt file just means starting from the default rates.
"""

from pathlib import Path
from typing import Optional, Union

import structlog
from pydantic import ValidationError as PydanticValidationError

from expense_tracker.models.rates import ExchangeRateTable


logger = structlog.get_logger(__name__)


class RateCache:
    """JSON file holding one ExchangeRateTable."""

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Optional[ExchangeRateTable]:
        if not self._path.exists():
            return None
        try:
            return ExchangeRateTable.model_validate_json(self._path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, PydanticValidationError) as e:
            logger.warning("rate_cache_unreadable", path=str(self._path), error=str(e))
            return None

    def save(self, table: ExchangeRateTable) -> bool:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(table.model_dump_json(), encoding="utf-8")
            return True
        except OSError as e:
            logger.warning("rate_cache_write_failed", path=str(self._path), error=str(e))
            return False

    def clear(self) -> None:
        self._path.unlink(missing_ok=True)
