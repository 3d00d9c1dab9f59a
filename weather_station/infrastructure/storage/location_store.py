"""
Persistent set of tracked ZIP codes.

Every ZIP code a user successfully looks up is remembered here so the
background refresher keeps its cache warm. Stored as JSON:

    {
      "zipCodes": ["75035", "75454"],
      "lastUpdated": "2025-11-28T12:00:00+00:00"
    }

File errors never break the API: the store keeps working in memory and
logs the failure.
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from loguru import logger

from weather_station.api.services.errors import InvalidInputError
from weather_station.api.services.geographic_utils import GeographicUtils


class LocationStore:
    def __init__(
        self,
        storage_dir: str | Path,
        seed_postal_codes: list[str] | None = None,
        file_name: str = "zip-codes.json",
    ):
        self.storage_file = Path(storage_dir) / file_name
        self.seed_postal_codes = seed_postal_codes or []
        self._postal_codes: set[str] = set()
        self.initialized = False

    def _valid_seeds(self) -> set[str]:
        return {
            code.strip()
            for code in self.seed_postal_codes
            if GeographicUtils.is_valid_postal_code(code.strip())
        }

    def initialize(self) -> None:
        """
        Load the storage file, or seed it from the configured ZIP codes.

        Idempotent. Falls back to in-memory operation if the directory
        cannot be created.
        """
        if self.initialized:
            logger.debug("[LocationStore] Already initialized")
            return

        try:
            self.storage_file.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"[LocationStore] Failed to initialize: {e}")
            self._postal_codes = self._valid_seeds()
            logger.warning(
                f"[LocationStore] Using in-memory storage with "
                f"{len(self._postal_codes)} ZIP codes from configuration"
            )
            self.initialized = True
            return

        try:
            data = json.loads(self.storage_file.read_text(encoding="utf-8"))
            self._postal_codes = {
                code
                for code in data.get("zipCodes", [])
                if isinstance(code, str)
                and GeographicUtils.is_valid_postal_code(code)
            }
            logger.info(
                f"[LocationStore] Loaded {len(self._postal_codes)} ZIP codes "
                f"from {self.storage_file}"
            )
        except (OSError, ValueError, AttributeError) as e:
            # missing or unreadable file: start from configuration
            logger.debug(f"[LocationStore] No usable storage file: {e}")
            self._postal_codes = self._valid_seeds()
            if self._postal_codes:
                logger.info(
                    f"[LocationStore] Initialized with "
                    f"{len(self._postal_codes)} ZIP codes from configuration"
                )
                self._save()
            else:
                logger.info("[LocationStore] Starting with an empty set")

        self.initialized = True

    def _save(self) -> None:
        payload = {
            "zipCodes": sorted(self._postal_codes),
            "lastUpdated": datetime.now(timezone.utc).isoformat(),
        }
        try:
            self.storage_file.write_text(
                json.dumps(payload, indent=2), encoding="utf-8"
            )
            logger.debug(
                f"[LocationStore] Saved {len(self._postal_codes)} ZIP codes"
            )
        except OSError as e:
            logger.error(f"[LocationStore] Failed to save ZIP codes: {e}")

    def add(self, postal_code: str) -> bool:
        """
        Track a ZIP code. Returns True if it was not tracked before.

        Raises:
            InvalidInputError: Not exactly 5 digits
        """
        code = postal_code.strip()
        if not GeographicUtils.is_valid_postal_code(code):
            raise InvalidInputError(
                f"Invalid ZIP code format: {postal_code!r}"
            )
        if code in self._postal_codes:
            return False
        self._postal_codes.add(code)
        logger.info(f"[LocationStore] Added new ZIP code: {code}")
        self._save()
        return True

    def list_all(self) -> list[str]:
        return sorted(self._postal_codes)

    def has(self, postal_code: str) -> bool:
        return postal_code.strip() in self._postal_codes

    def remove(self, postal_code: str) -> bool:
        code = postal_code.strip()
        if code not in self._postal_codes:
            return False
        self._postal_codes.discard(code)
        logger.info(f"[LocationStore] Removed ZIP code: {code}")
        self._save()
        return True

    def count(self) -> int:
        return len(self._postal_codes)

    def get_stats(self) -> dict[str, Any]:
        return {
            "totalZipCodes": len(self._postal_codes),
            "zipCodes": self.list_all(),
            "storageFile": str(self.storage_file),
            "initialized": self.initialized,
        }
