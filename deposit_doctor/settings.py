"""Per-payment-method deposit settings and their JSON store."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping, Optional

from deposit_doctor.errors import SettingsError
from deposit_doctor.filters import apply_filters
from deposit_doctor.totals import TAX_METHODS, DepositCalculation, calculate_deposit_totals

LOGGER = logging.getLogger(__name__)

SETTINGS_ENV_VAR = "DEPOSIT_DOCTOR_SETTINGS"
DEFAULT_SETTINGS_FILE = "deposit-settings.json"
FILTER_SLOTS = 4


@dataclass
class DepositSettings:
    payment_method_id: str
    amount_column_name: str
    refund_column_name: Optional[str] = None
    filter_column_name: Optional[str] = None
    filter_include_values: Optional[list[str]] = None
    filter_column_name2: Optional[str] = None
    filter_include_values2: Optional[list[str]] = None
    filter_column_name3: Optional[str] = None
    filter_include_values3: Optional[list[str]] = None
    filter_column_name4: Optional[str] = None
    filter_include_values4: Optional[list[str]] = None
    tax_enabled: bool = False
    tax_method: str = "none"
    tax_value: Optional[float] = None
    tax_column_name: Optional[str] = None
    header_row_index: Optional[int] = None

    def __post_init__(self) -> None:
        if self.tax_method not in TAX_METHODS:
            raise SettingsError(
                f"Unknown tax method '{self.tax_method}' for payment method "
                f"{self.payment_method_id}. Expected one of: {', '.join(TAX_METHODS)}"
            )
        if self.header_row_index is not None and self.header_row_index < 0:
            raise SettingsError(f"header_row_index must be non-negative, got {self.header_row_index}")

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "DepositSettings":
        if not isinstance(payload, Mapping):
            raise SettingsError("Deposit settings must be a JSON object.")
        known = {f.name for f in fields(cls)}
        missing = [name for name in ("payment_method_id", "amount_column_name") if not payload.get(name)]
        if missing:
            raise SettingsError(f"Deposit settings missing required keys: {', '.join(missing)}")
        return cls(**{key: value for key, value in payload.items() if key in known})

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def filters(self) -> list[tuple[Optional[str], Optional[list[str]]]]:
        """Configured (column, allowed values) pairs in application order."""
        pairs = []
        for slot in range(1, FILTER_SLOTS + 1):
            suffix = "" if slot == 1 else str(slot)
            column = getattr(self, f"filter_column_name{suffix}")
            if column:
                pairs.append((column, getattr(self, f"filter_include_values{suffix}")))
        return pairs

    def effective_tax_method(self) -> str:
        return self.tax_method if self.tax_enabled else "none"


def calculate_from_settings(
    rows: list[dict],
    settings: DepositSettings,
    *,
    logger: Optional[logging.Logger] = None,
) -> DepositCalculation:
    """Filter parsed rows with the saved filters, then total them."""
    filtered = apply_filters(rows, settings.filters())
    return calculate_deposit_totals(
        filtered,
        settings.amount_column_name,
        settings.refund_column_name,
        settings.effective_tax_method(),
        settings.tax_value,
        settings.tax_column_name,
        logger=logger,
    )


def default_settings_path() -> Path:
    return Path(os.environ.get(SETTINGS_ENV_VAR) or DEFAULT_SETTINGS_FILE)


@dataclass
class SettingsStore:
    """JSON file mapping payment method id -> settings object."""

    path: Path = field(default_factory=default_settings_path)

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except Exception as exc:
            raise SettingsError(f"Could not read settings file {self.path}: {exc}") from exc
        if not isinstance(payload, dict):
            raise SettingsError(f"Settings file {self.path} must hold a JSON object.")
        return payload

    def all(self) -> dict[str, DepositSettings]:
        return {
            key: DepositSettings.from_dict({**value, "payment_method_id": key})
            for key, value in self._load().items()
        }

    def get(self, payment_method_id: str) -> Optional[DepositSettings]:
        payload = self._load().get(payment_method_id)
        if payload is None:
            return None
        return DepositSettings.from_dict({**payload, "payment_method_id": payment_method_id})

    def save(self, settings: DepositSettings) -> None:
        payload = self._load()
        payload[settings.payment_method_id] = settings.to_dict()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True),
            encoding="utf-8",
        )
        LOGGER.info("saved deposit settings for %s to %s", settings.payment_method_id, self.path)
