import json
import logging
from dataclasses import dataclass, field, asdict, fields
from pathlib import Path
from typing import Any, Dict, Optional

from BackEnd.core.exceptions import SettingsError
from BackEnd.core.paths import user_data_dir

logger = logging.getLogger(__name__)

SETTINGS_FILENAME = "settings.json"
_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass
class Settings:
	data_dir: Path = field(default_factory=user_data_dir)
	db_filename: str = "study.db"
	log_filename: str = "study.log"
	log_level: str = "INFO"
	console_log: bool = False
	# display refresh cadence while the timer runs
	tick_interval_ms: int = 100

	def __post_init__(self) -> None:
		self.data_dir = Path(self.data_dir)

		if not isinstance(self.tick_interval_ms, int) or isinstance(self.tick_interval_ms, bool):
			raise SettingsError(
				f"tick_interval_ms must be an integer, got {type(self.tick_interval_ms).__name__}"
			)
		if self.tick_interval_ms < 10:
			raise SettingsError(f"tick_interval_ms must be >= 10, got {self.tick_interval_ms}")

		if not isinstance(self.log_level, str) or self.log_level.upper() not in _LOG_LEVELS:
			raise SettingsError(f"log_level must be one of {sorted(_LOG_LEVELS)}, got {self.log_level!r}")
		self.log_level = self.log_level.upper()

		if not isinstance(self.console_log, bool):
			raise SettingsError(
				f"console_log must be a boolean (true/false), got {type(self.console_log).__name__}"
			)

		for name in ("db_filename", "log_filename"):
			value = getattr(self, name)
			if not isinstance(value, str) or not value.strip():
				raise SettingsError(f"{name} must be a non-empty string")

	@property
	def db_path(self) -> Path:
		return self.data_dir / self.db_filename

	@property
	def log_path(self) -> Path:
		return self.data_dir / self.log_filename

	def to_dict(self) -> Dict[str, Any]:
		data = asdict(self)
		data["data_dir"] = str(self.data_dir)
		return data


def load_settings(path: Optional[Path] = None, **overrides: Any) -> Settings:
	"""Build settings from an optional settings.json, then keyword overrides.

	An unreadable or malformed file is logged and ignored. Invalid values
	(from the file or the overrides) raise SettingsError.
	"""
	data_dir = Path(overrides.get("data_dir") or user_data_dir())
	settings_file = Path(path) if path is not None else data_dir / SETTINGS_FILENAME

	values: Dict[str, Any] = {"data_dir": data_dir}
	if settings_file.exists():
		try:
			with open(settings_file, encoding="utf-8") as f:
				raw = json.load(f)
		except (OSError, json.JSONDecodeError) as e:
			logger.warning("Ignoring unreadable settings file %s: %s", settings_file, e)
			raw = {}
		if isinstance(raw, dict):
			known = {f.name for f in fields(Settings)}
			for key, value in raw.items():
				if key in known:
					values[key] = value
				else:
					logger.debug("Unknown settings key %r ignored", key)
		else:
			logger.warning("Settings file %s does not hold an object; using defaults", settings_file)

	values.update({k: v for k, v in overrides.items() if v is not None})
	return Settings(**values)
