from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from json import JSONDecodeError
from pathlib import Path
from typing import Any, Dict

DEFAULT_HOME_DIR = Path(os.getenv("CLASSROOM_SCHEDULING_HOME", "~/.classroom_scheduling")).expanduser()
DEFAULT_SETTINGS_FILENAME = "user_settings.json"

DEFAULT_SETTINGS: Dict[str, Any] = {
	"scheduling_timezone": "UTC",
	"attendance_present_ratio": 0.5,
	"attendance_partial_ratio": 0.10,
	"attendance_partial_min_seconds": 120,
	"join_early_minutes": 10,
	"join_late_minutes": 5,
	"recurrence_default_occurrences": 52,
}


@dataclass
class UserSettingsStore:
	"""Load and persist school-level policy overrides in a JSON file."""

	home_dir: Path = field(default_factory=lambda: DEFAULT_HOME_DIR)
	settings_filename: str = DEFAULT_SETTINGS_FILENAME
	_data: Dict[str, Any] = field(init=False, default_factory=dict)
	settings_file: Path = field(init=False)

	def __post_init__(self) -> None:
		self.settings_file = self.home_dir / self.settings_filename
		self.reload()

	# ------------------------------------------------------------------
	# Public API
	# ------------------------------------------------------------------
	@property
	def data(self) -> Dict[str, Any]:
		return dict(self._data)

	def get(self, key: str, default: Any = None) -> Any:
		return self._data.get(key, default)

	def reload(self) -> None:
		combined = dict(DEFAULT_SETTINGS)
		combined.update(self._load_json(self.settings_file))
		self._data = combined

	def update(self, **kwargs: Any) -> Dict[str, Any]:
		new_data = dict(self._data)
		for key, value in kwargs.items():
			if key in DEFAULT_SETTINGS:
				new_data[key] = value

		self._data = new_data
		self._persist()
		return dict(self._data)

	# ------------------------------------------------------------------
	# Internal helpers
	# ------------------------------------------------------------------
	def _persist(self) -> None:
		self.home_dir.mkdir(parents=True, exist_ok=True)
		with self.settings_file.open("w", encoding="utf-8") as handle:
			json.dump(self._data, handle, indent=2)

	@staticmethod
	def _load_json(path: Path) -> Dict[str, Any]:
		try:
			if path.exists():
				with path.open("r", encoding="utf-8") as handle:
					return json.load(handle)
		except (OSError, JSONDecodeError):
			return {}
		return {}
