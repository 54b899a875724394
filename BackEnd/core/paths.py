import os
from pathlib import Path

APP_NAME = "StudyTracker"
DATA_DIR_ENV = "STUDYTRACKER_DATA_DIR"


def user_data_dir(app_name=APP_NAME):
	"""Return per-user data dir (Windows/macOS/Linux), honouring STUDYTRACKER_DATA_DIR."""
	override = os.environ.get(DATA_DIR_ENV)
	if override:
		path = Path(override).expanduser()
	else:
		if os.name == "nt":
			base = os.environ.get("LOCALAPPDATA", os.path.expanduser("~\\AppData\\Local"))
		elif os.name == "posix":
			base = os.environ.get("XDG_DATA_HOME", os.path.expanduser("~/.local/share"))
		else:
			base = os.path.expanduser("~")
		path = Path(base) / app_name
	path.mkdir(parents=True, exist_ok=True)
	return path
