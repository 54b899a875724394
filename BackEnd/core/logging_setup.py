import logging
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
ROOT_LOGGER = "BackEnd"


def setup_logging(
	level: int | str = logging.INFO,
	log_file: Optional[Path] = None,
	console: bool = False,
) -> logging.Logger:
	"""Configure the backend logger once; later calls only adjust the level."""
	logger = logging.getLogger(ROOT_LOGGER)
	logger.setLevel(level)

	if not logger.handlers:
		formatter = logging.Formatter(LOG_FORMAT)
		if log_file is not None:
			Path(log_file).parent.mkdir(parents=True, exist_ok=True)
			file_handler = logging.FileHandler(log_file, encoding="utf-8")
			file_handler.setFormatter(formatter)
			logger.addHandler(file_handler)
		if console:
			console_handler = logging.StreamHandler()
			console_handler.setFormatter(formatter)
			logger.addHandler(console_handler)

	return logger
