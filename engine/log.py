import logging

import colorama

ROOT_TAG = "manga-batch"


def _level_color(levelno: int):
    if levelno >= logging.ERROR:
        return colorama.Fore.RED
    if levelno >= logging.WARNING:
        return colorama.Fore.YELLOW
    return None


class _ColorFormatter(logging.Formatter):
    def __init__(self, datefmt=None):
        # asctime must be in the format up front or Formatter never fills it in
        super().__init__("%(asctime)s [%(name)s] %(message)s", datefmt)

    def formatMessage(self, record: logging.LogRecord) -> str:
        color = _level_color(record.levelno)
        if color is not None:
            self._style._fmt = (
                f"%(asctime)s {color}%(levelname)s:{colorama.Fore.RESET} "
                "[%(name)s] %(message)s"
            )
        else:
            self._style._fmt = "%(asctime)s [%(name)s] %(message)s"
        return super().formatMessage(record)


class _TagFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not record.name.startswith(ROOT_TAG):
            return False
        prefix = ROOT_TAG + "."
        if record.name.startswith(prefix):
            record.name = record.name[len(prefix):]
        return True


_root = logging.getLogger(ROOT_TAG)


def setup_logging(level: int = logging.INFO) -> None:
    """Call once at startup to attach coloured handler."""
    colorama.just_fix_windows_console()
    logging.basicConfig(level=level)
    logging.root.setLevel(level)
    for h in logging.root.handlers:
        h.setFormatter(_ColorFormatter(datefmt="%H:%M:%S"))
        h.addFilter(_TagFilter())


def get_logger(name: str) -> logging.Logger:
    return _root.getChild(name)
