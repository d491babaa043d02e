import logging

from OpLoom.core.backend.config import CONFIG

ROOT_NAME = "OpLoom"


def _configure_root():
    root = logging.getLogger(ROOT_NAME)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("[%(name)s] %(levelname)s: %(message)s"))
        root.addHandler(handler)
    level = str(CONFIG.get("log_level", "WARNING")).upper()
    root.setLevel(getattr(logging, level, logging.WARNING))
    return root


_ROOT = _configure_root()


def get_logger(name: str = None) -> logging.Logger:
    """
    Return the package logger, or a child of it.

    Names are taken relative to the package, so `OpLoom.framework.registry`
    and `framework.registry` both resolve to the `OpLoom.framework.registry`
    logger, while a bare `registry` becomes `OpLoom.registry`.
    """
    if not name or name == ROOT_NAME:
        return _ROOT
    if name.startswith(ROOT_NAME + "."):
        name = name[len(ROOT_NAME) + 1:]
    return _ROOT.getChild(name)


def set_level(level):
    """Change the package log level at runtime ('DEBUG', 'INFO', ... or an int)."""
    if isinstance(level, str):
        level = getattr(logging, level.upper())
    _ROOT.setLevel(level)
