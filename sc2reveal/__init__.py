"""Cache local des replays SC2 synchronisé avec le dossier de replays."""

__version__ = "0.1.0"
