"""Exceptions du cache de replays."""

from __future__ import annotations


class ReplayCacheError(Exception):
    """Erreur de base du cache de replays."""


class ConfigurationError(ReplayCacheError):
    """Levée lorsque la configuration est absente ou invalide.

    Interrompt l'initialisation du cache ; le moteur la rapporte dans
    SyncResult.errors sans la propager à l'appelant.
    """

    def __init__(self, setting: str, reason: str):
        self.setting = setting
        self.reason = reason
        super().__init__(f"Configuration invalide ({setting}): {reason}")


class StoreWriteError(ReplayCacheError):
    """Levée lorsqu'une écriture dans le cache échoue pour un replay."""

    def __init__(self, file_path: str, reason: str):
        self.file_path = file_path
        self.reason = reason
        super().__init__(f"Écriture impossible pour '{file_path}': {reason}")
