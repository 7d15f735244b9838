"""Utilitaires pour la manipulation des identités joueurs SC2.

Ce module fournit des fonctions pour normaliser les battle-tags et
les toon handles (identifiants région-royaume-id) tels qu'ils apparaissent
dans les replays et dans les fichiers de lobby.
"""

from __future__ import annotations

import re
import uuid

__all__ = [
    "UNKNOWN_BATTLE_TAG",
    "DEFAULT_TAG_NUMBER",
    "normalize_battle_tag",
    "normalize_toon_handle",
    "toon_handle_suffix",
    "toon_handle_last_bit",
    "make_placeholder_toon",
    "toon_handles_match",
]

# Battle-tag utilisé quand le pseudo est vide
UNKNOWN_BATTLE_TAG = "Unknown#0000"

# Numéro attribué aux pseudos sans discriminant
DEFAULT_TAG_NUMBER = "0000"

# Préfixe région à un chiffre suivi de "S2" (ex: "1-S2-1-123")
_REGION_PREFIX_RE = re.compile(r"^\d-(S2-.*)$")


def normalize_battle_tag(nickname: str | None) -> str:
    """Normalise un pseudo en battle-tag canonique `Name#Number`.

    Accepte:
    - "Foo#42" → "Foo#42"
    - "Foo_42" → "Foo#42" (séparateur des noms de fichiers / lobbies)
    - "Foo"    → "Foo#0000"
    - ""       → "Unknown#0000"

    Le séparateur retenu est le dernier '#' ou '_' du pseudo.

    Args:
        nickname: Pseudo brut tel que lu dans le replay.

    Returns:
        Battle-tag normalisé.
    """
    s = (nickname or "").strip()
    if not s:
        return UNKNOWN_BATTLE_TAG

    idx = max(s.rfind("#"), s.rfind("_"))
    if idx > 0 and idx < len(s) - 1:
        return f"{s[:idx]}#{s[idx + 1:]}"

    name = s.rstrip("#_") or "Unknown"
    return f"{name}#{DEFAULT_TAG_NUMBER}"


def normalize_toon_handle(toon: str | None) -> str:
    """Retire le préfixe de région d'un toon handle.

    "1-S2-1-11057632" → "S2-1-11057632". Les handles sans préfixe
    sont retournés tels quels.
    """
    s = (toon or "").strip()
    m = _REGION_PREFIX_RE.match(s)
    return m.group(1) if m else s


def toon_handle_suffix(toon: str | None) -> str:
    """Retourne la partie du toon handle après le premier tiret.

    Returns:
        Suffixe, ou chaîne vide si le handle ne contient pas de tiret.
    """
    s = (toon or "").strip()
    _, sep, rest = s.partition("-")
    return rest if sep else ""


def toon_handle_last_bit(toon: str | None) -> str:
    """Retourne les deux derniers segments du handle (royaume-id)."""
    parts = [p for p in (toon or "").strip().split("-") if p]
    if len(parts) < 2:
        return "-".join(parts)
    return "-".join(parts[-2:])


def toon_handles_match(a: str | None, b: str | None) -> bool:
    """Compare deux toon handles en tolérant la dérive du préfixe de région."""
    if not a or not b:
        return False
    if normalize_toon_handle(a) == normalize_toon_handle(b):
        return True
    last_a = toon_handle_last_bit(a)
    return bool(last_a) and "-" in last_a and last_a == toon_handle_last_bit(b)


def make_placeholder_toon() -> str:
    """Génère un toon handle aléatoire pour une identité sans handle."""
    return f"toon-{uuid.uuid4().hex}"[:20]
