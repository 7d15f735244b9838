"""Résolution des identités joueurs.

Associe un couple (pseudo, toon handle) lu dans un replay à une ligne
`players`, en la créant si nécessaire. Ordre de recherche :

1. toon handle exact
2. battle-tag normalisé exact
3. suffixe du toon handle (partie après le premier tiret)
4. création (toon placeholder si le replay n'en fournit pas)

Toute la séquence chercher-ou-créer est sérialisée par un verrou global
au processus : deux workers qui voient le même joueur inconnu obtiennent
la même ligne. La résolution n'est pas transitive et aucune fusion
a posteriori n'est faite.
"""

from __future__ import annotations

import logging
import threading

from sc2reveal.data.sync.models import PlayerIdentity
from sc2reveal.data.sync.store import ReplayStore
from sc2reveal.utils.toon import (
    make_placeholder_toon,
    normalize_battle_tag,
    toon_handle_suffix,
)

logger = logging.getLogger(__name__)

# Verrou global au processus, partagé par tous les resolvers
_IDENTITY_LOCK = threading.Lock()

# Pseudo utilisé quand le replay n'en fournit pas
UNKNOWN_NICKNAME = "Unknown"


class IdentityResolver:
    """Trouve ou crée les identités joueurs dans le ReplayStore."""

    def __init__(self, store: ReplayStore) -> None:
        self._store = store

    def resolve(self, nickname: str | None, toon: str | None = None) -> PlayerIdentity:
        """Retourne l'identité correspondant au joueur, créée au besoin.

        Args:
            nickname: Pseudo brut ("Foo#42", "Foo_42", "Foo" ou vide).
            toon: Toon handle brut (ex: "1-S2-1-11057632"), optionnel.

        Returns:
            Identité persistée.
        """
        battle_tag = normalize_battle_tag(nickname)
        toon = (toon or "").strip() or None
        display_name = (nickname or "").strip() or UNKNOWN_NICKNAME

        with _IDENTITY_LOCK:
            found = self._find_existing(battle_tag, toon)
            if found is not None:
                return found

            new_toon = toon or make_placeholder_toon()
            identity = self._store.insert_player(display_name, battle_tag, new_toon)
            logger.debug(
                f"Nouvelle identité #{identity.id}: {battle_tag} ({new_toon})"
                + ("" if toon else " [toon placeholder]")
            )
            return identity

    def _find_existing(self, battle_tag: str, toon: str | None) -> PlayerIdentity | None:
        store = self._store
        if toon:
            found = store.find_player_by_toon(toon)
            if found is not None:
                return found

        found = store.find_player_by_battle_tag(battle_tag)
        if found is not None:
            return found

        if toon:
            suffix = toon_handle_suffix(toon)
            found = store.find_player_by_toon_suffix(suffix)
            if found is not None:
                logger.debug(f"Identité #{found.id} retrouvée par suffixe de toon ({suffix})")
                return found

        return None
