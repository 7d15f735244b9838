"""Couche données : synchronisation et requêtes du cache de replays."""
