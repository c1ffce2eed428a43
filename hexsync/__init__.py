"""Room/state synchronization service for shared hex-grid cells.

Clients create short-lived rooms, join them by code, and mutate a shared map
of cell id -> visual-state payload; every change is fanned out to all members.
The core (codes, room, room_store, sessions, gateway) has no FastAPI
dependency and can be driven directly from tests.
"""
