"""Collaborators for reaching the encrypted memory store.

- keys: encryption passphrase and storage root resolution
- server: makes sure a store server is running and reachable
- client: JSON-RPC client used to write learnings
"""
