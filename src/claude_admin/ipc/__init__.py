"""Local IPC: message schema, socket listener and client."""
