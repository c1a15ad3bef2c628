"""Presence, real-time dispatch and the Socket.IO handlers built on them."""
