#!/usr/bin/env python3
"""
socket_handlers.py

Registers the Socket.IO event handlers for the Mimigram server.
Handler modules live in realtime/ and share the app's service objects
(presence registry, dispatcher, accounts) instead of module-level state.
"""

from realtime import presence_social


def register_socketio_handlers(socketio, settings, services):
    """Registers all Socket.IO event handlers."""
    presence_social.register(socketio, settings, services)
