"""wsgi.py

WSGI entrypoint for Mimigram.

Run (example):
  gunicorn --threads 50 -w 1 -b 0.0.0.0:3000 wsgi:app

Notes:
- Presence lives in process memory, so run exactly one worker.
"""

from __future__ import annotations

from main import apply_env_overrides, configure_logging, load_settings, resolve_config_path
from server_init import create_app

_settings_path = resolve_config_path()
_settings = load_settings(_settings_path)
apply_env_overrides(_settings)
configure_logging(_settings)

# Create the Flask app + Socket.IO integration.
app, socketio = create_app(_settings)

app.config["MIMIGRAM_SETTINGS_PATH"] = str(_settings_path)
