"""
obs-session — OBS WebSocket v5 session core with a small control bridge.

Modules:
  core/    — session state machine, handshake, request dispatcher, errors
  api/     — FastAPI status/command bridge + status WebSocket
  config/  — Settings, env loading, YAML config
"""

__version__ = "0.3.0"
__author__ = "streamer-app"
