#!/usr/bin/env python3
"""
run.py — Launch obs-session without installing.

Usage (from the project directory):
    python run.py start
    python run.py start --obs-password mypassword --scene Main
    python run.py init-config
    python run.py check
    python run.py screenshot "Camera" -o camera.png
    python run.py move-item 5 100 200
"""
import sys
from pathlib import Path

# Ensure the project root is on the path
sys.path.insert(0, str(Path(__file__).parent))

from obs_session.main import app

if __name__ == "__main__":
    app()
