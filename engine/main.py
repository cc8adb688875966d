# engine/main.py
# uvicorn engine.main:app
from __future__ import annotations

from engine.app_factory import create_app

app = create_app()
