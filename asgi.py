"""
asgi.py -- Application assembly for the Samaj backend.

This is the ONLY file that mounts the WebSocket router. It joins the HTTP
API (api/main.py) and the realtime endpoint (realtime/routes.py) into a
single ASGI app; neither router imports the other.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app
from realtime.routes import router as realtime_router

app.include_router(realtime_router, tags=["Realtime"])
