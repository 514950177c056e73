"""API routers, one per resource. Mounted under /api by main.py."""
