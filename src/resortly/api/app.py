"""ASGI entrypoint: `uvicorn resortly.api.app:app`."""

from resortly.api.factory import create_app

app = create_app()
