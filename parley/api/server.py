"""ASGI entrypoint for Parley.

This module is a thin entrypoint that delegates to create_app().
"""

from parley.api.app import create_app

app = create_app()
