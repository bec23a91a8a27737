"""Application factory for apps that keep sessions in a store."""

from typing import Optional

from flask import Flask

from . import config
from .app_logging import setup_logger
from .middleware import SessionMiddleware
from .sessions import Store


def create_web_app(store: Optional[Store] = None) -> Flask:
    """
    Initialize and configure an app with session support.

    If ``store`` is not provided, it is built from config on the first
    request.
    """
    app = Flask('session_stores')
    app.config.from_object(config)
    setup_logger(app.config['LOGLEVEL'])
    SessionMiddleware(app, store=store)
    return app
