"""App factory and runtime wiring entrypoint."""

from flask import Flask

from siterestore.core.config import apply_default_flask_config
from siterestore.routes.restore_routes import register_restore_routes


def create_app(ctx):
    """Return a Flask app serving the restore actions for ``ctx``."""
    app = Flask(__name__)
    apply_default_flask_config(app, ctx)
    register_restore_routes(app, ctx)
    return app
