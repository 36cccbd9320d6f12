from typing import TYPE_CHECKING, Optional

from flask import Flask
from flask_cors import CORS

from .config import config

if TYPE_CHECKING:
    from .services.container import Services


def create_app(testing: bool = False, services: Optional["Services"] = None):
    app = Flask(__name__)
    app.config["TESTING"] = testing

    # CORS configuration for development and production
    allowed_origins = [
        "http://localhost:5173",  # Local Vite dev server
        "tauri://localhost",
    ]

    # Add production frontend URL if set
    if config.FRONTEND_URL:
        allowed_origins.append(config.FRONTEND_URL)

    # In development, allow all origins for easier testing
    if config.FLASK_ENV == "development":
        CORS(app)
    else:
        CORS(app, origins=allowed_origins)

    if services is None:
        from .services.container import create_services

        services = create_services()
    app.extensions["services"] = services

    from .routes import bp as api_bp
    app.register_blueprint(api_bp, url_prefix="/api")

    return app
