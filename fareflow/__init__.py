from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from flask import Flask
from flask.json.provider import DefaultJSONProvider

class CustomJSONProvider(DefaultJSONProvider):
    def default(self, obj):
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        return super().default(obj)

def create_app(services: Optional[Dict[str, Any]] = None):
    """
    Creates, configures, and returns the Flask application.
    This is the application factory.

    Tests pass a prepared services dict; otherwise services are built from the environment.
    """
    app = Flask(__name__)

    # Set custom JSON provider to handle enums, decimals and datetimes
    app.json = CustomJSONProvider(app)

    if services is None:
        from .services.service_factory import ServiceFactory
        services = ServiceFactory.create_services()
    app.extensions["fareflow"] = services

    # Imports are placed here to avoid circular dependencies.
    from .routes import register_blueprints
    register_blueprints(app)

    return app
