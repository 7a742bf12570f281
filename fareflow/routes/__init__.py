from flask import current_app

def get_service(name: str):
    """Look up a service created by the application factory"""
    return current_app.extensions["fareflow"][name]

def register_blueprints(app):
    """Register all route blueprints with the Flask app"""
    from .flight_routes import flights_bp
    from .booking_routes import bookings_bp
    from .webhook_routes import webhooks_bp

    app.register_blueprint(flights_bp)
    app.register_blueprint(bookings_bp)
    app.register_blueprint(webhooks_bp)
