from flask import Flask, request
from werkzeug.routing import IntegerConverter

from .config import Config
from .extensions import db, migrate
from .validation import INT64_MAX


SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
}


class BoundedIntegerConverter(IntegerConverter):
    """<int:...> that stops at the 64-bit column limit; larger ids are 404."""

    def __init__(self, map, *args, **kwargs):
        kwargs.setdefault("max", INT64_MAX)
        super().__init__(map, *args, **kwargs)


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))
    app.url_map.converters["int"] = BoundedIntegerConverter

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so metadata is complete before create_all / migrations
    from . import models  # noqa: F401

    from .errors import register_error_handlers
    register_error_handlers(app)

    # Process-lifetime credential registries
    from .services import api_key_service, csrf_service
    app.extensions["csrf_registry"] = csrf_service.create_registry(app.config)
    app.extensions["api_key_registry"] = api_key_service.create_registry(app.config)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.users import users_bp
    from .routes.outlets import outlets_bp
    from .routes.menu import menu_bp, categories_bp, subcategories_bp
    from .routes.orders import orders_bp
    from .routes.loyalty import loyalty_bp
    from .routes.offers import offers_bp
    from .routes.inventory import inventory_bp
    from .routes.sales import sales_bp, expenses_bp
    from .routes.online_sales import online_sales_bp
    from .routes.price_forecasts import price_forecasts_bp
    from .routes.cash_reconciliation import cash_reconciliation_bp
    from .routes.security import security_bp
    from .routes.expense_types import expense_types_bp
    from .routes.platform_charges import platform_charges_bp
    from .routes.ingredients import ingredients_bp
    from .routes.recipes import recipes_bp
    from .routes.overhead_costs import overhead_costs_bp
    from .routes.operational_expenses import operational_expenses_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(outlets_bp)
    app.register_blueprint(menu_bp)
    app.register_blueprint(categories_bp)
    app.register_blueprint(subcategories_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(loyalty_bp)
    app.register_blueprint(offers_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(expenses_bp)
    app.register_blueprint(online_sales_bp)
    app.register_blueprint(price_forecasts_bp)
    app.register_blueprint(cash_reconciliation_bp)
    app.register_blueprint(security_bp)
    app.register_blueprint(expense_types_bp)
    app.register_blueprint(platform_charges_bp)
    app.register_blueprint(ingredients_bp)
    app.register_blueprint(recipes_bp)
    app.register_blueprint(overhead_costs_bp)
    app.register_blueprint(operational_expenses_bp)

    allowed_origins = set(app.config.get("CORS_ALLOWED_ORIGINS") or [])

    @app.after_request
    def add_response_headers(response):
        origin = request.headers.get("Origin")
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type, X-Outlet-Id"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        for header, value in SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
