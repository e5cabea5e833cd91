from flask import Flask

from . import config
from .extensions import init_extensions
from .services import db_service


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, template_folder="../../templates", static_folder="../../static")
    app.config.from_mapping(config.as_dict())
    if test_config:
        app.config.from_mapping(test_config)
    app.secret_key = app.config["SECRET_KEY"]

    init_extensions(app)
    db_service.init_app(app)

    from .routes.auth import bp as auth_bp
    from .routes.dashboards import bp as dashboards_bp
    from .routes.files import bp as files_bp
    from .routes.public import bp as public_bp
    from .routes.registration import bp as registration_bp
    from .routes.store import bp as store_bp

    app.register_blueprint(public_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(registration_bp)
    app.register_blueprint(dashboards_bp)
    app.register_blueprint(store_bp)
    app.register_blueprint(files_bp)

    return app
