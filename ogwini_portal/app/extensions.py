import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from flask import Flask, render_template
from flask_wtf.csrf import CSRFError, CSRFProtect


csrf = CSRFProtect()


def configure_logging(app: Flask) -> None:
    if getattr(app, "_logging_configured", False):
        return
    level = app.config.get("LOG_LEVEL", "INFO")

    # app.logger ("ogwini_portal.app") and the service loggers all propagate here
    pkg_logger = logging.getLogger("ogwini_portal")
    pkg_logger.setLevel(level)
    if not pkg_logger.handlers:
        console = logging.StreamHandler()
        console.setFormatter(logging.Formatter("[%(asctime)s] %(levelname)s in %(module)s: %(message)s"))
        pkg_logger.addHandler(console)

        if not app.testing:
            log_dir = Path(app.config.get("LOG_DIR") or "logs")
            log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(log_dir / "app.log", maxBytes=2_000_000, backupCount=5)
            file_handler.setFormatter(
                logging.Formatter("%(asctime)s %(levelname)s %(name)s %(funcName)s: %(message)s")
            )
            pkg_logger.addHandler(file_handler)

    app.logger.setLevel(level)
    app._logging_configured = True


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(404)
    def not_found(_e):
        return render_template("error.html", page_title="Not found", error="That page does not exist."), 404

    @app.errorhandler(413)
    def too_large(_e):
        return render_template("error.html", page_title="Upload too large", error="The file is too large."), 413

    @app.errorhandler(CSRFError)
    def csrf_failed(e):
        app.logger.warning("CSRF check failed: %s", e.description)
        return (
            render_template("error.html", page_title="Session expired", error="Please reload the page and try again."),
            400,
        )


def init_extensions(app: Flask) -> None:
    configure_logging(app)
    csrf.init_app(app)
    register_error_handlers(app)
