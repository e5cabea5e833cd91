import os

from ogwini_portal.app import create_app
from ogwini_portal.app.services import db_service


app = create_app()

with app.app_context():
    db_service.init_db()


if __name__ == "__main__":
    from waitress import serve

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    app.logger.info("serving on %s:%s", host, port)
    serve(app, host=host, port=port)
