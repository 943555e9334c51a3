from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def init_db(app):
    """Register the models; create the tables when the config asks for it (tests)."""
    from chatflow import models  # noqa: F401

    if app.config.get('AUTO_CREATE_TABLES'):
        with app.app_context():
            db.create_all()
