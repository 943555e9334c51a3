import asyncio

import click
from flask import Flask
from flask.cli import AppGroup
from flask_cors import CORS
from flask_migrate import Migrate

from chatflow.config import Config
from chatflow.database import db, init_db

flows_cli = AppGroup('flows', help='Flow execution maintenance commands.')


@flows_cli.command('resume-due')
def resume_due_command():
    """Re-dispatch RUNNING executions whose delay elapsed or whose run was interrupted."""
    from chatflow.services.flow_execution_service import get_flow_execution_service

    service = get_flow_execution_service()
    execution_ids = asyncio.run(service.engine.resume_due_executions())
    click.echo(f"Re-dispatched {len(execution_ids)} execution(s)")
    for execution_id in execution_ids:
        click.echo(f"  {execution_id}")


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    # Configurar CORS para o flow builder
    allowed_origins = [origin.strip() for origin in app.config.get('CORS_ORIGINS', '').split(',') if origin.strip()]
    CORS(app,
         resources={r"/api/*": {"origins": allowed_origins}},
         supports_credentials=False,
         allow_headers=["Content-Type", "Authorization", "X-Tenant-ID"],
         methods=["GET", "POST", "OPTIONS"])

    # Inicializar banco de dados
    db.init_app(app)

    # Inicializar Flask-Migrate
    Migrate(app, db)

    init_db(app)

    from chatflow.routes import flows
    app.register_blueprint(flows.flows_bp)

    from chatflow.routes import triggers
    app.register_blueprint(triggers.triggers_bp)

    # Health check endpoint
    from chatflow.routes import health
    app.register_blueprint(health.bp)

    app.cli.add_command(flows_cli)

    return app
