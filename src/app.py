import logging
import signal

from dotenv import load_dotenv
from flask import Flask, jsonify

load_dotenv()

from src import database
from src.container import teardown_uow
from src.logging_config import configure_logging
from src.services.job_processor import cancellation_registry
from src.worker_routes import worker_bp

logger = logging.getLogger("analysis-app")


def _handle_sigterm(signum, frame):
    # Cloud Run avisa antes de matar a instância: as execuções param na próxima foto
    cancelled = cancellation_registry.cancel_all()
    logger.warning(f"🛑 SIGTERM recebido. Execuções canceladas: {cancelled}")


def create_app(database_url=None, install_signal_handlers=True) -> Flask:
    configure_logging()
    app = Flask(__name__)

    database.init_db(database_url)

    app.register_blueprint(worker_bp, url_prefix='/worker')

    @app.teardown_appcontext
    def shutdown_session(exception=None):
        teardown_uow(exception)
        if database.db_session:
            database.db_session.remove()

    @app.route('/health')
    def health():
        return jsonify({"status": "ok"}), 200

    if install_signal_handlers:
        try:
            signal.signal(signal.SIGTERM, _handle_sigterm)
        except ValueError:
            # Só é permitido na thread principal (ex.: alguns servidores WSGI)
            logger.warning("⚠️ SIGTERM handler não registrado fora da thread principal")

    logger.info("✅ App inicializado")
    return app
