from flask import Flask, jsonify

from src.categorization import categorize_bp, usage_bp, setup_logger, config
from src.categorization import routes as categorize_routes
from src.categorization.keyword_db import CategorizationStore
from src.categorization.orchestrator import KeywordCategorizer

log = setup_logger()


def create_app(store=None, categorizer=None):
    """Build the Flask app and wire the categorization module to its store."""
    app = Flask(__name__)

    store = store or CategorizationStore(config.DATABASE_FILE)
    store.init_tables()
    categorize_routes.configure(
        store=store,
        categorizer=categorizer or KeywordCategorizer(store)
    )

    app.register_blueprint(categorize_bp)
    app.register_blueprint(usage_bp)

    @app.route('/api/health')
    def health():
        return jsonify({'status': 'ok'})

    return app


def main():
    app = create_app()
    log.info(f"Starting keyword categorization API on {config.FLASK_HOST}:{config.FLASK_PORT}")
    app.run(host=config.FLASK_HOST, port=config.FLASK_PORT, debug=config.LOG_MODE == 'debug')


if __name__ == '__main__':
    main()
