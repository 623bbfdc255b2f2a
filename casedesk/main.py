import os
from flask import Flask, jsonify
from config.config import config
from casedesk.database import init_db
from casedesk.routes import candidate, cases, checks, review
from casedesk.utils.logger import get_logger

logger = get_logger(__name__)


def create_app(config_name=None):
    """Create and configure the Flask application"""
    config_name = config_name or os.environ.get('FLASK_ENV', 'default')
    app = Flask(__name__)
    app.config.from_object(config.get(config_name, config['default']))

    # Register blueprints
    app.register_blueprint(checks.bp, url_prefix='/api/checks')
    app.register_blueprint(cases.bp, url_prefix='/api/cases')
    app.register_blueprint(review.bp, url_prefix='/api/admin/cases')
    app.register_blueprint(candidate.bp, url_prefix='/api/public')

    @app.route('/api/health', methods=['GET'])
    def health():
        return jsonify({'status': 'ok'}), 200

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({'error': 'Not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({'error': 'Method not allowed'}), 405

    @app.errorhandler(413)
    def too_large(e):
        return jsonify({'error': 'Upload is too large'}), 413

    init_db()
    logger.info(f"CaseDesk started with {config_name} configuration")
    return app
