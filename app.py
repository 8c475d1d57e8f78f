"""
BlueMercantile — Flask application entry point.

Serves the JSON API used by the BlueMercantile single-page app: patron and
credit-client registration, admin approval with credential issuance, user
administration and the outbound email log. Collections are kept in a
Supabase-backed key-value table (or in memory with KV_BACKEND=memory).

Usage:
    python app.py
"""

import logging
import os

from flask import Flask, jsonify, request
from flask_cors import CORS

from config import config

logger = logging.getLogger('bluemercantile')


def setup_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )


def create_app() -> Flask:
    app = Flask(__name__)
    app.secret_key = config.SECRET_KEY
    app.config['ENV'] = config.ENV
    app.config['DEBUG'] = config.DEBUG

    prefix = config.API_PREFIX.rstrip('/')

    CORS(
        app,
        resources={rf"{prefix}/*": {"origins": "*"}},
        allow_headers=["Content-Type", "Authorization"],
        methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        expose_headers=["Content-Length"],
        max_age=600
    )

    from routes.api_routes import api_bp
    from routes.admin_routes import admin_bp

    app.register_blueprint(api_bp, url_prefix=prefix)
    app.register_blueprint(admin_bp, url_prefix=f"{prefix}/admin")

    @app.after_request
    def log_request(response):
        logger.info("%s %s %s", request.method, request.path, response.status_code)
        return response

    @app.route('/health')
    def health():
        return jsonify({"status": "ok"})

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"success": False, "message": "Not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({"success": False, "message": "Method not allowed"}), 405

    @app.errorhandler(500)
    def internal_error(error):
        return jsonify({"success": False, "message": "Internal server error"}), 500

    return app


setup_logging()
app = create_app()

if __name__ == '__main__':
    port = int(os.getenv('PORT', 5000))
    app.run(host='0.0.0.0', port=port, debug=config.DEBUG)
