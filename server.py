#!/usr/bin/env python3
"""
Visitor Desk Governance Server
Maker-checker approval, audit history, revert and restore for visitor and
lost-item records
"""

from flask import Flask, jsonify
from flask_cors import CORS
import logging
import os
from pathlib import Path
import secrets


def _env_flag(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


# Logging
logging.basicConfig(
    level=os.environ.get('LOG_LEVEL', 'INFO').upper(),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)
logger = logging.getLogger('server')

app = Flask(__name__)
CORS(app, supports_credentials=True)

# Secret key for sessions (generate a secure one for production)
app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', secrets.token_hex(32))

# Database configuration
database_url = os.environ.get(
    'DATABASE_URL', f'sqlite:///{Path(__file__).parent}/visitor_governance.db'
)

# Fix Heroku's postgres:// scheme (should be postgresql://)
if database_url and database_url.startswith('postgres://'):
    database_url = database_url.replace('postgres://', 'postgresql://', 1)

app.config['SQLALCHEMY_DATABASE_URI'] = database_url
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False

# PostgreSQL-specific connection pool settings
if database_url and database_url.startswith('postgresql://'):
    app.config['SQLALCHEMY_ENGINE_OPTIONS'] = {
        'pool_size': 5,
        'max_overflow': 10,
        'pool_recycle': 300,  # Recycle connections after 5 minutes
        'pool_pre_ping': True,
        'pool_timeout': 30,
    }
else:
    # SQLite settings (for local dev)
    app.config['SQLALCHEMY_ENGINE_OPTIONS'] = {
        'pool_pre_ping': True
    }

# Governance settings
app.config['GOVERNANCE_ALLOW_SELF_DECISION'] = _env_flag('GOVERNANCE_ALLOW_SELF_DECISION')
app.config['GOVERNANCE_STALE_REQUEST_HOURS'] = int(
    os.environ.get('GOVERNANCE_STALE_REQUEST_HOURS', '72')
)
app.config['GOVERNANCE_MIN_REASON_LENGTH'] = int(
    os.environ.get('GOVERNANCE_MIN_REASON_LENGTH', '1')
)

# Import and initialize database
from models import db
db.init_app(app)

# Initialize rate limiter
from rate_limiter import init_limiter
limiter = init_limiter(app)

# Register governance routes (requests, decisions, history, revert, restore)
from routes.governance_routes import register_governance_routes
register_governance_routes(app)

# Register record routes (create / read visitors and lost items)
from routes.records_routes import register_records_routes
register_records_routes(app)


@app.route('/api/health', methods=['GET'])
def health():
    """Liveness check"""
    return jsonify({'status': 'ok'})


if __name__ == '__main__':
    with app.app_context():
        db.create_all()

    logger.info('Visitor Desk Governance Server starting on http://localhost:5000')
    logger.info('Self-decision allowed: %s', app.config['GOVERNANCE_ALLOW_SELF_DECISION'])

    app.run(host='0.0.0.0', port=5000, debug=_env_flag('FLASK_DEBUG'))
