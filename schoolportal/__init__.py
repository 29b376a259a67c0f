import os
import logging
from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from schoolportal.config import DevelopmentConfig, ProductionConfig, TestingConfig
from datetime import timedelta
from werkzeug.security import generate_password_hash

logger = logging.getLogger(__name__)

app = Flask(__name__, instance_relative_config=True)

# Select config based on FLASK_ENV
env = os.environ.get("FLASK_ENV", "development").lower()
if env == "production":
    app.config.from_object(ProductionConfig)
elif env == "testing":
    app.config.from_object(TestingConfig)
else:
    app.config.from_object(DevelopmentConfig)

# Compute DB URI for development using instance path
if env == "development":
    os.makedirs(app.instance_path, exist_ok=True)
    app.config['SQLALCHEMY_DATABASE_URI'] = DevelopmentConfig.database_uri(app.instance_path)

db = SQLAlchemy(app)

# Configure session lifetime
timeout_minutes = app.config.get('SESSION_TIMEOUT_MINUTES', 120)
try:
    app.permanent_session_lifetime = timedelta(minutes=int(timeout_minutes))
except (TypeError, ValueError):
    app.permanent_session_lifetime = timedelta(minutes=120)


def bootstrap_admin():
    """Create the tables and the admin account named by ADMIN_USERNAME, if any."""
    from schoolportal.models import User
    db.create_all()
    admin_user = os.environ.get("ADMIN_USERNAME")
    if not admin_user:
        return None
    existing = User.query.filter_by(username=admin_user).first()
    if existing:
        return existing
    admin_pw_hash = os.environ.get("ADMIN_PASSWORD_HASH")
    admin_pw_plain = os.environ.get("ADMIN_PASSWORD")
    if not admin_pw_hash and not admin_pw_plain:
        logger.warning("ADMIN_USERNAME set without ADMIN_PASSWORD or ADMIN_PASSWORD_HASH; skipping admin bootstrap")
        return None
    pw_hash = admin_pw_hash or generate_password_hash(admin_pw_plain)
    user = User(username=admin_user, password_hash=pw_hash, role="admin")
    db.session.add(user)
    db.session.commit()
    logger.info(f"Bootstrapped admin user {admin_user}")
    return user


if env != "testing":
    with app.app_context():
        bootstrap_admin()

from schoolportal import routes
