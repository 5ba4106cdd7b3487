"""Shared Flask extension singletons to avoid circular imports."""
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager

from utils.notifier import NotificationDispatcher

# Initialize extensions without app; app_factory will bind them.
db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
notifier = NotificationDispatcher()
