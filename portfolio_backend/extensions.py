"""Flask extension instances, bound to the app in create_app()."""

from flask_bcrypt import Bcrypt
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_login import LoginManager
from flask_mail import Mail
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
bcrypt = Bcrypt()
mail = Mail()
cors = CORS()

# Storage backend comes from RATELIMIT_STORAGE_URI (memory:// or redis://...)
limiter = Limiter(key_func=get_remote_address)
