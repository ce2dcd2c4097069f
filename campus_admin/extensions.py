from flask_cors import CORS
from flask_jwt_extended import JWTManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_sqlalchemy import SQLAlchemy

# Initialize Extensions
db = SQLAlchemy()
jwt = JWTManager()
cors = CORS()

# storage, strategy and default limits come from RATELIMIT_* config keys
limiter = Limiter(key_func=get_remote_address)
