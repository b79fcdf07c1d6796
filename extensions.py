from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_socketio import SocketIO
from flask_login import LoginManager
from flask_mail import Mail

db = SQLAlchemy()
migrate = Migrate()
# Live order feed; allowed origins are applied in create_app
socketio = SocketIO()
login_manager = LoginManager()
mail = Mail()
