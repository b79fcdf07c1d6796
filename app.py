import os
import click
from flask import Flask
from extensions import db, migrate, socketio, login_manager, mail
from merchanthub.errors import register_error_handlers
from config import config

def create_app(config_name='default'):
    app = Flask(__name__, template_folder='merchanthub/templates')
    app.config.from_object(config[config_name])
    app.json.sort_keys = app.config['JSON_SORT_KEYS']
    app.logger.setLevel(app.config['LOG_LEVEL'])

    db.init_app(app)
    socketio.init_app(app, cors_allowed_origins=app.config['SOCKETIO_CORS_ORIGINS'])
    login_manager.init_app(app)
    mail.init_app(app)
    migrate.init_app(app, db)
    register_error_handlers(app)

    # Registers the bearer token loader and the socket handlers
    import merchanthub.auth  # noqa: F401
    import routes.events  # noqa: F401

    from routes.auth_routes import auth_bp
    from routes.addon_routes import addon_bp
    from routes.public_routes import public_bp
    from routes.order_routes import order_bp
    from routes.subscription_routes import subscription_bp
    from routes.admin_routes import admin_bp
    from routes.super_admin_routes import super_admin_bp
    from routes.influencer_routes import influencer_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(addon_bp)
    app.register_blueprint(public_bp)
    app.register_blueprint(order_bp)
    app.register_blueprint(subscription_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(super_admin_bp)
    app.register_blueprint(influencer_bp)

    @app.cli.command('check-subscriptions')
    def check_subscriptions_command():
        """Expires trials and suspends merchants whose billing has lapsed."""
        from merchanthub.subscriptions import check_all_subscriptions
        click.echo(check_all_subscriptions())

    if app.config.get('SQLALCHEMY_DATABASE_URI', '').startswith('sqlite'):
        with app.app_context():
            db.create_all()

    app.logger.info("MerchantHub started with '%s' configuration", config_name)
    return app

if __name__ == '__main__':
    app = create_app(os.getenv('FLASK_CONFIG') or 'default')
    socketio.run(app)
