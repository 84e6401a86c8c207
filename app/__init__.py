import logging

from flask import Flask

from .config import Config
from .controllers.auth import bp as auth_bp
from .controllers.cars import bp as cars_bp
from .controllers.errors import register_error_handlers
from .controllers.rentals import bp as rentals_bp
from .controllers.reservations import bp as reservations_bp
from .controllers.users import bp as users_bp
from .models.store import Store


def create_app(config=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if config:
        app.config.update(config)

    logging.basicConfig(
        level=getattr(logging, app.config["LOG_LEVEL"], logging.INFO),
        format=app.config["LOG_FORMAT"],
    )

    Store.instance(app.config["DATA_PATH"])  # load data.pkl or init default

    app.register_blueprint(auth_bp)
    app.register_blueprint(cars_bp)
    app.register_blueprint(rentals_bp)
    app.register_blueprint(reservations_bp)
    app.register_blueprint(users_bp)
    register_error_handlers(app)

    @app.get("/")
    def home():
        return {"service": "car-rental", "status": "ok"}

    return app
