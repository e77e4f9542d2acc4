from flask import Flask
from flask_cors import CORS

from .config import Config
from .entities import utc_now
from .extensions import db
from .repository import BarbershopRepository
from .routes import register_routes
from .sync import PollingRefresher, RealtimeListener, RefreshCoordinator


def create_app(config_object=None):
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)

    if isinstance(config_object, dict):
        app.config.from_mapping(config_object)
    elif config_object:
        app.config.from_object(config_object)
    else:
        app.config.from_envvar("APP_SETTINGS", silent=True)

    app.logger.setLevel(app.config["LOG_LEVEL"])

    db.init_app(app)

    CORS(app,
         origins=app.config["CORS_ORIGINS"],
         allow_headers=["Content-Type"],
         methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"]
    )

    coordinator = RefreshCoordinator(lambda: BarbershopRepository(db.session).load_snapshot())
    poller = PollingRefresher(coordinator, interval=app.config["REFRESH_POLL_SECONDS"])
    app.extensions["barbershop"] = {
        "clock": utc_now,
        "coordinator": coordinator,
        "realtime": RealtimeListener(coordinator),
        "poller": poller,
    }
    if app.config["REFRESH_POLLING_ENABLED"] and not app.config.get("TESTING"):
        poller.start()

    register_routes(app)

    return app
