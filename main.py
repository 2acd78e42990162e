"""Entry point for the receipt router HTTP service."""
from common.events import configure_logging
from config.settings import SERVICE
from server.app import create_app

configure_logging()
app = create_app()

if __name__ == "__main__":
    app.run(host=SERVICE.get("host", "0.0.0.0"), port=SERVICE.get("port", 5000), debug=SERVICE.get("debug", False))
