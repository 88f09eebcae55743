"""Main application entry point."""

import logging
from flask import Flask

from dfsraid.config.base_config import API_HOST, API_PORT, DEBUG
from dfsraid.api.routes.raid import raid_api
from dfsraid.storage.backends import InMemoryFileSystem
from dfsraid.storage.raid_node import RaidNode

logger = logging.getLogger(__name__)


def create_app(raid_node: RaidNode) -> Flask:
    """Create the Flask application serving a RAID node."""
    app = Flask(__name__)
    app.config['RAID_NODE'] = raid_node
    app.register_blueprint(raid_api)
    return app


def main():
    # Configure logging
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    raid_node = RaidNode(InMemoryFileSystem())
    raid_node.start()
    try:
        create_app(raid_node).run(host=API_HOST, port=API_PORT, debug=DEBUG, use_reloader=False)
    finally:
        raid_node.stop()
        raid_node.await_shutdown(timeout=5)


if __name__ == '__main__':
    main()
