# server/main.py
import logging
import sys
from typing import Optional

from fastmcp import FastMCP

from app.config import Settings
from app.di import build_container
from app.logging import configure_logging
from server.tools.files import register_file_tools

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastMCP:
    """
    Build the container and a FastMCP host exposing the file and share tools.
    Path safety and mutations stay in the services; tools only adapt them.
    """
    container = build_container(settings)
    configure_logging(container.settings.LOG_LEVEL)
    logger.info("base directory: %s", container.roots.base)
    if container.roots.public is None:
        logger.info("public sharing disabled")

    mcp = FastMCP("files-svc", version="0.1.0")
    register_file_tools(mcp, container.fs_service, container.share_service)
    return mcp


def main():
    try:
        app = create_app()
    except ValueError as e:
        # Unusable base/public directory; nothing can be served.
        sys.exit(f"files-svc: {e}")
    # stdio transport: the client launches this process and speaks JSON-RPC on stdin/stdout
    app.run(transport="stdio")


if __name__ == "__main__":
    main()
