import logging

import uvicorn

from stripbooth.config import settings
from stripbooth.main import app

if __name__ == "__main__":
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger = logging.getLogger("stripbooth")
    logger.info("Starting %s at http://%s:%s", settings.app_name, settings.host, settings.port)
    logger.info("Exports are saved to %s", settings.photos_dir)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
