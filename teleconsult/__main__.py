from __future__ import annotations

import uvicorn

from teleconsult.internal_core.config import load_config


def main() -> None:
    config = load_config()
    uvicorn.run(
        "teleconsult.api.main:app",
        host=config.HOST,
        port=config.PORT,
        log_level=config.TELECONSULT_LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
