"""Run the API with uvicorn: ``python -m fieldsign`` or the ``fieldsign`` script."""

import uvicorn

from .config import settings


def main() -> None:
    uvicorn.run(
        "fieldsign.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=not settings.is_production,
    )


if __name__ == "__main__":
    main()
