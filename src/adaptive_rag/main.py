"""Entrypoint: run the Adaptive RAG server."""

import uvicorn

from adaptive_rag.api.app import create_app
from adaptive_rag.config.settings import Settings


def main() -> None:
    settings = Settings()
    app = create_app(settings)
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
