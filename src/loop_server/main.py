"""Convenience entrypoint to run the agent loop server locally."""

from __future__ import annotations

import uvicorn

from agent_loop.settings import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "loop_server.app:app",
        host=settings.host,
        port=settings.port,
        reload=False,
    )


if __name__ == "__main__":
    main()
