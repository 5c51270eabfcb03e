"""Run the chat backend with uvicorn."""

import os

import uvicorn


def main() -> None:
    uvicorn.run(
        "mcpchat.main:app",
        host=os.getenv("MCPCHAT_HOST", "127.0.0.1"),
        port=int(os.getenv("MCPCHAT_PORT", "9001")),
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )


if __name__ == "__main__":
    main()
