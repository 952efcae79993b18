"""
Chatline - chat sessions with a language model assistant.
Entrypoint for running the FastAPI app under uvicorn.
"""

import os

import uvicorn

from app.main import app  # noqa: F401


if __name__ == "__main__":
    print("Chatline starting...")
    uvicorn.run(
        "app.main:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "8080")),
    )
