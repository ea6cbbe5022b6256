"""Entry point for running the FastAPI application."""

import os

import uvicorn
from dotenv import load_dotenv

load_dotenv()

if __name__ == "__main__":
    # Can be overridden: PORT=7860 python -m enzyme.main
    port = int(os.getenv("PORT", "8000"))

    uvicorn.run(
        "enzyme.src.api.main:app",
        host="0.0.0.0",
        port=port,
        reload=os.getenv("RELOAD", "").lower() in {"1", "true", "yes"},
    )
