import os

import uvicorn


def main():
    uvicorn.run(
        "clicker.app:app",
        host=os.getenv("CLICKER_HOST", "0.0.0.0"),
        port=int(os.getenv("CLICKER_PORT", "8000")),
        lifespan="on",
    )


if __name__ == "__main__":
    main()
