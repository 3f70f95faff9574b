"""Run the API with ``python -m vhi_usage``."""
import os

import uvicorn

from vhi_usage.app import create_app


def main() -> None:
    uvicorn.run(create_app(), host="0.0.0.0", port=int(os.getenv("PORT", "8080")))


if __name__ == "__main__":
    main()
