"""
Convenience entrypoint to run the Tea shop API with uvicorn.

Example:
  python -m apps.teashop
"""
import os

import uvicorn


def main() -> None:
    reload = os.getenv("TEASHOP_RELOAD", "false").lower() == "true"
    host = os.getenv("TEASHOP_HOST", "0.0.0.0")
    port = int(os.getenv("TEASHOP_PORT", "5000"))
    uvicorn.run(
        "apps.teashop.app.main:app",
        host=host,
        port=port,
        reload=reload,
        reload_dirs=["apps", "libs"] if reload else None,
    )


if __name__ == "__main__":
    main()
