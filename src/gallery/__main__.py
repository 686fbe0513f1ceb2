"""Gallery entrypoint.

Run with:
  python -m gallery
"""

import logging

import uvicorn

from gallery.config import runner_options


def main() -> None:
    opts = runner_options()
    logging.basicConfig(
        level=opts["log_level"],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "gallery.app:create_app",
        factory=True,
        host=opts["host"],
        port=opts["port"],
        reload=opts["reload"],
        log_level=opts["log_level"].lower(),
    )

if __name__ == "__main__":
    main()
