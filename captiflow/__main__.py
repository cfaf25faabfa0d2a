"""Package entry point for ``python -m captiflow``.

WHY: Users run the caption wizard as ``python -m captiflow clip.mp4``, or
start the HTTP API with ``python -m captiflow --serve``.

RULES:
- ``--serve`` starts the FastAPI app under uvicorn
- Without ``--serve``, falls through to the CLI
"""

import sys

if __name__ == "__main__":
    if "--serve" in sys.argv:
        from captiflow.server.app import run_api
        run_api()
    else:
        from captiflow.cli import main
        main()
