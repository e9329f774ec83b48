"""Development launcher: uvicorn with the QuickPharmaPlus app."""
import os
import signal
import sys

import uvicorn


def _shutdown(sig, frame):
    print(f"\nReceived signal {sig}, stopping QuickPharmaPlus API")
    sys.exit(0)


signal.signal(signal.SIGINT, _shutdown)
signal.signal(signal.SIGTERM, _shutdown)

if __name__ == "__main__":
    host = os.getenv("HOST", "127.0.0.1")
    port = int(os.getenv("PORT", "8000"))
    print(f"QuickPharmaPlus API on http://{host}:{port} (docs at /docs)")
    uvicorn.run("quickpharma.main:app", host=host, port=port, log_level="info")
