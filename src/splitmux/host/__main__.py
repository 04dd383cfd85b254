"""Module entrypoint for `python -m splitmux.host`."""

import os

from splitmux.host.main import run_host

if __name__ == "__main__":
    raise SystemExit(run_host(log_level=os.environ.get("SPLITMUX_HOST_LOG_LEVEL", "INFO")))
