from __future__ import annotations

import threading
from datetime import datetime
from pathlib import Path

_write_lock = threading.Lock()


class Logger:
    """Timestamped console logger that also appends every line to a log file."""

    def __init__(self, prefix: str, log_file: str | None = None):
        self.prefix = prefix
        self.log_file = log_file

    def child(self, prefix: str) -> Logger:
        return Logger(prefix, self.log_file)

    def log(self, msg: str) -> None:
        ts = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        entry = f"{self.prefix} | [{ts}] {msg}"
        with _write_lock:
            print(entry, flush=True)
            if self.log_file:
                Path(self.log_file).parent.mkdir(parents=True, exist_ok=True)
                with open(self.log_file, "a", encoding="utf-8") as f:
                    f.write(entry + "\n")
