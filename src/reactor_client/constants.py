from __future__ import annotations

REQUEST_FORMAT = "{name} - Log request: {index}"
LINE_TERMINATOR = b"\n"

DEFAULT_HOST = "localhost"
DEFAULT_TCP_PORTS = (6666, 6667)
DEFAULT_UDP_PORT = 6668

DEFAULT_POOL_SIZE = 4
DEFAULT_ROUNDS = 4
DEFAULT_BUFFER_SIZE = 1024
DEFAULT_PACING_MS = 100

DEFAULT_GRACE_TIMEOUT_S = 5.0
DEFAULT_CANCEL_TIMEOUT_S = 2.0
WAKEUP_POLL_S = 0.25
