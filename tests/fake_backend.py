"""Minimal framed-JSON backend used by the proxy tests.

Answers every request with an empty result and publishes one diagnostic for
each saved document. Exits when stdin closes.
"""

from __future__ import annotations

import json
import sys


def _read(stream):
    header = b""
    while b"\r\n\r\n" not in header:
        chunk = stream.read(1)
        if not chunk:
            return None
        header += chunk
    length = 0
    for line in header.split(b"\r\n"):
        if line.lower().startswith(b"content-length:"):
            length = int(line.split(b":", 1)[1].strip())
            break
    return json.loads(stream.read(length).decode("utf-8"))


def _write(stream, message) -> None:
    payload = json.dumps(message).encode("utf-8")
    stream.write(f"Content-Length: {len(payload)}\r\n\r\n".encode("utf-8") + payload)
    stream.flush()


def main() -> None:
    stdin = sys.stdin.buffer
    stdout = sys.stdout.buffer
    while True:
        message = _read(stdin)
        if message is None:
            return
        method = message.get("method")
        if "id" in message:
            _write(stdout, {"jsonrpc": "2.0", "id": message["id"], "result": {}})
        elif method == "textDocument/didSave":
            uri = message["params"]["textDocument"]["uri"]
            _write(
                stdout,
                {
                    "jsonrpc": "2.0",
                    "method": "textDocument/publishDiagnostics",
                    "params": {
                        "uri": uri,
                        "version": 1,
                        "diagnostics": [
                            {
                                "range": {
                                    "start": {"line": 0, "character": 0},
                                    "end": {"line": 0, "character": 1},
                                },
                                "severity": 2,
                                "source": "fake",
                                "message": "native",
                            }
                        ],
                    },
                },
            )
        elif method == "exit":
            return


if __name__ == "__main__":
    main()
