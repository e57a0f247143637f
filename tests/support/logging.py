"""Parse captured Porthor log messages in tests."""

from __future__ import annotations

import json
from typing import Any

from _pytest.logging import LogCaptureFixture

__all__ = ["parse_log"]


def parse_log(caplog: LogCaptureFixture) -> list[dict[str, Any]]:
    """Decode the JSON log messages emitted by Porthor.

    Messages from other loggers are ignored.  The logger name is checked and
    removed, and so are the fields that vary between runs or are bound to
    every message from the LDAP layer.

    Parameters
    ----------
    caplog
        The log capture fixture.

    Returns
    -------
    list of dict
        Decoded messages in the order they were logged.
    """
    messages = []
    for name, _, message in caplog.record_tuples:
        if not name.startswith("porthor"):
            continue
        data = json.loads(message)
        assert data.pop("logger") == "porthor"
        data.pop("timestamp", None)
        data.pop("ldap_url", None)
        messages.append(data)
    return messages
