"""Async client for the Centrifugo server HTTP API.

Example:
    from centapi import CentClient, with_skip_history

    async with CentClient("http://localhost:8000/api", api_key="...") as client:
        await client.publish("chat", {"input": "test"}, with_skip_history(True))

        pipe = client.pipe()
        pipe.add_publish("chat", {"input": "test1"})
        pipe.add_presence_stats("chat")
        replies = await client.send_pipe(pipe)
"""

from centapi.api import *  # noqa: F403
from centapi.api import __all__ as _api_all
from centapi.client import CentClient, EndpointResolver
from centapi.config import ClientConfig, load_config
from centapi.core import *  # noqa: F403
from centapi.core import __all__ as _core_all

__version__ = "0.1.0"

__all__ = [
    "CentClient",
    "ClientConfig",
    "EndpointResolver",
    "load_config",
    *_api_all,
    *_core_all,
]
