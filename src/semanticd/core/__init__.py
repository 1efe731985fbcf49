"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

Networking plumbing underneath the semantic server:

    ┌──────────────────────────────────────────────────────────────┐
    │  SOCKET SERVER                                               │
    │  listening socket, accept loop on its own thread             │
    └──────────────────────────────┬───────────────────────────────┘
                                   │ Connection
                                   ▼
    ┌──────────────────────────────────────────────────────────────┐
    │  THREAD POOL                                                 │
    │  bounded workers; one worker per open connection             │
    └──────────────────────────────┬───────────────────────────────┘
                                   │
                                   ▼
    ┌──────────────────────────────────────────────────────────────┐
    │  CONNECTION                                                  │
    │  buffered request reads, keep-alive, graceful close          │
    └──────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .connection import Connection, ConnectionState
from .socket_server import SocketServer
from .thread_pool import ThreadPool, Worker, WorkerState


__all__ = [
    "Connection",
    "ConnectionState",
    "SocketServer",
    "ThreadPool",
    "Worker",
    "WorkerState",
]
