"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The plumbing: sockets and threads. Nothing here knows about files.

    ┌─────────────────────────────────────────────────────────────────────┐
    │  SOCKET SERVER                                                       │
    │  • Creates, binds and listens on the TCP socket                      │
    │  • Runs the accept() loop in the main thread                         │
    │  • SIGTERM / SIGINT → graceful shutdown                              │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ Connection
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │  WORKER POOL                                                         │
    │  • n worker threads, fixed                                           │
    │  • bounded job queue, submit() blocks when full                      │
    │  • one failing job never takes a worker down                         │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ handler(conn)
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │  CONNECTION                                                          │
    │  • Bounded head read (timeout, byte budget)                          │
    │  • send_all(), idempotent close()                                    │
    │  • State: NEW → READING → ... → CLOSED                               │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .connection import Connection, ConnectionState
from .socket_server import SocketServer
from .thread_pool import Job, Worker, WorkerPool, WorkerState

__all__ = [
    "SocketServer",
    "Connection",
    "ConnectionState",
    "WorkerPool",
    "Worker",
    "WorkerState",
    "Job",
]
