"""
ShellSight - terminal session replay server

Plays back sessions captured with `script`:
- Recordings stored as timing/typescript pairs in a flat object key-space
- Optional per-user namespaces
- Speed-scaled playback streamed over WebSocket
"""

__version__ = "0.1.0"
