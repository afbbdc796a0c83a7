"""QML-facing application facade and state objects.

This package implements the QML↔Python boundary for uploads:
- Single command entry: backend.dispatch(cmd, payload)
- UI binding via a state QObject (backend.upload)
- Python→QML notifications via backend.event / backend.taskEvent
"""
