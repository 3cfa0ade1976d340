"""
Operator console (Textual TUI).

Components:
    app.py      ResolverConsole: command input, resolver lifecycle
    widgets.py  structure panel, feedback log, log handler
"""
