"""
Terminal user interface.

Contains the presentation layer:
- Terminal control operations over a rich Console
- Table, footer, status line and detail view rendering
- Single-key command interpreter and keyboard reader
"""
