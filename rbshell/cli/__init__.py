"""
Shell Module.

Interactive REPL on top of the engine. Reads query lines, prints rendered
responses with Rich. Line editing and history are left to the terminal.

Usage:
    python cli.py                          # Interactive mode
    python cli.py -e 'get("user:1")'       # One line, then exit
"""
