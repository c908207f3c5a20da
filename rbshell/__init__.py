"""
Rustbase Shell.

- core/: Configuration, logging, exceptions
- engine/: Query compiler, wire protocol, transports, session, dispatcher
- cli/: Interactive shell (Rich)
"""

__version__ = "0.4.0"
