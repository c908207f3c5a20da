"""
Client Engine.

Query text in, rendered responses out:

    calls = compile_all('insert("k", {"a": 1}) get("k")')
    dispatcher = Dispatcher(await connect(options))
    for call in calls:
        rendered = await dispatcher.dispatch(call)
"""

from rbshell.engine.compiler import ParsedCall, Verb, compile_all, compile_query
from rbshell.engine.dispatcher import Dispatcher, RenderedResponse, render_response
from rbshell.engine.session import Session, connect
from rbshell.engine.status import Status

__all__ = [
    "Dispatcher",
    "ParsedCall",
    "RenderedResponse",
    "Session",
    "Status",
    "Verb",
    "compile_all",
    "compile_query",
    "connect",
    "render_response",
]
