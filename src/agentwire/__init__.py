"""agentwire — drive an agent CLI over its stream-json protocol."""

__version__ = "0.1.0"
