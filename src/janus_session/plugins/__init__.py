from .echotest import EchoTestPlugin

__all__ = ["EchoTestPlugin"]
