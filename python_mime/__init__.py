from ._version import __version__
from .exceptions import ConfigurationError, DecodeError, MimeError, ParseError, ResourceError
from .mime import Body, Encoding, Header, Message, Part, Value

__all__ = (
    "__version__",
    "Body",
    "ConfigurationError",
    "DecodeError",
    "Encoding",
    "Header",
    "Message",
    "MimeError",
    "ParseError",
    "Part",
    "ResourceError",
    "Value",
)
