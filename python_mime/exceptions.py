import binascii


class MimeError(ValueError):
    """Base error class for this package."""
    pass


class ParseError(MimeError):
    """This exception (or a subclass) is raised when there is an error while
    parsing something.  Parsing is lenient by default, so this is only seen
    when strict behaviour has been asked for through configuration.
    """

    #: This is the offset in the input text at which the parse error occurred.
    #: It will be -1 if not specified.
    offset = -1


class DecodeError(ParseError):
    """This exception is raised when there is a decoding error - for example
    with the Base64Decoder or QuotedPrintableDecoder.
    """
    pass


class ResourceError(MimeError, OSError):
    """Raised when a file that should become the content of a body does not
    exist or cannot be read.
    """
    pass


class ConfigurationError(MimeError):
    """Raised when an object is missing state that an operation depends on,
    or is given a setting it does not know, such as an unknown encoding.
    """
    pass


# The error raised by the base64 module on invalid input.
Base64Error = binascii.Error
