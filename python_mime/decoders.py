from __future__ import annotations

import base64
import binascii
import re
from typing import TYPE_CHECKING
from urllib.parse import unquote_to_bytes

from .exceptions import Base64Error, DecodeError

if TYPE_CHECKING:  # pragma: no cover
    from typing import Protocol

    class SupportsWrite(Protocol):
        def write(self, __b: bytes) -> object: ...


# Bytes that may legally appear inside a base64 body but are not part of the
# encoded data itself (line breaks inserted by chunk splitting, mostly).
WHITESPACE_RE = re.compile(rb"\s+")


class Base64Decoder:
    """This object provides an interface to decode a stream of base64 data.
    It is instantiated with an "underlying object", and whenever a write()
    operation is performed, it will decode the incoming data as base64, and
    call write() on the underlying object.  This is primarily used for decoding
    the body of a part that was sent with a base64 Content-Transfer-Encoding.

    Line breaks in the incoming data are ignored, so a body that has been
    split into 76-character lines can be written as-is.

    :param underlying: the underlying object to pass writes to
    """

    def __init__(self, underlying: SupportsWrite) -> None:
        self.cache = bytearray()
        self.underlying = underlying

    def write(self, data: bytes) -> int:
        """Takes any input data provided, decodes it as base64, and passes it
        on to the underlying object.  If the data provided is invalid base64
        data, then this method will raise
        a :class:`python_mime.exceptions.DecodeError`

        :param data: base64 data to decode
        """
        length = len(data)
        data = WHITESPACE_RE.sub(b"", data)

        # Prepend any cache info to our data.
        if len(self.cache) > 0:
            data = bytes(self.cache) + data

        # Slice off a string that's a multiple of 4.
        decode_len = (len(data) // 4) * 4
        val = data[:decode_len]

        # Decode and write, if we have any.
        if len(val) > 0:
            try:
                decoded = base64.b64decode(val)
            except Base64Error:
                raise DecodeError("There was an error raised while decoding base64-encoded data.")

            self.underlying.write(decoded)

        # Get the remaining bytes and save in our cache.
        remaining_len = len(data) % 4
        if remaining_len > 0:
            self.cache[:] = data[-remaining_len:]
        else:
            self.cache[:] = b""

        # Return the length of the data to indicate no error.
        return length

    def close(self) -> None:
        """Close this decoder.  If the underlying object has a `close()`
        method, this function will call it.
        """
        if hasattr(self.underlying, "close"):
            self.underlying.close()

    def finalize(self) -> None:
        """Finalize this object.  This should be called when no more data
        should be written to the stream.  This function can raise a
        :class:`python_mime.exceptions.DecodeError` if there is some remaining
        data in the cache.

        If the underlying object has a `finalize()` method, this function will
        call it.
        """
        if len(self.cache) > 0:
            raise DecodeError(
                "There are %d bytes remaining in the Base64Decoder cache when finalize() is called" % len(self.cache)
            )

        if hasattr(self.underlying, "finalize"):
            self.underlying.finalize()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(underlying={self.underlying!r})"


class QuotedPrintableDecoder:
    """This object provides an interface to decode a stream of quoted-printable
    data.  It is instantiated with an "underlying object", in the same manner
    as the :class:`python_mime.decoders.Base64Decoder` class.  This class is
    used when decoding the body of a part sent with a quoted-printable
    Content-Transfer-Encoding.

    :param underlying: the underlying object to pass writes to
    """

    def __init__(self, underlying: SupportsWrite) -> None:
        self.cache = b""
        self.underlying = underlying

    def write(self, data: bytes) -> int:
        """Takes any input data provided, decodes it as quoted-printable, and
        passes it on to the underlying object.

        :param data: quoted-printable data to decode
        """
        length = len(data)

        # Prepend any cache info to our data.
        if len(self.cache) > 0:
            data = self.cache + data

        # Since the longest possible escape is 3 characters long, either in
        # the form '=XX' or '=\r\n', we encode up to 3 characters before the
        # end of the string.
        enc, rest = data[:-3], data[-3:]

        # An escape or soft line break must not straddle the cut.
        index = enc.rfind(b"=", max(len(enc) - 2, 0))
        if index != -1:
            enc, rest = enc[:index], enc[index:] + rest

        # Encode and write, if we have data.
        if len(enc) > 0:
            self.underlying.write(binascii.a2b_qp(enc))

        # Save remaining in cache.
        self.cache = rest
        return length

    def close(self) -> None:
        """Close this decoder.  If the underlying object has a `close()`
        method, this function will call it.
        """
        if hasattr(self.underlying, "close"):
            self.underlying.close()

    def finalize(self) -> None:
        """Finalize this object.  This should be called when no more data
        should be written to the stream.  This function will not raise any
        exceptions, but it may write more data to the underlying object if
        there is data remaining in the cache.

        If the underlying object has a `finalize()` method, this function will
        call it.
        """
        # If we have a cache, write and then remove it.
        if len(self.cache) > 0:
            self.underlying.write(binascii.a2b_qp(self.cache))
            self.cache = b""

        # Finalize our underlying stream.
        if hasattr(self.underlying, "finalize"):
            self.underlying.finalize()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(underlying={self.underlying!r})"


class UrlDecoder:
    """Decodes a stream of percent-encoded data.  With `plus=True` a '+' is
    read as a space (form encoding), otherwise it is kept literally (the raw,
    RFC 3986 flavour).  Escapes that are not followed by two hex digits are
    passed through unchanged.

    :param underlying: the underlying object to pass writes to
    :param plus: whether '+' stands for a space
    """

    def __init__(self, underlying: SupportsWrite, plus: bool = True) -> None:
        self.cache = b""
        self.plus = plus
        self.underlying = underlying

    def write(self, data: bytes) -> int:
        length = len(data)

        if len(self.cache) > 0:
            data = self.cache + data

        # An escape is at most 3 bytes long, so hold back a trailing '%' or
        # '%X' until the next write fills it in.
        split = len(data)
        pos = data.rfind(b"%", max(0, len(data) - 2))
        if pos != -1:
            split = pos

        enc, self.cache = data[:split], data[split:]
        if len(enc) > 0:
            self.underlying.write(self._decode(enc))

        return length

    def _decode(self, data: bytes) -> bytes:
        if self.plus:
            data = data.replace(b"+", b" ")
        return unquote_to_bytes(data)

    def close(self) -> None:
        if hasattr(self.underlying, "close"):
            self.underlying.close()

    def finalize(self) -> None:
        if len(self.cache) > 0:
            self.underlying.write(self._decode(self.cache))
            self.cache = b""

        if hasattr(self.underlying, "finalize"):
            self.underlying.finalize()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(underlying={self.underlying!r}, plus={self.plus!r})"
