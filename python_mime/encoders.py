from __future__ import annotations

import base64
import binascii
from typing import TYPE_CHECKING
from urllib.parse import quote, quote_plus

if TYPE_CHECKING:  # pragma: no cover
    from .decoders import SupportsWrite


class Base64Encoder:
    """The counterpart of :class:`python_mime.decoders.Base64Decoder`.  Any
    data written to this object is base64-encoded and written to the
    underlying object.  Input that is not a multiple of 3 bytes long is held
    back until more data arrives or :meth:`finalize` is called.  No line
    breaks are inserted.

    :param underlying: the underlying object to pass writes to
    """

    def __init__(self, underlying: SupportsWrite) -> None:
        self.cache = b""
        self.underlying = underlying

    def write(self, data: bytes) -> int:
        length = len(data)

        if len(self.cache) > 0:
            data = self.cache + data

        # Only whole 3-byte groups encode without padding.
        encode_len = (len(data) // 3) * 3
        if encode_len > 0:
            self.underlying.write(base64.b64encode(data[:encode_len]))

        self.cache = data[encode_len:]
        return length

    def close(self) -> None:
        if hasattr(self.underlying, "close"):
            self.underlying.close()

    def finalize(self) -> None:
        """Write out any cached bytes, padded, and finalize the underlying
        object if it has a `finalize()` method.
        """
        if len(self.cache) > 0:
            self.underlying.write(base64.b64encode(self.cache))
            self.cache = b""

        if hasattr(self.underlying, "finalize"):
            self.underlying.finalize()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(underlying={self.underlying!r})"


class QuotedPrintableEncoder:
    """Encodes written data as RFC 2045 quoted-printable.  Lines longer than
    76 characters are broken with CRLF soft line breaks.  Since the encoding
    of a line depends on how it ends, data is only encoded one complete line
    at a time; a trailing partial line is cached until the next write or
    :meth:`finalize`.

    :param underlying: the underlying object to pass writes to
    """

    def __init__(self, underlying: SupportsWrite) -> None:
        self.cache = b""
        self.underlying = underlying

    def write(self, data: bytes) -> int:
        length = len(data)

        if len(self.cache) > 0:
            data = self.cache + data

        split = data.rfind(b"\n") + 1
        if split > 0:
            self.underlying.write(self._encode(data[:split]))

        self.cache = data[split:]
        return length

    @staticmethod
    def _encode(data: bytes) -> bytes:
        return binascii.b2a_qp(data).replace(b"=\n", b"=\r\n")

    def close(self) -> None:
        if hasattr(self.underlying, "close"):
            self.underlying.close()

    def finalize(self) -> None:
        if len(self.cache) > 0:
            self.underlying.write(self._encode(self.cache))
            self.cache = b""

        if hasattr(self.underlying, "finalize"):
            self.underlying.finalize()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(underlying={self.underlying!r})"


class UrlEncoder:
    """Percent-encodes written data.  Every byte other than ASCII letters,
    digits and ``_.-~`` is escaped.  With `plus=True` a space becomes '+'
    (form encoding), otherwise it becomes ``%20``.

    :param underlying: the underlying object to pass writes to
    :param plus: whether a space is written as '+'
    """

    def __init__(self, underlying: SupportsWrite, plus: bool = True) -> None:
        self.plus = plus
        self.underlying = underlying

    def write(self, data: bytes) -> int:
        if self.plus:
            encoded = quote_plus(data, safe="")
        else:
            encoded = quote(data, safe="")
        self.underlying.write(encoded.encode("ascii"))
        return len(data)

    def close(self) -> None:
        if hasattr(self.underlying, "close"):
            self.underlying.close()

    def finalize(self) -> None:
        if hasattr(self.underlying, "finalize"):
            self.underlying.finalize()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(underlying={self.underlying!r}, plus={self.plus!r})"
