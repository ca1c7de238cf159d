from __future__ import annotations

import hashlib
import logging
import os
import re
import textwrap
from collections.abc import Mapping
from email.errors import HeaderParseError
from email.header import decode_header
from email.utils import decode_rfc2231
from enum import IntEnum
from io import BytesIO
from typing import TYPE_CHECKING
from urllib.parse import unquote

from .decoders import Base64Decoder, QuotedPrintableDecoder, UrlDecoder
from .encoders import Base64Encoder, QuotedPrintableEncoder, UrlEncoder
from .exceptions import ConfigurationError, ParseError, ResourceError

if TYPE_CHECKING:  # pragma: no cover
    from typing import Any, TypedDict, Union

    class MessageConfig(TypedDict, total=False):
        ERROR_ON_BAD_CTE: bool
        FORM_CHARSET: str

    # What Message.parse_part() hands back: a leaf, or the children of a
    # nested multipart segment (which may themselves be nested).
    ParsedPart = Union["Part", list["ParsedPart"]]


# Get logger for this module.
logger = logging.getLogger(__name__)

CRLF = "\r\n"

# Written between the headers and the first boundary of a multipart part.
PREAMBLE = "This is a multi-part message in MIME format."

# Line length used when a body is split without an explicit length.
DEFAULT_SPLIT_LENGTH = 76

# Authentication schemes recognised at the front of a header value.
AUTH_SCHEMES = ("basic", "bearer", "digest")

# Transfer encodings that leave the body untouched.
IDENTITY_ENCODINGS = frozenset(("7bit", "8bit", "binary"))

# A header name at the start of a line.  Continuation lines start with
# whitespace, so they never match.
HEADER_NAME_RE = re.compile(r"^([A-Za-z0-9!#$%&'*+.^_`|~-]+)[ \t]*:", re.MULTILINE)
FOLD_RE = re.compile(r"\r?\n[ \t]+")

# These are regexes for parsing header value parameters.
QUOTED_STR = r'"(?:\\.|[^"\\])*"'
QUOTED_RE = re.compile(QUOTED_STR)


def _option_re(delimiter: str) -> re.Pattern[str]:
    d = re.escape(delimiter)
    return re.compile(r'(?:^|[' + d + r'\s])\s*([^\s=;,"]+)\s*=\s*(' + QUOTED_STR + r"|[^" + d + r"]*)")


OPTION_RE = {";": _option_re(";"), ",": _option_re(",")}


class Encoding(IntEnum):
    """The transfer encodings a :class:`Body` can apply to its content."""

    BASE64 = 1
    QUOTED = 2
    URL = 3
    RAW_URL = 4


ENCODING_NAMES = {
    "base64": Encoding.BASE64,
    "quoted-printable": Encoding.QUOTED,
    "quoted": Encoding.QUOTED,
    "url": Encoding.URL,
    "raw-url": Encoding.RAW_URL,
    "raw_url": Encoding.RAW_URL,
}


# =============================================================================
# Helper functions
# =============================================================================


def read_file(path: str | os.PathLike[str]) -> bytes:
    """Read the whole of a file from disk, raising
    :class:`python_mime.exceptions.ResourceError` if it is missing or can't be
    read.
    """
    if not os.path.isfile(path):
        logger.error("The file %r does not exist", path)
        raise ResourceError(f"The file '{os.fspath(path)}' does not exist.")

    logger.info("Reading file: %r", path)
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError:
        logger.exception("Error reading file")
        raise ResourceError(f"Error reading file: {os.fspath(path)!r}")


def chunk_split(text: str, length: int = DEFAULT_SPLIT_LENGTH, end: str = CRLF) -> str:
    """Split `text` into `length`-sized chunks, each followed by `end`."""
    return "".join(text[i : i + length] + end for i in range(0, len(text), length))


def _make_encoder(encoding: Encoding, underlying: BytesIO) -> Any:
    if encoding == Encoding.BASE64:
        return Base64Encoder(underlying)
    elif encoding == Encoding.QUOTED:
        return QuotedPrintableEncoder(underlying)
    return UrlEncoder(underlying, plus=encoding == Encoding.URL)


def _make_decoder(encoding: Encoding, underlying: BytesIO) -> Any:
    if encoding == Encoding.BASE64:
        return Base64Decoder(underlying)
    elif encoding == Encoding.QUOTED:
        return QuotedPrintableDecoder(underlying)
    return UrlDecoder(underlying, plus=encoding == Encoding.URL)


def encode_content(data: bytes, encoding: Encoding | None) -> bytes:
    """Apply a transfer encoding to `data`.  `None` returns it unchanged."""
    if encoding is None:
        return data
    out = BytesIO()
    encoder = _make_encoder(encoding, out)
    encoder.write(data)
    encoder.finalize()
    return out.getvalue()


def decode_content(data: bytes, encoding: Encoding | None) -> bytes:
    """Undo a transfer encoding.  Can raise
    :class:`python_mime.exceptions.DecodeError` for invalid base64.
    """
    if encoding is None:
        return data
    out = BytesIO()
    decoder = _make_decoder(encoding, out)
    decoder.write(data)
    decoder.finalize()
    return out.getvalue()


def decode_filename(value: str) -> str:
    """Best-effort decode of a filename that may hold RFC 2047 encoded words
    (``=?UTF-8?B?...?=``).  Anything that can't be decoded is returned as-is.
    """
    try:
        chunks = decode_header(value)
    except HeaderParseError:
        logger.warning("Could not decode filename %r", value)
        return value

    out: list[str] = []
    for text, charset in chunks:
        if isinstance(text, bytes):
            try:
                out.append(text.decode(charset or "utf-8", "replace"))
            except LookupError:
                out.append(text.decode("utf-8", "replace"))
        else:
            out.append(text)
    return "".join(out)


def _decode_extended(value: str) -> str:
    # RFC 2231 form: charset'language'percent-encoded-text
    charset, _, text = decode_rfc2231(value)
    try:
        return unquote(text, encoding=charset or "us-ascii", errors="replace")
    except LookupError:
        return unquote(text, errors="replace")


def _split_head(text: str) -> tuple[str, str] | None:
    # Headers end at the first blank line.  Bare LF line endings are accepted
    # when there is no CRLF blank line at all.
    for sep in (CRLF + CRLF, "\n\n"):
        pos = text.find(sep)
        if pos != -1:
            return text[:pos], text[pos + len(sep) :]
    return None


def _strip_delimiter_newlines(segment: str) -> str:
    # Remove the line break that follows a boundary line, and the one that
    # belongs to the next boundary.
    if segment.startswith(CRLF):
        segment = segment[2:]
    elif segment.startswith("\n"):
        segment = segment[1:]
    if segment.endswith(CRLF):
        segment = segment[:-2]
    elif segment.endswith("\n"):
        segment = segment[:-1]
    return segment


def _find_boundary(headers: list[Header]) -> str | None:
    for header in headers:
        for value in header.values:
            if value.has_parameter("boundary"):
                return value.get_parameter("boundary")
    return None


def _is_file_backed(member: ParsedPart) -> bool:
    if isinstance(member, (list, tuple)):
        return any(_is_file_backed(m) for m in member)
    return member.body is not None and member.body.is_file


# =============================================================================
# Header values and headers
# =============================================================================


class Value:
    """One value of a header: an optional authentication scheme, the bare
    value and its parameters.  Renders as::

        [scheme]value[; name=param[; name2="param 2"]]

    :param value: the bare value, e.g. ``form-data``
    :param scheme: an authentication scheme prefix, including its trailing
                   space, e.g. ``"Bearer "``
    :param parameters: a mapping of parameter names to values.  Values are
                       stored as strings.
    :param delimiter: the character written between parameters
    :param force_quote: always wrap parameter values in double quotes
    """

    def __init__(
        self,
        value: str | None = None,
        scheme: str | None = None,
        parameters: Mapping[str, Any] | None = None,
        delimiter: str | None = ";",
        force_quote: bool = False,
    ) -> None:
        self.scheme = scheme
        self.value = value
        self.parameters: dict[str, str] = {}
        self.delimiter = delimiter
        self.force_quote = force_quote

        if parameters:
            self.add_parameters(parameters)

    @classmethod
    def parse(cls, value: str) -> Value:
        """Parse the text of a header value.  Text with no parameter that can
        be recognised is kept whole as the bare value.
        """
        value_object = cls()
        value = value.strip()
        bare = value

        # Delimiters inside quoted strings don't count.
        unquoted = QUOTED_RE.sub('""', value)
        if ";" in unquoted:
            delimiter = ";"
        elif "," in unquoted:
            delimiter = ","
        else:
            delimiter = None

        if delimiter is not None:
            matches = list(OPTION_RE[delimiter].finditer(value))
            if matches:
                value_object.delimiter = delimiter
                bare = value[: matches[0].start()].strip()
                for match in matches:
                    name, param = cls.parse_parameter(match.group(1) + "=" + match.group(2).strip())
                    value_object.parameters[name] = param
                value_object._set_bare(bare)
                return value_object
            logger.debug("No parameters found in %r", value)

        value_object.value = bare or None
        return value_object

    @staticmethod
    def parse_parameter(parameter: str) -> tuple[str, str]:
        """Split ``name=value`` and drop one leading and one trailing quote.
        Escapes inside the value are left as they are.
        """
        name, _, value = parameter.partition("=")
        name = name.strip()
        value = value.strip()
        if value.startswith('"'):
            value = value[1:]
        if value.endswith('"'):
            value = value[:-1]
        return name, value

    def _set_bare(self, bare: str) -> None:
        lowered = bare.lower()
        for scheme in AUTH_SCHEMES:
            if lowered == scheme:
                self.scheme = bare + " "
                self.value = None
                return
            if lowered.startswith(scheme + " "):
                self.scheme = bare[: len(scheme) + 1]
                self.value = bare[len(scheme) + 1 :].strip() or None
                return
        self.value = bare or None

    def has_scheme(self) -> bool:
        return self.scheme is not None

    def has_value(self) -> bool:
        return self.value is not None

    def add_parameter(self, name: str, value: Any) -> None:
        self.parameters[name] = str(value)

    def add_parameters(self, parameters: Mapping[str, Any]) -> None:
        for name, value in parameters.items():
            self.add_parameter(name, value)

    def get_parameter(self, name: str) -> str | None:
        return self.parameters.get(name)

    def has_parameter(self, name: str) -> bool:
        return name in self.parameters

    def has_parameters(self) -> bool:
        return len(self.parameters) > 0

    def has_delimiter(self) -> bool:
        return bool(self.delimiter)

    def get_parameters_as_string(self) -> str:
        """Render the parameters alone, joined by the delimiter.  Values
        containing a space or the delimiter are quoted.
        """
        if not self.has_delimiter():
            logger.error("No delimiter has been set")
            raise ConfigurationError("No delimiter has been set.")

        assert self.delimiter is not None
        delimiter = self.delimiter.strip()
        parameters = []
        for name, value in self.parameters.items():
            needs_quotes = self.force_quote or " " in value or delimiter in value
            if needs_quotes and not (len(value) >= 2 and value[0] == '"' and value[-1] == '"'):
                value = f'"{value}"'
            parameters.append(f"{name}={value}")

        return (delimiter + " ").join(parameters)

    def render(self) -> str:
        value = (self.scheme or "") + (self.value or "")

        if self.parameters:
            parameters = self.get_parameters_as_string()
            if value and not value.endswith(" "):
                assert self.delimiter is not None
                value += self.delimiter.strip() + " "
            value += parameters

        return value

    def __str__(self) -> str:
        return self.render()

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Value):
            return (
                self.scheme == other.scheme and self.value == other.value and self.parameters == other.parameters
            )
        else:
            return NotImplemented

    def __repr__(self) -> str:
        return "%s(value=%r, scheme=%r, parameters=%r)" % (
            self.__class__.__name__,
            self.value,
            self.scheme,
            self.parameters,
        )


class Header:
    """A named header holding one or more values.  Each value renders as its
    own ``Name: value`` line, which is how repeated headers such as
    ``Set-Cookie`` are written.

    :param name: the header name
    :param value: a value, a :class:`Value`, or a list of either
    :param parameters: parameters added to every value given
    :param wrap: wrap rendered lines at this many columns; 0 disables wrapping
    :param indent: prefix for continuation lines when wrapping
    """

    def __init__(
        self,
        name: str | None = None,
        value: Any = None,
        parameters: Mapping[str, Any] | None = None,
        wrap: int = 0,
        indent: str = "\t",
    ) -> None:
        self.name = name
        self.values: list[Value] = []
        self.wrap = wrap
        self.indent = indent

        if value is not None:
            if isinstance(value, (list, tuple)):
                self.add_values(value, parameters)
            else:
                self.add_value(value, parameters=parameters)

    @classmethod
    def parse(cls, header: str) -> Header:
        """Parse ``Name: value`` text.  When the name appears more than once,
        as with several ``Set-Cookie:`` lines joined together, each occurrence
        becomes a separate value.
        """
        header = FOLD_RE.sub(" ", header)
        name, _, rest = header.partition(":")
        name = name.strip()
        header_object = cls(name)

        token = name + ":"
        if header.count(token) > 1:
            for segment in header.split(token)[1:]:
                header_object.add_value(Value.parse(segment))
        else:
            header_object.add_value(Value.parse(rest))

        return header_object

    def add_value(self, value: Any, scheme: str | None = None, parameters: Mapping[str, Any] | None = None) -> None:
        if not isinstance(value, Value):
            value = Value(str(value), scheme, parameters)
        else:
            if scheme is not None:
                value.scheme = scheme
            if parameters:
                value.add_parameters(parameters)
        self.values.append(value)

    def add_values(self, values: list[Any], parameters: Mapping[str, Any] | None = None) -> None:
        for value in values:
            self.add_value(value, parameters=parameters)

    def get_values(self) -> list[Value]:
        return self.values

    def get_value(self, i: int = 0) -> Value | None:
        return self.values[i] if -len(self.values) <= i < len(self.values) else None

    def get_value_as_string(self, i: int = 0) -> str | None:
        value = self.get_value(i)
        return value.render() if value is not None else None

    def has_value(self, value: str) -> bool:
        """Whether any value's bare text is exactly `value`.  Parameters are
        not considered.
        """
        return any(v.value == value for v in self.values)

    def has_values(self) -> bool:
        return len(self.values) > 0

    def get_parameter(self, name: str, i: int = 0) -> str | None:
        value = self.get_value(i)
        return value.get_parameter(name) if value is not None else None

    def has_parameter(self, name: str, i: int = 0) -> bool:
        value = self.get_value(i)
        return value is not None and value.has_parameter(name)

    def is_attachment(self) -> bool:
        if self.name is None or self.name.lower() != "content-disposition":
            return False
        for value in self.values:
            text = (value.value or "").lower()
            if "attachment" in text or "inline" in text:
                return True
        return False

    def set_wrap(self, wrap: int) -> None:
        self.wrap = int(wrap)

    def has_wrap(self) -> bool:
        return self.wrap > 0

    def set_indent(self, indent: str) -> None:
        self.indent = indent

    def has_indent(self) -> bool:
        return bool(self.indent)

    def render(self) -> str:
        lines = []
        for value in self.values:
            line = f"{self.name}: {value.render()}"
            if self.wrap > 0:
                wrapped = textwrap.wrap(
                    line,
                    self.wrap,
                    subsequent_indent=self.indent,
                    break_long_words=False,
                    break_on_hyphens=False,
                )
                line = CRLF.join(wrapped)
            lines.append(line)
        return CRLF.join(lines)

    def __len__(self) -> int:
        return len(self.values)

    def __str__(self) -> str:
        return self.render()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, values={self.values!r})"


# =============================================================================
# Bodies
# =============================================================================


class Body:
    """The content of a leaf part.  Content is held as bytes; text given to
    the constructor is encoded as UTF-8.

    The transfer encoding is applied by the first :meth:`render`, which
    replaces the stored content with its encoded form and sets
    `is_encoded`, so rendering again never encodes twice.  Line splitting
    is applied on every render.

    :param content: the raw content
    :param encoding: an :class:`Encoding` or one of its names
                     (``"base64"``, ``"quoted-printable"``, ``"url"``,
                     ``"raw-url"``)
    :param split: `True` to split lines at 76 characters, or a line length
    """

    BASE64 = Encoding.BASE64
    QUOTED = Encoding.QUOTED
    URL = Encoding.URL
    RAW_URL = Encoding.RAW_URL

    def __init__(self, content: str | bytes | None = None, encoding: Any = None, split: bool | int | None = None) -> None:
        self.content: bytes | None = None
        self.encoding: Encoding | None = None
        self.split: bool | int | None = None
        self.is_file = False
        self.is_encoded = False

        if content is not None:
            self.set_content(content)
        if encoding is not None:
            self.set_encoding(encoding)
        if split is not None:
            self.set_split(split)

    def set_content(self, content: str | bytes) -> None:
        if isinstance(content, str):
            content = content.encode("utf-8")
        self.content = bytes(content)

    def set_content_from_file(self, path: str | os.PathLike[str], encoding: Any = None, split: bool | int | None = None) -> None:
        self.content = read_file(path)
        self.is_file = True

        if encoding is not None:
            self.set_encoding(encoding)
        if split is not None:
            self.set_split(split)

    def has_content(self) -> bool:
        return self.content is not None

    def set_encoding(self, encoding: Any) -> None:
        if encoding is None or isinstance(encoding, Encoding):
            self.encoding = encoding
        elif isinstance(encoding, str) and encoding.lower() in ENCODING_NAMES:
            self.encoding = ENCODING_NAMES[encoding.lower()]
        else:
            try:
                self.encoding = Encoding(encoding)
            except ValueError:
                logger.error("Unknown encoding: %r", encoding)
                raise ConfigurationError(f"Unknown encoding: {encoding!r}")

    def has_encoding(self) -> bool:
        return self.encoding is not None

    def is_base64(self) -> bool:
        return self.encoding == Encoding.BASE64

    def is_quoted(self) -> bool:
        return self.encoding == Encoding.QUOTED

    def is_url(self) -> bool:
        return self.encoding == Encoding.URL

    def is_raw_url(self) -> bool:
        return self.encoding == Encoding.RAW_URL

    def set_split(self, split: bool | int | None) -> None:
        if split is None or split is False:
            self.split = None
        elif split is True:
            self.split = True
        elif isinstance(split, int) and split > 0:
            self.split = split
        else:
            raise ConfigurationError(f"Split length must be a positive integer, not {split!r}")

    def has_split(self) -> bool:
        return self.split is not None

    def get_split_length(self) -> int | None:
        if self.split is True:
            return DEFAULT_SPLIT_LENGTH
        return self.split

    def set_as_file(self, is_file: bool) -> None:
        self.is_file = bool(is_file)

    def set_as_encoded(self, is_encoded: bool) -> None:
        self.is_encoded = bool(is_encoded)

    def render(self) -> str:
        content = self.content if self.content is not None else b""

        if not self.is_encoded and self.encoding is not None:
            logger.debug("Applying %s encoding to %d bytes", self.encoding.name, len(content))
            content = encode_content(content, self.encoding)
            self.content = content
            self.is_encoded = True

        # Bytes map 1:1 onto latin-1 text, so the rendered text encodes back
        # to exactly these bytes.
        text = content.decode("latin-1")

        length = self.get_split_length()
        if length is not None:
            text = chunk_split(text, length)

        return text

    def get_contents(self) -> bytes | None:
        """The raw content: the stored content with the declared encoding
        undone.  Nothing on the body is changed.  A body that has not been
        rendered (or parsed) still holds its raw bytes, which are returned
        as they are.
        """
        if self.content is None:
            return None
        if not self.is_encoded:
            return self.content
        return decode_content(self.content, self.encoding)

    def __str__(self) -> str:
        return self.render()

    def __repr__(self) -> str:
        return "%s(encoding=%r, split=%r, is_file=%r, is_encoded=%r)" % (
            self.__class__.__name__,
            self.encoding,
            self.split,
            self.is_file,
            self.is_encoded,
        )


# =============================================================================
# Parts
# =============================================================================


class Part:
    """A node of a MIME tree.  A part is either a leaf, with headers and a
    :class:`Body`, or composite, with headers and child parts.  If both a
    body and children are present the children are rendered.

    The constructor takes any mix of :class:`Header`, :class:`Body` and
    :class:`Part` objects, lists of headers and parts, and ``{name: value}``
    dicts of headers::

        Part(Header("Content-Type", "text/plain"), Body("Hello"))
    """

    def __init__(self, *args: Any) -> None:
        self.headers: dict[str, Header] = {}
        self.body: Body | None = None
        self.parts: list[Part] = []
        self.sub_type: str | None = None
        self.boundary: str | None = None

        for arg in args:
            if isinstance(arg, (list, tuple)):
                for a in arg:
                    if isinstance(a, Header):
                        self.add_header(a)
                    elif isinstance(a, Part):
                        self.add_part(a)
            elif isinstance(arg, Mapping):
                self.add_headers(arg)
            elif isinstance(arg, Header):
                self.add_header(arg)
            elif isinstance(arg, Body):
                self.set_body(arg)
            elif isinstance(arg, Part):
                self.add_part(arg)

    def _header_key(self, name: str) -> str | None:
        if name in self.headers:
            return name
        lowered = name.lower()
        for key in self.headers:
            if key.lower() == lowered:
                return key
        return None

    def add_header(self, header: Header | str, value: Any = None) -> None:
        """Add a header, replacing any existing header of the same name
        (compared case-insensitively).
        """
        if not isinstance(header, Header):
            header = Header(header, value)
        assert header.name is not None, "A header needs a name"

        key = self._header_key(header.name)
        if key is not None and key != header.name:
            del self.headers[key]
        self.headers[header.name] = header

    def add_headers(self, headers: Mapping[str, Any] | list[Header]) -> None:
        if isinstance(headers, Mapping):
            for name, value in headers.items():
                if isinstance(value, Header):
                    self.add_header(value)
                else:
                    self.add_header(name, value)
        else:
            for header in headers:
                self.add_header(header)

    def get_headers(self) -> dict[str, Header]:
        return self.headers

    def get_header(self, name: str) -> Header | None:
        key = self._header_key(name)
        return self.headers[key] if key is not None else None

    def has_header(self, name: str) -> bool:
        return self._header_key(name) is not None

    def has_headers(self) -> bool:
        return len(self.headers) > 0

    def remove_header(self, name: str) -> None:
        key = self._header_key(name)
        if key is not None:
            del self.headers[key]

    def set_body(self, body: Body | str | bytes) -> None:
        self.body = body if isinstance(body, Body) else Body(body)

    def get_body(self) -> Body | None:
        return self.body

    def has_body(self) -> bool:
        return self.body is not None

    def add_file(
        self,
        path: str | os.PathLike[str],
        disposition: str | None = "attachment",
        encoding: Any = Encoding.BASE64,
        split: bool | int | None = True,
    ) -> None:
        """Use the contents of a file as the body.  Unless `disposition` is
        None, a ``Content-Disposition`` header naming the file is added.
        Raises :class:`python_mime.exceptions.ResourceError` if the file does
        not exist.
        """
        body = Body()
        body.set_content_from_file(path, encoding, split)

        if disposition is not None:
            self.add_header(Header("Content-Disposition", disposition, {"filename": os.path.basename(path)}))
        self.body = body

    def add_part(self, part: Part) -> None:
        self.parts.append(part)

    def add_parts(self, parts: list[ParsedPart]) -> None:
        """Add each part in turn.  A nested list becomes a single composite
        child holding its members, with subtype ``mixed`` if any member is
        file-backed and ``alternative`` otherwise.
        """
        for part in parts:
            if isinstance(part, (list, tuple)):
                group = Part()
                group.add_parts(list(part))
                group.sub_type = "mixed" if _is_file_backed(part) else "alternative"
                self.add_part(group)
            else:
                self.add_part(part)

    def get_parts(self) -> list[Part]:
        return self.parts

    def has_parts(self) -> bool:
        return len(self.parts) > 0

    def set_sub_type(self, sub_type: str | None) -> None:
        self.sub_type = sub_type

    def get_sub_type(self) -> str | None:
        return self.sub_type

    def has_sub_type(self) -> bool:
        return self.sub_type is not None

    def set_boundary(self, boundary: str | None) -> None:
        self.boundary = boundary

    def get_boundary(self) -> str | None:
        return self.boundary

    def has_boundary(self) -> bool:
        return self.boundary is not None

    def generate_boundary(self) -> str:
        self.boundary = hashlib.sha1(os.urandom(32)).hexdigest()
        return self.boundary

    def prepare(self) -> None:
        """Bring the part into a renderable state.  :meth:`render` calls this
        itself; it is idempotent.

        For a composite part a boundary is chosen (taken from an existing
        multipart ``Content-Type`` header if there is one, else generated) and
        a ``Content-Type: multipart/<sub_type>; boundary=...`` header is added
        when none exists and a subtype is set.  A file-backed leaf without a
        ``Content-Transfer-Encoding`` header gets one.
        """
        if self.parts:
            content_type = self.get_header("Content-Type")
            declared = None
            if content_type is not None and content_type.get_value() is not None:
                declared = Value.parse(content_type.get_value_as_string() or "")

            if self.boundary is None:
                if declared is not None and declared.has_parameter("boundary"):
                    self.boundary = declared.get_parameter("boundary")
                else:
                    self.generate_boundary()
                    logger.debug("Generated boundary %r", self.boundary)

            if content_type is None:
                if self.sub_type is not None:
                    self.add_header(
                        Header(
                            "Content-Type",
                            Value("multipart/" + self.sub_type, parameters={"boundary": self.boundary}),
                        )
                    )
            elif (
                declared is not None
                and (declared.value or "").lower().startswith("multipart/")
                and not declared.has_parameter("boundary")
            ):
                declared.add_parameter("boundary", self.boundary)
                content_type.values[0] = declared

        elif self.body is not None:
            if self.body.is_file and not self.has_header("Content-Transfer-Encoding"):
                encoding = "base64" if self.body.is_base64() else "binary"
                self.add_header("Content-Transfer-Encoding", encoding)

    def render_headers(self) -> str:
        return CRLF.join(header.render() for header in self.headers.values())

    def render(self, preamble: bool = True) -> str:
        """Serialize the part, children and all.  The first render may add
        headers and a boundary to the tree; see :meth:`prepare`.

        :param preamble: write the "This is a multi-part message" line in
                         composite parts
        """
        if self.parts:
            return self.render_parts(preamble)

        self.prepare()
        out = ""
        if self.headers:
            out += self.render_headers() + CRLF + CRLF
        if self.body is not None:
            out += self.body.render()
        return out

    def render_parts(self, preamble: bool = True, headers: bool = True) -> str:
        self.prepare()
        boundary = self.boundary

        out = ""
        if headers and self.headers:
            out += self.render_headers() + CRLF + CRLF
        if preamble:
            out += PREAMBLE + CRLF

        for part in self.parts:
            out += "--" + boundary + CRLF + part.render(preamble) + CRLF
        out += "--" + boundary + "--" + CRLF

        return out

    def render_raw(self) -> str:
        """Only the boundary-delimited children, with no headers and no
        preamble.
        """
        if not self.parts:
            return self.body.render() if self.body is not None else ""
        return self.render_parts(preamble=False, headers=False)

    def get_contents(self) -> bytes | None:
        return self.body.get_contents() if self.body is not None else None

    def get_content_type(self) -> str | None:
        header = self.get_header("Content-Type")
        if header is None or header.get_value() is None:
            return None
        return header.get_value().value

    def get_filename(self) -> str | None:
        """The filename of this part: the ``filename`` (or RFC 2231
        ``filename*``) parameter of ``Content-Disposition``, else its ``name``
        parameter, else the ``name`` parameter of ``Content-Type``.
        """
        disposition = self.get_header("Content-Disposition")
        if disposition is not None:
            if disposition.has_parameter("filename*"):
                return _decode_extended(disposition.get_parameter("filename*"))
            for name in ("filename", "name"):
                if disposition.has_parameter(name):
                    return decode_filename(disposition.get_parameter(name))

        content_type = self.get_header("Content-Type")
        if content_type is not None and content_type.has_parameter("name"):
            return decode_filename(content_type.get_parameter("name"))

        return None

    def has_attachment(self) -> bool:
        """A composite part has an attachment if any descendant does.  A leaf
        has one if its ``Content-Disposition`` says ``attachment`` or
        ``inline``, or its body came from a file.
        """
        if self.parts:
            return any(part.has_attachment() for part in self.parts)

        disposition = self.get_header("Content-Disposition")
        if disposition is not None and disposition.is_attachment():
            return True
        return self.body is not None and self.body.is_file

    def get_attachments(self) -> list[Part]:
        if not self.parts:
            return [self] if self.has_attachment() else []

        attachments = []
        for part in self.parts:
            attachments.extend(part.get_attachments())
        return attachments

    def __str__(self) -> str:
        return self.render()

    def __bytes__(self) -> bytes:
        return self.render().encode("latin-1")

    def __repr__(self) -> str:
        return "%s(headers=%r, parts=%d, sub_type=%r)" % (
            self.__class__.__name__,
            list(self.headers),
            len(self.parts),
            self.sub_type,
        )


# =============================================================================
# Messages
# =============================================================================


class Message(Part):
    """A top-level part.  Adds parsing of raw message text and helpers for
    ``multipart/form-data`` forms.

    Parsing is lenient throughout: text that can't be understood ends up
    as the body of a leaf part rather than raising.  Every parse method
    accepts `str` or `bytes`; bytes are read as latin-1.
    """

    # This is the default configuration for parsing and building messages.
    DEFAULT_CONFIG: MessageConfig = {
        # Raise a ParseError on an unknown Content-Transfer-Encoding?
        "ERROR_ON_BAD_CTE": False,
        # Charset of form field text.
        "FORM_CHARSET": "utf-8",
    }

    @classmethod
    def _config(cls, config: MessageConfig | None) -> MessageConfig:
        merged = cls.DEFAULT_CONFIG.copy()
        if config:
            merged.update(config)
        return merged

    @classmethod
    def parse_message(cls, message: str | bytes, config: MessageConfig | None = None) -> Message:
        if isinstance(message, bytes):
            message = message.decode("latin-1")
        config = cls._config(config)

        split = _split_head(message)
        if split is not None:
            header_string, body_string = split
        else:
            header_string, body_string = "", message

        headers = cls.parse_headers(header_string)
        boundary = _find_boundary(headers)
        logger.debug("Parsed %d headers, boundary is %r", len(headers), boundary)

        parts = [cls.parse_part(s, config) for s in cls.parse_body(body_string, boundary)]

        msg = cls()
        if headers:
            msg.add_headers(headers)
        if parts:
            msg.add_parts(parts)
        msg.boundary = boundary

        return msg

    @staticmethod
    def parse_headers(header_string: str | bytes) -> list[Header]:
        """Parse a block of header lines.  Folded lines are joined, and lines
        repeating a header name become extra values of the first header with
        that name.
        """
        if isinstance(header_string, bytes):
            header_string = header_string.decode("latin-1")

        headers: list[Header] = []
        by_name: dict[str, Header] = {}

        matches = list(HEADER_NAME_RE.finditer(header_string))
        for i, match in enumerate(matches):
            end = matches[i + 1].start() if i + 1 < len(matches) else len(header_string)
            raw = FOLD_RE.sub(" ", header_string[match.end() : end]).strip()

            name = match.group(1)
            existing = by_name.get(name.lower())
            if existing is not None:
                existing.add_value(Value.parse(raw))
                continue

            header = Header(name)
            header.add_value(Value.parse(raw))
            by_name[name.lower()] = header
            headers.append(header)

        return headers

    @staticmethod
    def parse_body(body_string: str | bytes, boundary: str | None = None) -> list[str]:
        """Split a body into the text of its parts.  Without a boundary, or
        when the boundary does not occur, the whole body is one part.
        """
        if isinstance(body_string, bytes):
            body_string = body_string.decode("latin-1")

        delimiter = "--" + boundary if boundary else None
        if delimiter is not None and delimiter in body_string:
            # The first segment is the preamble.
            segments = body_string.split(delimiter)[1:]
        else:
            segments = [body_string]

        parts = []
        for segment in segments:
            # The closing delimiter; anything after it is epilogue.
            if delimiter is not None and segment.startswith("--"):
                break
            segment = _strip_delimiter_newlines(segment)
            if segment.strip() and segment.strip() != "--":
                parts.append(segment)

        logger.debug("Found %d body segments", len(parts))
        return parts

    @classmethod
    def parse_part(cls, part_string: str | bytes, config: MessageConfig | None = None) -> ParsedPart:
        """Parse the text of one part.  If its headers carry a boundary it is
        itself multipart, and the list of its parsed children is returned
        instead of a single part.
        """
        if isinstance(part_string, bytes):
            part_string = part_string.decode("latin-1")
        config = cls._config(config)

        headers: list[Header] = []
        body_string = part_string
        split = _split_head(part_string)
        if split is not None:
            headers = cls.parse_headers(split[0])
            # Without a single recognisable header the whole segment is body.
            if headers:
                body_string = split[1]

        boundary = _find_boundary(headers)
        if boundary is not None:
            logger.debug("Found nested multipart with boundary %r", boundary)
            return [cls.parse_part(s, config) for s in cls.parse_body(body_string, boundary)]

        part = Part()
        if headers:
            part.add_headers(headers)

        if body_string.strip():
            encoding = None
            transfer_encoding = part.get_header("Content-Transfer-Encoding")
            disposition = part.get_header("Content-Disposition")

            if transfer_encoding is not None:
                name = (transfer_encoding.get_value().value or "").lower()
                if name == "base64":
                    encoding = Encoding.BASE64
                elif name == "quoted-printable":
                    encoding = Encoding.QUOTED
                elif name not in IDENTITY_ENCODINGS:
                    logger.warning("Unknown Content-Transfer-Encoding: %r", name)
                    if config["ERROR_ON_BAD_CTE"]:
                        raise ParseError(f'Unknown Content-Transfer-Encoding "{name}"')
            elif (
                disposition is not None
                and (disposition.get_value().value or "").lower() == "form-data"
                and not disposition.has_parameter("filename")
            ):
                # Form fields built by create_form() are percent-encoded.
                encoding = Encoding.RAW_URL

            body = Body(body_string.encode("latin-1"), encoding)
            body.is_encoded = encoding is not None
            body.is_file = disposition is not None and disposition.is_attachment()
            part.set_body(body)

        return part

    @classmethod
    def parse_form(cls, form: str | bytes, config: MessageConfig | None = None) -> dict[str, Any]:
        """Parse a ``multipart/form-data`` body into a dict.

        Fields become text.  Fields named ``name[]`` are collected into a
        list under ``name``.  File fields become
        ``{"filename": ..., "contents": bytes}``.
        """
        config = cls._config(config)
        charset = config["FORM_CHARSET"]
        form_message = cls.parse_message(form, config)
        form_data: dict[str, Any] = {}

        for part in form_message.get_parts():
            disposition = part.get_header("Content-Disposition")
            if disposition is None or len(disposition) != 1:
                continue

            value = disposition.get_value()
            if (value.value or "").lower() != "form-data" or not value.has_parameter("name"):
                continue

            name = value.get_parameter("name")
            contents = part.get_contents()
            if value.has_parameter("filename"):
                entry: Any = {"filename": part.get_filename(), "contents": contents or b""}
            else:
                entry = (contents or b"").decode(charset, "replace")

            if name.endswith("[]"):
                form_data.setdefault(name[:-2], []).append(entry)
            else:
                form_data[name] = entry

        return form_data

    @classmethod
    def create_form(cls, fields: Mapping[str, Any], config: MessageConfig | None = None) -> Message:
        """Build a ``multipart/form-data`` message from a mapping of fields.

        - A scalar becomes one field, percent-encoded.
        - A list becomes repeated fields named ``name[]``.
        - A mapping with a ``filename`` key becomes a file field.  The
          content comes from its ``contents`` key, or else is read from the
          ``filename`` path.  ``content-type`` (or ``content_type``) adds a
          ``Content-Type`` header and ``encoding`` sets a transfer encoding.
        """
        config = cls._config(config)
        charset = config["FORM_CHARSET"]

        message = cls()
        message.sub_type = "form-data"
        message.generate_boundary()
        message.add_header(
            Header("Content-Type", Value("multipart/form-data", parameters={"boundary": message.boundary}))
        )

        for name, value in fields.items():
            if isinstance(value, Mapping) and "filename" in value:
                message.add_part(cls._create_file_field(name, value))
            elif isinstance(value, Mapping):
                for item in value.values():
                    message.add_part(cls._create_field(name + "[]", item, charset))
            elif isinstance(value, (list, tuple)):
                for item in value:
                    message.add_part(cls._create_field(name + "[]", item, charset))
            else:
                message.add_part(cls._create_field(name, value, charset))

        return message

    @staticmethod
    def _create_field(name: str, value: Any, charset: str) -> Part:
        if value is None:
            value = ""
        elif not isinstance(value, (str, bytes)):
            value = str(value)
        if isinstance(value, str):
            value = value.encode(charset)

        return Part(
            Header("Content-Disposition", "form-data", {"name": name}),
            Body(value, Encoding.RAW_URL),
        )

    @staticmethod
    def _create_file_field(name: str, field: Mapping[str, Any]) -> Part:
        filename = field["filename"]
        part = Part(Header("Content-Disposition", "form-data", {"name": name, "filename": os.path.basename(filename)}))

        content_type = field.get("content-type", field.get("content_type"))
        if content_type:
            part.add_header("Content-Type", content_type)

        body = Body()
        if field.get("contents") is not None:
            body.set_content(field["contents"])
            body.is_file = True
        else:
            body.set_content_from_file(filename)
        if field.get("encoding") is not None:
            body.set_encoding(field["encoding"])
        part.set_body(body)

        return part

    def has_attachments(self) -> bool:
        return len(self.get_attachments()) > 0
