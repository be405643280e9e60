"""Loading of the lab's RSA key pair and conversion to embeddable strings.

The keys are standard PEM files. For embedding into the boot script the
BEGIN/END lines and every newline are dropped, leaving the bare base64 body.
:class:`PemKey` remembers how the file was laid out so the original bytes can
be rebuilt from the body.
"""
import base64
import binascii
import logging
import re
from dataclasses import dataclass
from pathlib import Path

from lab_infra.errors import MalformedKeyError, MissingKeyFileError, UnreadableKeyFileError

logger = logging.getLogger(__name__)

PUBLIC_KEY_LABEL = "PUBLIC KEY"
PRIVATE_KEY_LABEL = "PRIVATE KEY"

_DELIMITER = re.compile(r"^-----(BEGIN|END) [A-Z0-9 ]+-----$")


def _header(label: str) -> str:
    return f"-----BEGIN {label}-----"


def _footer(label: str) -> str:
    return f"-----END {label}-----"


@dataclass(frozen=True)
class PemKey:
    label: str
    body: str
    line_width: int = 64
    newline: str = "\n"
    trailing_newline: bool = True
    # whitespace after the END line beyond the usual single newline
    padding: str = ""

    def to_pem(self) -> str:
        pem = wrap_pem(
            self.body,
            self.label,
            line_width=self.line_width,
            newline=self.newline,
            trailing_newline=self.trailing_newline,
        )
        return pem + self.padding


@dataclass(frozen=True)
class KeyMaterial:
    public_key: PemKey
    private_key: PemKey

    @property
    def public_body(self) -> str:
        return self.public_key.body

    @property
    def private_body(self) -> str:
        return self.private_key.body

    def secrets(self) -> tuple[str, ...]:
        return (self.public_body, self.private_body)


def strip_pem(text: str, label: str | None = None) -> str:
    """Drop the PEM delimiter lines and all newlines from ``text``.

    With ``label`` only that key type's delimiters are removed. Stripping an
    already stripped string returns it unchanged.
    """
    lines = []
    for line in text.splitlines():
        line = line.strip("\r")
        if label is not None and line in (_header(label), _footer(label)):
            continue
        if label is None and _DELIMITER.match(line):
            continue
        lines.append(line)
    return "".join(lines)


def wrap_pem(
    body: str,
    label: str,
    *,
    line_width: int = 64,
    newline: str = "\n",
    trailing_newline: bool = True,
) -> str:
    """Inverse of :func:`strip_pem`. A ``line_width`` of 0 keeps the body on one line."""
    if line_width:
        lines = [body[i : i + line_width] for i in range(0, len(body), line_width)]
    else:
        lines = [body]
    pem = newline.join([_header(label), *lines, _footer(label)])
    return pem + newline if trailing_newline else pem


def parse_pem(text: str, label: str) -> PemKey:
    newline = "\r\n" if "\r\n" in text else "\n"
    content = text.rstrip()
    trailer = text[len(content) :]
    trailing_newline = trailer.startswith(newline)
    padding = trailer[len(newline) :] if trailing_newline else trailer
    lines = content.split(newline)

    if len(lines) < 3 or lines[0] != _header(label) or lines[-1] != _footer(label):
        raise MalformedKeyError(f"Expected a PEM block delimited by {_header(label)!r} and {_footer(label)!r}")

    body_lines = lines[1:-1]
    line_width = len(body_lines[0]) if len(body_lines) > 1 else 0
    if line_width and any(len(line) != line_width for line in body_lines[:-1]):
        raise MalformedKeyError(f"{label} body is not wrapped at a fixed width")
    if line_width and not 0 < len(body_lines[-1]) <= line_width:
        raise MalformedKeyError(f"{label} body is not wrapped at a fixed width")

    body = "".join(body_lines)
    try:
        base64.b64decode(body, validate=True)
    except binascii.Error as e:
        raise MalformedKeyError(f"{label} body is not valid base64: {e}") from e

    return PemKey(
        label=label,
        body=body,
        line_width=line_width,
        newline=newline,
        trailing_newline=trailing_newline,
        padding=padding,
    )


def read_pem_file(path: Path, label: str) -> PemKey:
    try:
        text = path.read_bytes().decode("ascii")
    except FileNotFoundError as e:
        raise MissingKeyFileError(path) from e
    except (OSError, UnicodeDecodeError) as e:
        raise UnreadableKeyFileError(path, str(e)) from e
    return parse_pem(text, label)


def load_key_pair(
    directory: Path, public_name: str = "public_key.pem", private_name: str = "private_key.pem"
) -> KeyMaterial:
    directory = Path(directory)
    logger.info("Loading RSA key pair from %s", directory)
    public_key = read_pem_file(directory / public_name, PUBLIC_KEY_LABEL)
    private_key = read_pem_file(directory / private_name, PRIVATE_KEY_LABEL)
    return KeyMaterial(public_key=public_key, private_key=private_key)
