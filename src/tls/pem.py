"""Minimal PEM block decoding (RFC 1421/7468 framing)."""

import base64
import binascii
import re
from dataclasses import dataclass, field
from typing import Iterator, Optional

_BLOCK_RE = re.compile(
    rb"-----BEGIN (?P<label>[A-Z0-9 ]+)-----\r?\n"
    rb"(?P<content>.*?)"
    rb"-----END (?P=label)-----",
    re.DOTALL,
)


@dataclass(frozen=True)
class PemBlock:
    label: str
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    raw: bytes = b""

    @property
    def is_legacy_encrypted(self) -> bool:
        return self.headers.get("Proc-Type", "").replace(" ", "") == "4,ENCRYPTED"

    @property
    def dek_cipher(self) -> str:
        """Cipher name from the DEK-Info header, e.g. 'AES-256-CBC'."""
        return self.headers.get("DEK-Info", "").split(",", 1)[0].strip().upper()


def _parse_content(content: bytes) -> tuple[dict[str, str], bytes]:
    lines = content.decode("ascii").splitlines()
    headers: dict[str, str] = {}

    # Headers only exist when the first line is "Name: value"; they end at a blank line.
    if lines and ":" in lines[0]:
        while lines:
            line = lines.pop(0)
            if not line.strip():
                break
            name, _, value = line.partition(":")
            headers[name.strip()] = value.strip()

    body = base64.b64decode("".join(l.strip() for l in lines), validate=True)
    return headers, body


def iter_blocks(data: bytes) -> Iterator[PemBlock]:
    """Yield every well-formed PEM block in ``data``, skipping garbage between blocks."""
    for match in _BLOCK_RE.finditer(data):
        try:
            headers, body = _parse_content(match.group("content"))
        except (UnicodeDecodeError, binascii.Error, ValueError):
            continue
        yield PemBlock(
            label=match.group("label").decode("ascii"),
            headers=headers,
            body=body,
            raw=match.group(0) + b"\n",
        )


def first_block(data: bytes) -> Optional[PemBlock]:
    return next(iter_blocks(data), None)


def encode_block(label: str, body: bytes) -> bytes:
    """Encode ``body`` as a header-free PEM block."""
    b64 = base64.b64encode(body).decode("ascii")
    lines = [b64[i:i + 64] for i in range(0, len(b64), 64)]
    text = f"-----BEGIN {label}-----\n" + "\n".join(lines) + f"\n-----END {label}-----\n"
    return text.encode("ascii")
