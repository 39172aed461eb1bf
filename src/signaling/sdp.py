"""Session description (SDP) parsing and offer sanitization.

Relayed offers are fed verbatim into the remote client's media engine, so the
relay inspects them before forwarding:

- Media sections of a kind outside the allowed set (by default anything but
  audio and video, e.g. ``m=application`` data channels) reject the whole
  offer. Data channel negotiation pulls in an SCTP stack on the remote side,
  which is a known remote attack surface.
- ``a=extmap:`` lines negotiating a denylisted RTP header extension are
  removed so the call still negotiates without that extension.
- Anything that does not parse is rejected (fail closed).

The parser keeps every line's terminator (LF or CRLF) so that rendering an
untouched description reproduces the input byte for byte.

Line model::

    v=0\\r\\n                       ┐
    o=- 4611 2 IN IP4 127.0.0.1\\r\\n ├ session section (not inspected)
    ...                           ┘
    m=audio 9 UDP/TLS/RTP/SAVPF 111\\r\\n   ┐
    a=extmap:1 urn:...:ssrc-audio-level\\r\\n ├ media section, kind "audio"
    ...                                    ┘
"""

import logging
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

DEFAULT_ALLOWED_KINDS: frozenset[str] = frozenset({"audio", "video"})

# RTP header extensions with known parser vulnerabilities in media engines
DEFAULT_DENIED_EXTENSIONS: tuple[str, ...] = (
    "http://tools.ietf.org/html/draft-ietf-avtext-framemarking-07",
    "http://www.webrtc.org/experiments/rtp-hdrext/video-timing",
)

MEDIA_PREFIX = "m="
EXTMAP_PREFIX = "a=extmap:"

_LINE_RE = re.compile(r"^[a-z]=")
_EXTMAP_RE = re.compile(
    r"^a=extmap:(?P<id>\d+)(?:/(?P<direction>[a-z]+))? (?P<uri>\S+)(?: (?P<attributes>.*))?$"
)


class SdpParseError(ValueError):
    """Session description text is not syntactically valid."""


class SdpViolation(Exception):
    """Offer must not be relayed; the sender is to be disconnected."""

    def __init__(self, reason: str, detail: str = "") -> None:
        self.reason = reason
        self.detail = detail
        super().__init__(f"{reason}: {detail}" if detail else reason)


@dataclass(frozen=True)
class SdpLine:
    """One SDP line and its original terminator ("\\r\\n", "\\n" or "")."""

    text: str
    ending: str = "\r\n"

    def render(self) -> str:
        return self.text + self.ending


@dataclass(frozen=True)
class Extmap:
    """Parsed ``a=extmap`` attribute (RFC 8285)."""

    id: int
    uri: str
    direction: str | None = None
    attributes: str | None = None

    @classmethod
    def parse(cls, text: str) -> "Extmap":
        """Parse an ``a=extmap:<id>[/<direction>] <uri> [<attributes>]`` line.

        Raises:
            SdpParseError: If the line is not a well-formed extmap attribute
        """
        match = _EXTMAP_RE.match(text)
        if match is None:
            raise SdpParseError(f"Malformed extmap line: {text!r}")
        return cls(
            id=int(match.group("id")),
            uri=match.group("uri"),
            direction=match.group("direction"),
            attributes=match.group("attributes"),
        )


def split_lines(sdp: str) -> list[SdpLine]:
    """Split SDP text into lines, remembering each line's terminator.

    Only LF and CRLF terminate lines; a trailing line without terminator is
    kept with an empty ending.
    """
    lines: list[SdpLine] = []
    pos = 0
    while pos < len(sdp):
        end = sdp.find("\n", pos)
        if end == -1:
            lines.append(SdpLine(sdp[pos:], ""))
            break
        text = sdp[pos:end]
        if text.endswith("\r"):
            lines.append(SdpLine(text[:-1], "\r\n"))
        else:
            lines.append(SdpLine(text, "\n"))
        pos = end + 1
    return lines


@dataclass
class MediaSection:
    """Media-level section: an ``m=`` line and the attribute lines after it."""

    lines: list[SdpLine]

    @property
    def media_line(self) -> SdpLine:
        return self.lines[0]

    @property
    def kind(self) -> str:
        """Media kind from the ``m=`` line (audio, video, application, ...)."""
        return self.media_line.text[len(MEDIA_PREFIX) :].split(" ")[0]

    def extmap_lines(self) -> Iterator[SdpLine]:
        """Yield the section's ``a=extmap:`` lines."""
        for line in self.lines:
            if line.text.startswith(EXTMAP_PREFIX):
                yield line

    def render(self) -> str:
        return "".join(line.render() for line in self.lines)


@dataclass
class SessionDescription:
    """Structured view of an SDP blob that renders back to identical text."""

    session: list[SdpLine]
    media: list[MediaSection] = field(default_factory=list)

    @classmethod
    def parse(cls, sdp: str) -> "SessionDescription":
        """Parse SDP text into session and media sections.

        Raises:
            SdpParseError: If the text is not a valid session description
        """
        if not isinstance(sdp, str):
            raise SdpParseError(f"SDP must be a string, got {type(sdp).__name__}")

        lines = split_lines(sdp)
        if not lines:
            raise SdpParseError("Empty session description")
        if not lines[0].text.startswith("v="):
            raise SdpParseError("Session description must start with a v= line")

        session: list[SdpLine] = []
        media: list[MediaSection] = []
        for number, line in enumerate(lines, start=1):
            if not _LINE_RE.match(line.text):
                raise SdpParseError(f"Line {number} is not <type>=<value>: {line.text!r}")

            if line.text.startswith(MEDIA_PREFIX):
                # m=<media> <port> <proto> <fmt> ...
                if len(line.text[len(MEDIA_PREFIX) :].split(" ")) < 4:
                    raise SdpParseError(f"Line {number} is not a valid m= line: {line.text!r}")
                media.append(MediaSection(lines=[line]))
            elif media:
                media[-1].lines.append(line)
            else:
                session.append(line)

        return cls(session=session, media=media)

    def render(self) -> str:
        return "".join(line.render() for line in self.session) + "".join(
            section.render() for section in self.media
        )


@dataclass(frozen=True)
class SanitizeResult:
    """Outcome of sanitizing an acceptable offer."""

    sdp: str
    removed: tuple[str, ...] = ()

    @property
    def modified(self) -> bool:
        return bool(self.removed)


class SdpSanitizer:
    """Enforces the media kind policy and strips denylisted RTP extensions.

    Example:
        >>> sanitizer = SdpSanitizer()
        >>> result = sanitizer.sanitize(offer_sdp)
        >>> result.sdp  # safe to forward
    """

    def __init__(
        self,
        allowed_kinds: Iterable[str] = DEFAULT_ALLOWED_KINDS,
        denied_extensions: Iterable[str] = DEFAULT_DENIED_EXTENSIONS,
    ) -> None:
        """Initialize sanitizer policy.

        Args:
            allowed_kinds: Media kinds that may appear in a relayed offer
            denied_extensions: RTP header extension URIs to strip
        """
        self.allowed_kinds = frozenset(allowed_kinds)
        self.denied_extensions = frozenset(denied_extensions)

    def sanitize(self, sdp: str) -> SanitizeResult:
        """Inspect an offer's session description.

        The session-level section is not inspected.

        Args:
            sdp: Session description text from an offer

        Returns:
            SanitizeResult holding the description to forward. When nothing
            was removed, ``result.sdp`` is the input string unchanged.

        Raises:
            SdpViolation: If the offer has a disallowed media kind or cannot
                be parsed
        """
        try:
            description = SessionDescription.parse(sdp)
            removed: list[str] = []

            for index, section in enumerate(description.media):
                kind = section.kind
                if kind not in self.allowed_kinds:
                    raise SdpViolation("disallowed-media-kind", f"section {index}: {kind!r}")

                denied = [
                    line
                    for line in section.extmap_lines()
                    if Extmap.parse(line.text).uri in self.denied_extensions
                ]
                if denied:
                    section.lines = [line for line in section.lines if line not in denied]
                    removed.extend(line.text for line in denied)

        except SdpViolation:
            raise
        except Exception as e:
            # Anything unexpected rejects the offer
            raise SdpViolation("unparseable-sdp", str(e)) from e

        if not removed:
            return SanitizeResult(sdp=sdp)

        logger.info(
            "Stripped denylisted RTP header extensions",
            extra={"removed": removed},
        )
        return SanitizeResult(sdp=description.render(), removed=tuple(removed))
