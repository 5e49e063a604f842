"""Server-sent event plumbing on both sides of the relay."""

from .frame_writer import EventStreamWriter, NEWLINE_PLACEHOLDER, encode_newlines  # noqa: F401
from .sse_decoder import ProviderEventDecoder, Terminal, Token  # noqa: F401
