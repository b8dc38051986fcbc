"""Domain models - HTTP messages and fixture identities."""

from .fixture import FixtureKey, FixtureRef
from .http_message import Headers, HTTPRequest, HTTPResponse

__all__ = ["FixtureKey", "FixtureRef", "Headers", "HTTPRequest", "HTTPResponse"]
