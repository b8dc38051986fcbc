"""
Filesystem fixture store.

Every version generation is one flat directory of request/response text
files. A fixture named `-users-list` with disambiguation index 2 lives in
`-users-list_req2.txt` and `-users-list_resp2.txt`; index 0 is unsuffixed.

Writes never replace an existing file: each artifact goes to a temporary file
in the target directory and is then hard-linked into place, which fails if
the name is taken. Concurrent readers therefore see either no file or a
complete one.
"""

import os
import re
import tempfile
import threading
from typing import Dict, List, Optional, Tuple

from backcompat.domain.http_message import HTTPRequest, HTTPResponse
from backcompat.exceptions import FixtureParseError, SaveError
from backcompat.fixtures.codec import (
    parse_request,
    parse_response,
    serialize_request,
    serialize_response,
)
from backcompat.utils.logger import get_logger

logger = get_logger(__name__)

REQUEST_SUFFIX = "_req"
RESPONSE_SUFFIX = "_resp"
FIXTURE_EXTENSION = ".txt"

# Upper bound on the disambiguation index search for one name.
MAX_FIXTURE_INDEX = 10000

_REQUEST_FILE_RE = re.compile(r"^(?P<name>.*)_req(?P<index>\d*)\.txt$")
_NAME_TRANSLATION = {ord("-"): "--", ord("/"): "-"}


def normalize_name(path: str) -> str:
    """
    Escape a URL path into a flat file name.

    "-" becomes "--" and "/" becomes "-" in a single pass, so distinct paths
    never collide: "/a-b/c" -> "-a--b-c", "/a/b-c" -> "-a-b--c".
    """
    return path.translate(_NAME_TRANSLATION)


def _fixture_filename(name: str, suffix: str, index: int) -> str:
    if index == 0:
        return f"{name}{suffix}{FIXTURE_EXTENSION}"
    return f"{name}{suffix}{index}{FIXTURE_EXTENSION}"


def request_filename(name: str, index: int = 0) -> str:
    return _fixture_filename(name, REQUEST_SUFFIX, index)


def response_filename(name: str, index: int = 0) -> str:
    return _fixture_filename(name, RESPONSE_SUFFIX, index)


def parse_request_filename(filename: str) -> Optional[Tuple[str, int]]:
    """
    Split a request file name into (name, index).

    Returns:
        Tuple of name and index, or None when the file is not a request fixture
    """
    match = _REQUEST_FILE_RE.match(filename)
    if not match:
        return None
    index = match.group("index")
    return match.group("name"), int(index) if index else 0


def response_path_for(request_path: str) -> str:
    directory, filename = os.path.split(request_path)
    parsed = parse_request_filename(filename)
    if parsed is None:
        raise FixtureParseError("not a request fixture file name", request_path)
    name, index = parsed
    return os.path.join(directory, response_filename(name, index))


def _read_file(path: str) -> bytes:
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as e:
        raise FixtureParseError(f"cannot read fixture: {e.strerror or e}", path) from e


def _peek_method(request_path: str) -> Optional[str]:
    try:
        with open(request_path, "rb") as f:
            first_line = f.readline(8192)
    except OSError:
        return None
    method, _, _ = first_line.decode("latin-1").partition(" ")
    return method or None


class FixtureStore:
    """
    Reads and writes fixture pairs inside plain directories.

    One instance may be shared by worker threads: writes into the same
    directory are serialized by a per-directory lock, so two concurrent saves
    of the same name never compute the same index.
    """

    def __init__(self, max_index: int = MAX_FIXTURE_INDEX):
        self.max_index = max_index
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _directory_lock(self, directory: str) -> threading.Lock:
        key = os.path.realpath(directory)
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def enumerate_fixtures(self, directory: str) -> List[str]:
        """
        List request fixture paths in *directory*, lexically sorted.

        Response files and unrelated files are excluded. The result is a
        plain list, so it can be iterated any number of times.
        """
        if not os.path.isdir(directory):
            return []
        return [
            os.path.join(directory, filename)
            for filename in sorted(os.listdir(directory))
            if parse_request_filename(filename) is not None
            and os.path.isfile(os.path.join(directory, filename))
        ]

    def load_request(self, path: str) -> HTTPRequest:
        """
        Load a request fixture.

        Raises:
            FixtureParseError: If the file is unreadable or malformed
        """
        return parse_request(_read_file(path), path)

    def load_response(self, request_path: str) -> Optional[HTTPResponse]:
        """
        Load the response fixture paired with *request_path*.

        Returns:
            Parsed response, or None when no response file exists

        Raises:
            FixtureParseError: If the response file exists but is malformed
        """
        path = response_path_for(request_path)
        if not os.path.exists(path):
            return None
        return parse_response(_read_file(path), path, request_method=_peek_method(request_path))

    def save_fixture(
        self, directory: str, name: str, request: HTTPRequest, response: HTTPResponse
    ) -> int:
        """
        Write a request/response pair under the lowest free index.

        Args:
            directory: Target directory (created if missing)
            name: Normalized fixture name
            request: Request to store
            response: Response to store

        Returns:
            The disambiguation index used

        Raises:
            SaveError: On write failure or when every index up to the bound is taken
        """
        request_data = serialize_request(request)
        response_data = serialize_response(response)

        try:
            os.makedirs(directory, exist_ok=True)
        except OSError as e:
            raise SaveError(f"cannot create fixture directory {directory!r}: {e}") from e

        with self._directory_lock(directory):
            for index in range(self.max_index + 1):
                request_path = os.path.join(directory, request_filename(name, index))
                response_path = os.path.join(directory, response_filename(name, index))
                if os.path.lexists(request_path) or os.path.lexists(response_path):
                    continue

                if not self._write_exclusive(request_path, request_data):
                    continue
                try:
                    written = self._write_exclusive(response_path, response_data)
                except SaveError:
                    os.unlink(request_path)
                    raise
                if not written:
                    # Another process took the response name; the request we
                    # just created is ours and would be orphaned.
                    os.unlink(request_path)
                    continue

                logger.info(
                    "Saved fixture",
                    operation="save_fixture",
                    context={"directory": directory, "name": name, "index": index},
                )
                return index

        raise SaveError(
            f"no free fixture index for {name!r} in {directory!r} "
            f"(searched 0..{self.max_index})"
        )

    def remove_fixture(self, request_path: str) -> None:
        """
        Delete a fixture pair.

        The response goes first, so an interrupted removal leaves a request
        without a response rather than an invisible orphan response.

        Raises:
            SaveError: If a file exists but cannot be deleted
        """
        response_path = response_path_for(request_path)
        with self._directory_lock(os.path.dirname(request_path) or "."):
            for path in (response_path, request_path):
                try:
                    os.unlink(path)
                except FileNotFoundError:
                    continue
                except OSError as e:
                    raise SaveError(f"cannot remove fixture {path!r}: {e}") from e
        logger.info(
            "Removed fixture", operation="remove_fixture", context={"request": request_path}
        )

    @staticmethod
    def _write_exclusive(path: str, data: bytes) -> bool:
        """
        Atomically create *path* with *data*.

        Returns:
            False when *path* already exists, True once written

        Raises:
            SaveError: On any other write failure
        """
        directory = os.path.dirname(path) or "."
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(prefix=".backcompat-", suffix=".tmp", dir=directory)
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            try:
                os.link(tmp_path, path)
            except FileExistsError:
                return False
            return True
        except OSError as e:
            raise SaveError(f"cannot write fixture {path!r}: {e}") from e
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)
