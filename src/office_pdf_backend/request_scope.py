"""
Per-request state shared between the HTTP layer and the conversion route.

A ``RequestScope`` is created by the HTTP layer once the multipart body has
been written to a scratch directory, handed to ``ConvertRoute.handle``, and
discarded (scratch directory included) once the response has been sent.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from threading import Event, Lock
from typing import Dict, Iterable, List, Mapping, Optional, Union
from uuid import uuid4

from .errors import OutputPathError, RequestCancelledError
from .utils import ensure_directory

logger = logging.getLogger(__name__)

LoggerLike = Union[logging.Logger, logging.LoggerAdapter]


class CancellationToken:
    """
    Cancellation signal threaded through every collaborator call.

    The token fires either when ``cancel`` is called (client disconnected) or
    once its deadline has passed (request timeout).
    """

    def __init__(self, timeout: Optional[float] = None) -> None:
        self._event = Event()
        self._deadline = time.monotonic() + timeout if timeout else None
        self._reason = "request cancelled"

    def cancel(self, reason: str = "request cancelled") -> None:
        self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self.cancel("request timed out")
            return True
        return False

    @property
    def reason(self) -> str:
        return self._reason

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise RequestCancelledError(self._reason)


class RequestScope:
    """
    Bag of per-invocation state: uploaded files, form values, cancellation
    token, logger and the output-path sink.

    Thread Safety:
        Output registration is guarded by a lock; everything else is only
        written while the scope is being built.
    """

    def __init__(
        self,
        scratch_dir: Path,
        files: Optional[Mapping[str, Path]] = None,
        form_values: Optional[Mapping[str, List[str]]] = None,
        token: Optional[CancellationToken] = None,
        request_logger: Optional[LoggerLike] = None,
    ) -> None:
        self.id = uuid4().hex
        self.scratch_dir = ensure_directory(Path(scratch_dir))
        self._files: Dict[str, Path] = {name: Path(path) for name, path in (files or {}).items()}
        self._form_values: Dict[str, List[str]] = {key: list(values) for key, values in (form_values or {}).items()}
        self.token = token or CancellationToken()
        self.logger: LoggerLike = request_logger or logging.LoggerAdapter(logger, {"request_id": self.id})
        self._generated: set[Path] = set()
        self._output_paths: List[Path] = []
        self._lock = Lock()

    @property
    def files(self) -> Dict[str, Path]:
        """Original filename → absolute scratch path, in upload order."""
        return dict(self._files)

    @property
    def form_values(self) -> Dict[str, List[str]]:
        return {key: list(values) for key, values in self._form_values.items()}

    def add_file(self, filename: str, path: Path) -> None:
        self._files[filename] = Path(path)

    def add_form_value(self, field: str, value: str) -> None:
        self._form_values.setdefault(field, []).append(value)

    def cancelled(self) -> bool:
        return self.token.cancelled

    def generate_path(self, extension: str) -> Path:
        """Allocate a unique path on the scratch directory."""
        if extension and not extension.startswith("."):
            extension = f".{extension}"
        path = (self.scratch_dir / f"{uuid4().hex}{extension}").resolve()
        with self._lock:
            self._generated.add(path)
        return path

    @property
    def output_paths(self) -> List[Path]:
        with self._lock:
            return list(self._output_paths)

    def add_output_paths(self, paths: Iterable[Path]) -> None:
        """
        Register the final artifacts of the request, all at once.

        Raises:
            RequestCancelledError: If the token has fired; nothing is registered.
            OutputPathError: If a path was not generated by this scope or does
                not exist; nothing is registered.
        """
        candidates = [Path(path).resolve() for path in paths]
        self.token.raise_if_cancelled()

        with self._lock:
            for path in candidates:
                if path not in self._generated:
                    raise OutputPathError(f"output path {path} was not generated within this request")
                if not path.is_file():
                    raise OutputPathError(f"output path {path} does not exist")
            self._output_paths.extend(candidates)
