"""Durable, owner-only persistence of the credential pair."""

import contextlib
import os
import stat
import tempfile
import threading
from pathlib import Path

from structlog.typing import FilteringBoundLogger

from tweek_auth.auth.codec import decode_credentials, encode_credentials
from tweek_auth.auth.models import CredentialPair
from tweek_auth.core.logging import component_logger
from tweek_auth.exceptions import ClassifiedError, ErrorKind


TOKEN_FILE_MODE = 0o600
TOKEN_DIR_MODE = 0o700


class TokenStore:
    """Token file storage with atomic replacement and restrictive permissions.

    Owns the on-disk representation exclusively. Reads refuse symlinks and
    non-regular files; writes never expose partially written content.
    """

    def __init__(
        self,
        path: Path,
        encryption_key: str | None = None,
        *,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            path: Location of the token file
            encryption_key: Key material; enables the encrypted envelope
            logger: Injected logger

        """
        self.path = Path(path).expanduser()
        self._encryption_key = encryption_key or None
        self._write_lock = threading.Lock()
        self._logger = component_logger("token_store", logger)

    @property
    def encrypted(self) -> bool:
        return self._encryption_key is not None

    @property
    def location(self) -> str:
        """Human-readable description of where credentials are stored."""
        mode = "encrypted" if self.encrypted else "plaintext"
        return f"{self.path} ({mode})"

    def exists(self) -> bool:
        return self.path.is_file() and not self.path.is_symlink()

    def read(self) -> CredentialPair:
        """Load the persisted credential pair.

        Raises:
            ClassifiedError: ``NOT_FOUND``, ``PATH_INVALID``,
                ``FORMAT_UNSUPPORTED`` or ``INTERNAL``

        """
        self._assert_regular_file()
        data = self._read_bytes()
        try:
            pair = decode_credentials(data, self._encryption_key)
        except ClassifiedError as e:
            e.details.setdefault("path", str(self.path))
            self._logger.error(
                "token_file_read_failed",
                path=str(self.path),
                error_kind=e.kind.value,
                error=e.message,
            )
            raise
        self._logger.debug(
            "token_file_loaded", path=str(self.path), expires_at=pair.expires_at
        )
        return pair

    def write(self, pair: CredentialPair) -> None:
        """Persist ``pair`` atomically with owner read/write permissions.

        Raises:
            ClassifiedError: ``INTERNAL`` if the file cannot be written

        """
        payload = encode_credentials(pair, self._encryption_key)
        with self._write_lock:
            try:
                self._atomic_write(payload)
            except OSError as e:
                self._logger.error(
                    "token_file_write_failed", path=str(self.path), error=str(e)
                )
                raise ClassifiedError(
                    ErrorKind.INTERNAL,
                    "Failed to write tokens",
                    details={"path": str(self.path)},
                ) from e
        self._logger.debug(
            "token_file_saved",
            path=str(self.path),
            encrypted=self.encrypted,
            expires_at=pair.expires_at,
        )

    def _atomic_write(self, payload: bytes) -> None:
        directory = self.path.parent
        directory.mkdir(mode=TOKEN_DIR_MODE, parents=True, exist_ok=True)

        # mkstemp creates the file with mode 0600.
        fd, temp_name = tempfile.mkstemp(
            dir=directory, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.chmod(temp_name, TOKEN_FILE_MODE)
            os.replace(temp_name, self.path)
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(temp_name)
            raise
        os.chmod(self.path, TOKEN_FILE_MODE)

    def _assert_regular_file(self) -> None:
        try:
            st = os.lstat(self.path)
        except FileNotFoundError as e:
            raise ClassifiedError(
                ErrorKind.NOT_FOUND,
                f"Tokens file not found at {self.path}",
                details={"path": str(self.path)},
            ) from e
        except OSError as e:
            raise ClassifiedError(
                ErrorKind.INTERNAL,
                "Failed to inspect tokens file",
                details={"path": str(self.path)},
            ) from e

        if stat.S_ISLNK(st.st_mode) or not stat.S_ISREG(st.st_mode):
            raise ClassifiedError(
                ErrorKind.PATH_INVALID,
                "Tokens path must be a regular file",
                details={"path": str(self.path)},
            )

        current_mode = stat.S_IMODE(st.st_mode)
        if current_mode != TOKEN_FILE_MODE:
            try:
                os.chmod(self.path, TOKEN_FILE_MODE)
            except OSError as e:
                self._logger.warning(
                    "token_file_permission_fix_failed",
                    path=str(self.path),
                    mode=oct(current_mode),
                    error=str(e),
                )
            else:
                self._logger.info(
                    "token_file_permissions_fixed",
                    path=str(self.path),
                    previous_mode=oct(current_mode),
                )

    def _read_bytes(self) -> bytes:
        flags = os.O_RDONLY | getattr(os, "O_NOFOLLOW", 0)
        try:
            fd = os.open(self.path, flags)
            with os.fdopen(fd, "rb") as handle:
                return handle.read()
        except FileNotFoundError as e:
            raise ClassifiedError(
                ErrorKind.NOT_FOUND,
                f"Tokens file not found at {self.path}",
                details={"path": str(self.path)},
            ) from e
        except OSError as e:
            raise ClassifiedError(
                ErrorKind.INTERNAL,
                "Failed to read tokens",
                details={"path": str(self.path)},
            ) from e


__all__ = ["TOKEN_FILE_MODE", "TokenStore"]
