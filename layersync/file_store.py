import os
import shutil
import tempfile
from datetime import datetime
from typing import Optional


BACKUP_MARKER = ".backup."


class FileStore:
    """
    Minimal interface for reading and writing files under an install root.
    Keys are logical, relative to the store root (e.g., ".agent-os/standards/code-style.md").
    """

    def read_text(self, key: str) -> str:
        raise NotImplementedError

    def write_text(self, key: str, text: str) -> None:
        raise NotImplementedError

    def read_bytes(self, key: str) -> bytes:
        raise NotImplementedError

    def write_bytes(self, key: str, data: bytes) -> None:
        raise NotImplementedError

    def append_text(self, key: str, text: str) -> None:
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        raise NotImplementedError

    def delete(self, key: str) -> bool:
        raise NotImplementedError

    def backup(self, key: str, stamp: Optional[str] = None) -> str:
        """
        Copy key to a sibling "<key>.backup.<stamp>" key and return the backup key.
        """
        raise NotImplementedError

    def path_for_key(self, key: str) -> str:
        raise NotImplementedError


class LocalFileStore(FileStore):
    def __init__(self, root_dir: str):
        self.root_dir = os.path.abspath(os.fspath(root_dir))

    def _path(self, key: str) -> str:
        normalized = key.lstrip("/").replace("/", os.sep)
        path = os.path.normpath(os.path.join(self.root_dir, normalized))
        if path != self.root_dir and not path.startswith(self.root_dir + os.sep):
            raise ValueError(f"Key escapes store root: {key}")
        return path

    def read_text(self, key: str) -> str:
        with open(self._path(key), "r", encoding="utf-8") as handle:
            return handle.read()

    def write_text(self, key: str, text: str) -> None:
        self.write_bytes(key, text.encode("utf-8"))

    def read_bytes(self, key: str) -> bytes:
        with open(self._path(key), "rb") as handle:
            return handle.read()

    def write_bytes(self, key: str, data: bytes) -> None:
        path = self._path(key)
        directory = os.path.dirname(path)
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".tmp-", dir=directory)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def append_text(self, key: str, text: str) -> None:
        path = self._path(key)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "a", encoding="utf-8") as handle:
            handle.write(text)

    def exists(self, key: str) -> bool:
        return os.path.isfile(self._path(key))

    def delete(self, key: str) -> bool:
        path = self._path(key)
        if not os.path.lexists(path):
            return False
        os.remove(path)
        return True

    def backup(self, key: str, stamp: Optional[str] = None) -> str:
        stamp = stamp or backup_stamp()
        candidate = f"{key}{BACKUP_MARKER}{stamp}"
        counter = 1
        while os.path.lexists(self._path(candidate)):
            candidate = f"{key}{BACKUP_MARKER}{stamp}-{counter}"
            counter += 1
        shutil.copy2(self._path(key), self._path(candidate))
        return candidate

    def path_for_key(self, key: str) -> str:
        return self._path(key)


def backup_stamp() -> str:
    return datetime.now().strftime("%Y%m%d-%H%M%S")


def is_backup_name(name: str) -> bool:
    return BACKUP_MARKER in name


def build_file_store(root: str) -> FileStore:
    return LocalFileStore(root)
