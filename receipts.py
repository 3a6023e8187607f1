import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

DEFAULT_CONTENT_TYPE = "application/octet-stream"
_KEY_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


@dataclass(frozen=True)
class StoredReceipt:
    key: str
    data: bytes
    content_type: str


def receipt_key(expense_id: str, filename: Optional[str]) -> str:
    ext = ""
    if filename and "." in filename:
        ext = re.sub(r"[^a-z0-9]", "", filename.rsplit(".", 1)[-1].lower())
    return f"{expense_id}.{ext or 'bin'}"


class ReceiptStore:
    """Receipt images on the local filesystem, one file per key."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        if not _KEY_RE.match(key) or ".." in key or key.endswith(".meta.json"):
            raise ValueError(f"Invalid receipt key: {key!r}")
        return self.root / key

    def _meta_path(self, key: str) -> Path:
        return self.root / f"{key}.meta.json"

    def put(self, key: str, data: bytes, content_type: Optional[str]) -> None:
        path = self._path(key)
        self.root.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        self._meta_path(key).write_text(
            json.dumps({"content_type": content_type or DEFAULT_CONTENT_TYPE}),
            encoding="utf-8",
        )

    def get(self, key: str) -> Optional[StoredReceipt]:
        try:
            path = self._path(key)
        except ValueError:
            return None
        if not path.is_file():
            return None
        content_type = DEFAULT_CONTENT_TYPE
        meta_path = self._meta_path(key)
        if meta_path.is_file():
            meta = json.loads(meta_path.read_text(encoding="utf-8"))
            content_type = meta.get("content_type") or DEFAULT_CONTENT_TYPE
        return StoredReceipt(key=key, data=path.read_bytes(), content_type=content_type)
