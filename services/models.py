"""Value types exchanged between the HTTP layer, the dispatcher and explorers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple


NOT_SUPPORTED = "Not Supported"


@dataclass(frozen=True)
class DirectoryEntry:
    name: str
    permission_string: str
    size_bytes: str
    modified_at: str
    kind: str  # "file" | "dir"

    def to_dict(self) -> Dict[str, str]:
        # angular-filemanager item keys
        return {
            "name": self.name,
            "rights": self.permission_string,
            "size": self.size_bytes,
            "date": self.modified_at,
            "type": self.kind,
        }


def _as_str(v: Any) -> str:
    return "" if v is None else str(v)


def _as_bool(v: Any) -> bool:
    if isinstance(v, str):
        return v.strip().lower() in ("1", "true", "yes", "on")
    return bool(v)


@dataclass(frozen=True)
class ActionRequest:
    action: str = ""
    path: str = ""
    item: str = ""
    items: Tuple[str, ...] = ()
    new_path: str = ""
    new_item_path: str = ""
    single_filename: str = ""
    perms_code: str = ""
    recursive: bool = False

    @classmethod
    def from_json(cls, data: Optional[Dict[str, Any]]) -> "ActionRequest":
        """Bind a bridge request body; unknown keys are ignored, missing ones default."""
        data = data or {}
        raw_items = data.get("items") or []
        if isinstance(raw_items, str):
            raw_items = [raw_items]
        return cls(
            action=_as_str(data.get("action")).strip(),
            path=_as_str(data.get("path")),
            item=_as_str(data.get("item")),
            items=tuple(_as_str(i) for i in raw_items),
            new_path=_as_str(data.get("newPath")),
            new_item_path=_as_str(data.get("newItemPath")),
            single_filename=_as_str(data.get("singleFilename")),
            perms_code=_as_str(data.get("permsCode")).strip(),
            recursive=_as_bool(data.get("recursive")),
        )


@dataclass
class ResponseEnvelope:
    """Exactly one per ActionRequest; ``status`` is the suggested HTTP status."""

    success: bool
    message: str = ""
    result: Any = None
    status: int = 200

    @classmethod
    def ok(cls, result: Any = None) -> "ResponseEnvelope":
        return cls(success=True, message="", result=result, status=200)

    @classmethod
    def fail(cls, message: str, status: int = 400) -> "ResponseEnvelope":
        return cls(success=False, message=message, status=status)

    @classmethod
    def not_supported(cls) -> "ResponseEnvelope":
        return cls(success=False, message=NOT_SUPPORTED, status=200)

    def to_json(self) -> Dict[str, Any]:
        if self.success and self.result is not None:
            return {"result": self.result}
        return {
            "result": {
                "success": self.success,
                "error": self.message if not self.success else None,
            }
        }


@dataclass(frozen=True)
class Identity:
    username: str
    secret: str = field(repr=False)

    def is_complete(self) -> bool:
        return bool(self.username) and bool(self.secret)
