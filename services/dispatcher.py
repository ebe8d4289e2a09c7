"""Maps a bridge action onto one FileExplorer call and wraps the outcome."""

from __future__ import annotations

from typing import Any, Callable, Dict

from services.errors import ConnectError, ExplorerError, NotReadyError
from services.explorer import FileExplorer
from services.logging_setup import core_log as _core_log
from services.models import ActionRequest, ResponseEnvelope


def _list(fe: FileExplorer, req: ActionRequest) -> Any:
    return [e.to_dict() for e in fe.list_dir(req.path)]


def _rename(fe: FileExplorer, req: ActionRequest) -> Any:
    fe.rename(req.item, req.new_item_path)


def _move(fe: FileExplorer, req: ActionRequest) -> Any:
    fe.move(req.items, req.new_path)


def _copy(fe: FileExplorer, req: ActionRequest) -> Any:
    fe.copy(req.items, req.new_path, req.single_filename)


def _remove(fe: FileExplorer, req: ActionRequest) -> Any:
    fe.delete(req.items)


def _create_folder(fe: FileExplorer, req: ActionRequest) -> Any:
    fe.mkdir(req.new_path)


def _change_permissions(fe: FileExplorer, req: ActionRequest) -> Any:
    fe.chmod(req.items, req.perms_code, req.recursive)


def _get_content(fe: FileExplorer, req: ActionRequest) -> Any:
    return fe.get_content(req.item)


ACTIONS: Dict[str, Callable[[FileExplorer, ActionRequest], Any]] = {
    "list": _list,
    "rename": _rename,
    "move": _move,
    "copy": _copy,
    "remove": _remove,
    "createFolder": _create_folder,
    "changePermissions": _change_permissions,
    "getContent": _get_content,
}

# Known to the client but not implemented here.
NOT_IMPLEMENTED = ("savefile", "edit", "compress", "extract")

READ_ONLY = ("list", "getContent")


def dispatch(req: ActionRequest, explorer: FileExplorer) -> ResponseEnvelope:
    """Run ``req`` against ``explorer``; never raises for expected failures.

    Status: 200 on success and for unsupported actions, 400 for filesystem
    and input errors, 500 when the backend connection is unusable.
    """
    handler = ACTIONS.get(req.action)
    if handler is None:
        return ResponseEnvelope.not_supported()

    try:
        result = handler(explorer, req)
    except NotReadyError as e:
        _core_log("error", "fe.action on uninitialized explorer", action=req.action, backend=explorer.kind)
        return ResponseEnvelope.fail(str(e), 500)
    except ConnectError as e:
        _core_log("warning", "fe.action backend lost", action=req.action, backend=explorer.kind, error=e)
        return ResponseEnvelope.fail(str(e), 500)
    except (ExplorerError, OSError, ValueError) as e:
        _core_log("info", "fe.action failed", action=req.action, error=e)
        return ResponseEnvelope.fail(str(e), 400)

    if req.action not in READ_ONLY:
        _core_log("info", f"fe.{req.action}", path=req.path or req.item or req.new_path, items=len(req.items))
    return ResponseEnvelope.ok(result)
