from typing import Annotated
from fastapi import Depends, HTTPException, Request
from mcnode.utils.server_utils import ServerManager


def get_server_manager(request: Request) -> ServerManager:
    return request.app.state.server_manager


ManagerDep = Annotated[ServerManager, Depends(get_server_manager)]


def get_server_name(name: str, manager: ManagerDep) -> str:
    if not manager.exists(name):
        raise HTTPException(status_code=404, detail="Server not found")
    return name


ServerNameDep = Annotated[str, Depends(get_server_name)]
