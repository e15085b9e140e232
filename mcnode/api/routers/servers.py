import logging
from typing import List
from fastapi import APIRouter, Response
from fastapi.responses import JSONResponse, StreamingResponse
from mcnode.api.deps import ManagerDep, ServerNameDep
from mcnode.models.errors import RconError
from mcnode.models.servers import (
        ActionResult,
        RconCommand,
        RconReply,
        ServerCreate,
        ServerPublic
        )
from mcnode.models.stats import StatsSnapshot

router = APIRouter(prefix="/servers", tags=["server"])

logger = logging.getLogger(__name__)

STREAM_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    # Keeps reverse proxies from buffering the stream
    "X-Accel-Buffering": "no",
}


def action_response(result: ActionResult, response: Response) -> ActionResult:
    response.status_code = 200 if result.ok else 400
    return result


@router.get("/", response_model=List[ServerPublic])
def read_servers(manager: ManagerDep):
    return manager.list_servers()


@router.post("/")
async def create_server(server: ServerCreate, manager: ManagerDep):
    async def lines():
        async for line in manager.installer.stream(server):
            yield line + "\n"

    return StreamingResponse(lines(), media_type="text/plain; charset=utf-8",
                             headers=STREAM_HEADERS)


@router.get("/{name}", response_model=ServerPublic)
def read_server(name: ServerNameDep, manager: ManagerDep):
    return manager.describe(name)


@router.post("/{name}/start", response_model=ActionResult)
async def start_server(name: ServerNameDep, manager: ManagerDep,
                       response: Response):
    result = await manager.supervisor.start(name)
    return action_response(result, response)


@router.post("/{name}/stop", response_model=ActionResult)
async def stop_server(name: ServerNameDep, manager: ManagerDep,
                      response: Response):
    result = await manager.supervisor.stop(name)
    return action_response(result, response)


@router.post("/{name}/restart", response_model=ActionResult)
async def restart_server(name: ServerNameDep, manager: ManagerDep,
                         response: Response):
    result = await manager.supervisor.restart(name)
    return action_response(result, response)


@router.get("/{name}/stats", response_model=StatsSnapshot)
async def read_stats(name: ServerNameDep, manager: ManagerDep):
    return await manager.stats.collect(name)


@router.post("/{name}/rcon", response_model=RconReply)
async def send_rcon(name: ServerNameDep, manager: ManagerDep,
                    body: RconCommand):
    if not body.command:
        return RconReply(ok=True, out="")
    try:
        out = await manager.rcon.send(name, body.command)
    except RconError as e:
        logger.warning("RCON to %s failed: %s", name, e)
        return JSONResponse(status_code=500,
                            content=RconReply(ok=False,
                                              error=str(e)).model_dump())
    return RconReply(ok=True, out=out)


@router.get("/{name}/logs")
async def stream_logs(name: ServerNameDep, manager: ManagerDep):
    async def events():
        async for event in manager.logs.follow(name):
            if event.kind == "keepalive":
                yield ": keepalive\n\n"
            else:
                yield f"data: {event.data}\n\n"

    return StreamingResponse(events(), media_type="text/event-stream",
                             headers=STREAM_HEADERS)
