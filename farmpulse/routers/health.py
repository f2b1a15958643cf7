from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
def get_health(request: Request):
    services = request.app.state.services
    return {
        "status": "ok",
        "sessions": len(services.hub.sessions),
        "simulations": services.simulations.active(),
    }


@router.get("/simulations")
def get_simulations(request: Request):
    return {"simulations": request.app.state.services.simulations.active()}
