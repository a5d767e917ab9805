"""API endpoints for the web interface."""

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from ..core.errors import Result
from ..services.dashboard import last_refresh_label
from ..services.health import health_band
from ..services.monitor import ValidatorMonitor

router = APIRouter()

STATUS_CODES = {
    "not_found": 404,
    "invalid_input": 400,
    "provider_error": 502,
    "persistence_error": 500,
}


class AddValidatorRequest(BaseModel):
    index: str
    name: str | None = None


class RenameValidatorRequest(BaseModel):
    name: str


def get_monitor(request: Request) -> ValidatorMonitor:
    return request.app.state.monitor


def unwrap(result: Result):
    if not result.success:
        raise HTTPException(status_code=STATUS_CODES.get(result.kind, 500), detail=result.error)
    return result.data


def validator_json(validator) -> dict:
    band = health_band(validator.health_score)
    return {
        **validator.to_storage(),
        "statusCategory": validator.status_category,
        "health": band.model_dump(),
    }


@router.get("/validators")
async def list_validators(request: Request):
    monitor = get_monitor(request)
    return {"network": monitor.state.network, "validators": [validator_json(v) for v in monitor.validators]}


@router.post("/validators", status_code=201)
async def add_validator(body: AddValidatorRequest, request: Request):
    """Track a validator; its stats are fetched first."""
    return validator_json(unwrap(await get_monitor(request).add_validator(body.index, body.name)))


@router.get("/validators/{validator_id}")
async def get_validator(validator_id: int, request: Request):
    validator = get_monitor(request).state.find(validator_id)
    if validator is None:
        raise HTTPException(status_code=404, detail="Validator not found")
    return validator_json(validator)


@router.patch("/validators/{validator_id}")
async def rename_validator(validator_id: int, body: RenameValidatorRequest, request: Request):
    return validator_json(unwrap(await get_monitor(request).rename_validator(validator_id, body.name)))


@router.delete("/validators/{validator_id}")
async def remove_validator(validator_id: int, request: Request):
    removed = unwrap(await get_monitor(request).remove_validator(validator_id))
    return {"removed": removed.id}


@router.get("/validators/{validator_id}/income")
async def get_income(validator_id: int, request: Request):
    return unwrap(await get_monitor(request).get_income(validator_id))


@router.get("/validators/{validator_id}/attestations")
async def get_attestations(validator_id: int, request: Request):
    return unwrap(await get_monitor(request).get_attestations(validator_id))


@router.get("/validators/{validator_id}/proposals")
async def get_proposals(validator_id: int, request: Request):
    return unwrap(await get_monitor(request).get_proposals(validator_id))


@router.get("/dashboard")
async def get_dashboard(request: Request):
    monitor = get_monitor(request)
    return {
        **monitor.dashboard().model_dump(mode="json"),
        "last_refresh": last_refresh_label(monitor.state.last_refresh),
    }


@router.post("/refresh")
async def refresh(request: Request):
    """Run a refresh cycle now."""
    report = await get_monitor(request).refresh_all()
    return report.model_dump(mode="json")


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
