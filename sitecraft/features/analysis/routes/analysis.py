from fastapi import APIRouter, Depends, Request, status

from sitecraft.features.analysis.schemas.analysis import (
    AnalysisCreateRequest,
    AnalysisModuleResponse,
    AnalysisResponse,
)
from sitecraft.platform.container import ServiceContainer
from sitecraft.platform.exceptions import AnalysisNotFoundError
from sitecraft.platform.logger import get_logger
from sitecraft.platform.response import api_response

logger = get_logger(__name__)

router = APIRouter(prefix="/analyses", tags=["analyses"])


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


@router.get("/modules", summary="List analysis modules")
def list_modules(container: ServiceContainer = Depends(get_container)):
    modules = container.status_store.list_modules(active_only=False)
    return api_response(
        data=[AnalysisModuleResponse.model_validate(module).model_dump() for module in modules],
        message="Analysis modules retrieved",
        status_code=status.HTTP_200_OK,
    )


@router.post("", summary="Start an analysis", status_code=status.HTTP_201_CREATED)
def create_analysis(payload: AnalysisCreateRequest, container: ServiceContainer = Depends(get_container)):
    """
    Validate the request, record the analysis with one pending job per
    module and enqueue the fetch task. Progress is read back with
    `GET /analyses/{analysis_id}`.
    """
    analysis = container.intake.submit(payload.url, payload.workspace_id, payload.modules)
    jobs = container.status_store.list_jobs(analysis.id)
    return api_response(
        data=AnalysisResponse.from_analysis(analysis, jobs).model_dump(mode="json"),
        message="Analysis queued",
        status_code=status.HTTP_201_CREATED,
    )


@router.get("/{analysis_id}", summary="Get analysis status and results")
def get_analysis(analysis_id: str, container: ServiceContainer = Depends(get_container)):
    store = container.status_store
    analysis = store.get_analysis(analysis_id)
    if analysis is None:
        raise AnalysisNotFoundError(f"Analysis {analysis_id} not found", {"analysis_id": analysis_id})

    data = AnalysisResponse.from_analysis(
        analysis,
        store.list_jobs(analysis_id),
        store.list_findings(analysis_id),
    )
    return api_response(
        data=data.model_dump(mode="json"),
        message="Analysis retrieved",
        status_code=status.HTTP_200_OK,
    )


@router.post("/{analysis_id}/cancel", summary="Cancel a running analysis")
def cancel_analysis(analysis_id: str, container: ServiceContainer = Depends(get_container)):
    cancelled = container.cancel_analysis(analysis_id)
    analysis = container.status_store.get_analysis(analysis_id)
    return api_response(
        data={"analysis_id": analysis_id, "cancelled": cancelled, "status": analysis.status.value},
        message="Analysis cancelled" if cancelled else f"Analysis already {analysis.status.value}",
        status_code=status.HTTP_200_OK,
    )
