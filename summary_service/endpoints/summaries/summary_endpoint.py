from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from typing import Dict, List, Optional
import logging

from summary_service.exceptions import InvariantViolationError
from summary_service.service.prometheus.shared_summary_registry import get_shared_summary_registry
from summary_service.service.prometheus.summary_registry import SummaryRegistry
from summary_service.service.utils.exceptions import IllegalArgumentError, SummaryConflictError

router = APIRouter()
logger = logging.getLogger(__name__)


class QuantileDefinition(BaseModel):
    quantile: float
    error: float


class SummaryDeclaration(BaseModel):
    name: str
    documentation: Optional[str] = None
    quantiles: Optional[List[QuantileDefinition]] = None
    labels: Optional[Dict[str, str]] = None


class ObservationRequest(BaseModel):
    values: List[float]


class QuantileValue(BaseModel):
    quantile: float
    value: float


class SummaryResponse(BaseModel):
    name: str
    metricName: str
    count: int
    sum: float
    quantiles: List[QuantileValue]


def _not_found(name: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"No summary named '{name}'")


@router.post("/summaries")
async def declare_summary(
    declaration: SummaryDeclaration,
    registry: SummaryRegistry = Depends(get_shared_summary_registry),
):
    """Declare a summary metric and the quantiles it should track."""
    quantiles = None
    if declaration.quantiles is not None:
        quantiles = [(q.quantile, q.error) for q in declaration.quantiles]

    try:
        summary = registry.declare(
            declaration.name,
            documentation=declaration.documentation,
            quantiles=quantiles,
            labels=declaration.labels,
        )
    except SummaryConflictError as e:
        logger.error(f"Conflicting declaration for summary {declaration.name}: {str(e)}")
        raise HTTPException(status_code=409, detail=str(e))
    except (IllegalArgumentError, ValueError) as e:
        logger.error(f"Invalid declaration for summary {declaration.name}: {str(e)}")
        raise HTTPException(status_code=400, detail=f"Invalid summary declaration: {str(e)}")

    logger.info(f"Declared summary {declaration.name} as {summary.name}")
    return {
        "name": declaration.name,
        "metricName": summary.name,
        "quantiles": [{"quantile": q.quantile, "error": q.error} for q in summary.quantiles],
    }


@router.get("/summaries")
async def list_summaries(registry: SummaryRegistry = Depends(get_shared_summary_registry)):
    """List the declared summary metrics."""
    return {"summaries": registry.names()}


@router.post("/summaries/{name}/observations")
async def observe(
    name: str,
    request: ObservationRequest,
    registry: SummaryRegistry = Depends(get_shared_summary_registry),
):
    """Record observations, declaring the summary with the default quantiles if needed."""
    try:
        summary = registry.declare(name)
        summary.observe_many(request.values)
    except (IllegalArgumentError, ValueError) as e:
        logger.error(f"Error observing values for summary {name}: {str(e)}")
        raise HTTPException(status_code=400, detail=f"Error observing values: {str(e)}")

    return {"status": "success", "observed": len(request.values)}


@router.get("/summaries/{name}", response_model=SummaryResponse)
async def get_summary(name: str, registry: SummaryRegistry = Depends(get_shared_summary_registry)):
    """Provide the current quantile estimates of a summary, with its count and sum."""
    summary = registry.get(name)
    if summary is None:
        raise _not_found(name)

    try:
        snapshot = summary.snapshot()
    except InvariantViolationError as e:
        logger.error(f"Summary {name} is inconsistent: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Error reading summary: {str(e)}")

    return SummaryResponse(
        name=name,
        metricName=summary.name,
        count=snapshot.count,
        sum=snapshot.sum,
        quantiles=[QuantileValue(quantile=phi, value=value) for phi, value in snapshot.quantiles],
    )


@router.get("/summaries/{name}/estimator")
async def dump_estimator(name: str, registry: SummaryRegistry = Depends(get_shared_summary_registry)):
    """Provide the full estimator state of a summary, for debugging."""
    summary = registry.get(name)
    if summary is None:
        raise _not_found(name)
    return summary.dump_estimator().to_dict()


@router.delete("/summaries/{name}")
async def delete_summary(name: str, registry: SummaryRegistry = Depends(get_shared_summary_registry)):
    """Delete a summary and stop exposing it."""
    if not registry.remove(name):
        raise _not_found(name)
    logger.info(f"Deleted summary {name}")
    return {"status": "success", "message": f"Summary {name} deleted"}
