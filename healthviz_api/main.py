from __future__ import annotations

import logging
import math
import threading
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any, Dict, Optional, Tuple

from fastapi import APIRouter, Body, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from healthviz.config import HealthVizConfig, configure_logging, load_config
from healthviz.coordinator import DashboardUpdate, UpdateCoordinator
from healthviz.errors import DatasetNotLoadedError, UnknownFieldError
from healthviz.filters import describe_selection
from healthviz.metrics import count_test_results
from healthviz.models import GroupStats, Row
from healthviz.normalize import hospital_to_lon_lat
from healthviz_api.schemas import (
    FilterSpecificationModel,
    MetaDateBoundsResponse,
    MetaOptionsResponse,
    PredicateUpdate,
)

logger = logging.getLogger(__name__)
router = APIRouter()

MAX_PAGE = 1000


def _json(data: object) -> JSONResponse:
    """Return JSON with NaN/inf mapped to null."""

    def _safe_float(value: float) -> Optional[float]:
        if math.isnan(value) or math.isinf(value):
            return None
        return value

    return JSONResponse(content=jsonable_encoder(data, custom_encoder={float: _safe_float}))


def _error(exc: Exception, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": str(exc), "type": type(exc).__name__})


def _session(request: Request) -> Tuple[UpdateCoordinator, threading.Lock]:
    return request.app.state.coordinator, request.app.state.lock


def _row_dict(row: Row) -> Dict[str, Any]:
    return asdict(row)


def _group_dict(group: GroupStats, with_location: bool = False) -> Dict[str, Any]:
    out = asdict(group)
    if with_location:
        out["lon"], out["lat"] = hospital_to_lon_lat(group.key)
    return out


def _update_payload(update: DashboardUpdate) -> Dict[str, Any]:
    return {
        "filters": update.filters.to_dict(),
        "selection_label": update.selection_label,
        "row_count": len(update.rows),
        "scalars": asdict(update.scalars),
        "kpi_display": update.kpi_display(),
        "groups": [_group_dict(g) for g in update.groups],
        "test_results": count_test_results(update.rows),
    }


def _filters_payload(coordinator: UpdateCoordinator) -> Dict[str, Any]:
    return {"filters": coordinator.filters.to_dict(), "selection_label": describe_selection(coordinator.filters)}


@router.get("/meta/options", response_model=MetaOptionsResponse)
def meta_options(request: Request):
    coordinator, lock = _session(request)
    with lock:
        store = coordinator.store
        if store is None:
            return _error(DatasetNotLoadedError("No dataset loaded"), 503)
        options = {k: [str(v) for v in vals] for k, vals in store.categorical_options().items()}
    return MetaOptionsResponse(options=options)


@router.get("/meta/date-bounds", response_model=MetaDateBoundsResponse)
def meta_date_bounds(request: Request):
    coordinator, lock = _session(request)
    with lock:
        store = coordinator.store
        if store is None:
            return _error(DatasetNotLoadedError("No dataset loaded"), 503)
        bounds = store.date_bounds()
    if bounds is None:
        return MetaDateBoundsResponse()
    return MetaDateBoundsResponse(min=bounds[0], max=bounds[1])


@router.get("/filters")
def get_filters(request: Request):
    coordinator, lock = _session(request)
    with lock:
        return _json(_filters_payload(coordinator))


@router.put("/filters")
def replace_filters(request: Request, filters: FilterSpecificationModel):
    coordinator, lock = _session(request)
    try:
        with lock:
            # Every field is present in the dump, so this replaces the whole specification.
            coordinator.set_filters(filters.model_dump())
            return _json(_filters_payload(coordinator))
    except UnknownFieldError as exc:
        return _error(exc, 400)
    except Exception as exc:
        logger.exception("replace_filters failed")
        return _error(exc, 500)


@router.patch("/filters")
def patch_filters(request: Request, partial: Dict[str, Any] = Body(...)):
    coordinator, lock = _session(request)
    try:
        with lock:
            coordinator.set_filters(partial)
            return _json(_filters_payload(coordinator))
    except UnknownFieldError as exc:
        return _error(exc, 400)
    except Exception as exc:
        logger.exception("patch_filters failed")
        return _error(exc, 500)


@router.put("/filters/{field}")
def set_filter(request: Request, field: str, body: PredicateUpdate):
    coordinator, lock = _session(request)
    try:
        with lock:
            coordinator.set_filter(field, body.value)
            return _json(_filters_payload(coordinator))
    except UnknownFieldError as exc:
        return _error(exc, 400)
    except Exception as exc:
        logger.exception("set_filter failed")
        return _error(exc, 500)


@router.post("/filters/reset")
def reset_filters(request: Request):
    coordinator, lock = _session(request)
    try:
        with lock:
            return _json(_update_payload(coordinator.reset_filters()))
    except DatasetNotLoadedError as exc:
        return _error(exc, 503)
    except Exception as exc:
        logger.exception("reset_filters failed")
        return _error(exc, 500)


@router.post("/filters/hospital")
def toggle_hospital(request: Request, hospital: str = Query(...)):
    coordinator, lock = _session(request)
    with lock:
        coordinator.toggle_hospital(hospital)
        return _json(_filters_payload(coordinator))


@router.post("/apply")
def apply_filters(request: Request):
    coordinator, lock = _session(request)
    try:
        with lock:
            return _json(_update_payload(coordinator.apply_filters()))
    except DatasetNotLoadedError as exc:
        return _error(exc, 503)
    except Exception as exc:
        logger.exception("apply_filters failed")
        return _error(exc, 500)


@router.get("/snapshot")
def snapshot(request: Request):
    coordinator, lock = _session(request)
    with lock:
        update = coordinator.current_update
        if update is None:
            return _error(DatasetNotLoadedError("No dataset loaded"), 503)
        return _json(_update_payload(update))


@router.get("/rows")
def rows(request: Request, offset: int = Query(default=0, ge=0), limit: int = Query(default=100, ge=1, le=MAX_PAGE)):
    coordinator, lock = _session(request)
    with lock:
        current = coordinator.current_rows
        page = current[offset : offset + limit]
        return _json({"total": len(current), "offset": offset, "rows": [_row_dict(r) for r in page]})


@router.get("/hospitals")
def hospitals(request: Request):
    coordinator, lock = _session(request)
    try:
        with lock:
            stats = coordinator.hospital_overview()
            selected = coordinator.filters.selected_hospital
        return _json({"selected_hospital": selected, "hospitals": [_group_dict(g, with_location=True) for g in stats]})
    except DatasetNotLoadedError as exc:
        return _error(exc, 503)
    except Exception as exc:
        logger.exception("hospitals failed")
        return _error(exc, 500)


@router.get("/breakdown/{field}")
def breakdown(request: Request, field: str):
    coordinator, lock = _session(request)
    try:
        with lock:
            stats = coordinator.breakdown(field)
        return _json({"field": field, "groups": [_group_dict(g) for g in stats]})
    except UnknownFieldError as exc:
        return _error(exc, 400)
    except DatasetNotLoadedError as exc:
        return _error(exc, 503)
    except Exception as exc:
        logger.exception("breakdown failed")
        return _error(exc, 500)


@router.post("/cache/clear")
def clear_cache(request: Request):
    coordinator, lock = _session(request)
    with lock:
        coordinator.clear_caches()
        return _json({"cleared": True, "filter_cache": coordinator.filter_engine.stats()})


@router.get("/cache/stats")
def cache_stats(request: Request):
    coordinator, lock = _session(request)
    with lock:
        return _json(
            {
                "filter_cache": coordinator.filter_engine.stats(),
                "aggregate_cache": coordinator.aggregation_engine.stats(),
            }
        )


def create_app(config: Optional[HealthVizConfig] = None) -> FastAPI:
    config = config or load_config()
    configure_logging(config.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        coordinator = UpdateCoordinator(config)
        # A load failure is fatal: let it abort startup.
        coordinator.load_file()
        app.state.coordinator = coordinator
        app.state.lock = threading.Lock()
        yield

    app = FastAPI(title="HealthViz Dashboard API", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app


app = create_app()
