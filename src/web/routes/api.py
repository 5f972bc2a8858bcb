from __future__ import annotations

import logging
import time

from fastapi import APIRouter, Depends, HTTPException, Request

from pipeline.controller import PipelineController
from pipeline.errors import (
    CameraError,
    InsufficientDataError,
    InvalidLabelError,
    InvalidTransitionError,
    LoadError,
    ModelNotReadyError,
    PipelineError,
)
from runtime.context import RuntimeContext
from ..api_models import StatusResponse, TriggerResponse

router = APIRouter()


def get_context(request: Request) -> RuntimeContext:
    return request.app.state.ctx


def get_controller(ctx: RuntimeContext = Depends(get_context)) -> PipelineController:
    return ctx.controller


def _http_status_for(error: PipelineError) -> int:
    """Map pipeline errors to HTTP codes: misuse -> 409, bad input -> 400, load or camera -> 503."""
    if isinstance(error, (InvalidTransitionError, ModelNotReadyError)):
        return 409
    if isinstance(error, (InvalidLabelError, InsufficientDataError)):
        return 400
    if isinstance(error, (LoadError, CameraError)):
        return 503
    return 500


def _trigger(controller: PipelineController, action, *args) -> TriggerResponse:
    try:
        action(*args)
    except PipelineError as e:
        logging.warning(f"Trigger {action.__name__} rejected: {e}")
        raise HTTPException(status_code=_http_status_for(e), detail=str(e)) from e
    status = controller.status
    return TriggerResponse(phase=status.phase.value, message=status.message)


@router.get("/status", response_model=StatusResponse)
def status(ctx: RuntimeContext = Depends(get_context)):
    """
    Current pipeline status for the UI.
    Fields:
    - phase/group: current state machine phase
    - message: human-readable status line
    - counts: per-category sample counts (ready/collecting)
    - progress: training progress in [0, 1] (training)
    - prediction: latest classification (predicting)
    """
    now = time.time()
    data = ctx.controller.status.to_dict()
    start_time = ctx.system_stats.get("start_time")
    data["categories"] = list(ctx.controller.categories)
    data["uptime_seconds"] = int(now - start_time) if start_time else None
    return data


@router.post("/camera/enable", response_model=TriggerResponse)
def enable_camera(controller: PipelineController = Depends(get_controller)):
    return _trigger(controller, controller.enable_camera)


@router.post("/capture/{class_index}/start", response_model=TriggerResponse)
def start_capture(class_index: int, controller: PipelineController = Depends(get_controller)):
    return _trigger(controller, controller.start_capture, class_index)


@router.post("/capture/stop", response_model=TriggerResponse)
def stop_capture(controller: PipelineController = Depends(get_controller)):
    return _trigger(controller, controller.stop_capture)


@router.post("/train", response_model=TriggerResponse)
def train(controller: PipelineController = Depends(get_controller)):
    return _trigger(controller, controller.train_and_predict)
