"""FastAPI dependencies for dependency injection."""

from typing import Annotated

from fastapi import Depends

from mintsentry.config.settings import Settings, get_settings
from mintsentry.services.detection.context import DetectionContext, get_detection_context
from mintsentry.services.detection.loop import DetectionLoop

SettingsDep = Annotated[Settings, Depends(get_settings)]
DetectionContextDep = Annotated[DetectionContext, Depends(get_detection_context)]


def get_detection_loop(context: DetectionContextDep) -> DetectionLoop:
    """Get the detection loop of the current context."""
    return context.loop


DetectionLoopDep = Annotated[DetectionLoop, Depends(get_detection_loop)]
