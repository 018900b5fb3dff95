"""
Workflow registry endpoints.
"""
from typing import Any, Dict, List

from fastapi import APIRouter, Depends

from api.dependencies import get_workflow_engine
from orchestration import WorkflowEngine


router = APIRouter()


@router.get("/workflows", summary="List registered workflows")
async def list_workflows(engine: WorkflowEngine = Depends(get_workflow_engine)) -> List[Dict[str, Any]]:
    return [
        {"name": info.name, "input_type": info.input_type, "output_type": info.output_type}
        for info in engine.list_workflows()
    ]
