"""
FastAPI backend server for NearFlow - NEAR intent workflow orchestration
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import pydantic
from fastapi import APIRouter, Body, Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic.alias_generators import to_camel

from config import WorkflowSettings, load_settings
from intent_workflow import (
    IntentsChainGateway,
    SessionStore,
    StatusPoller,
    TokenRegistry,
    ValidationError,
    WorkflowError,
    WorkflowRunner,
)
from intents_client import IntentsApiError, NearIntentsClient

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

settings: Optional[WorkflowSettings] = None
intents_client: Optional[NearIntentsClient] = None
runner: Optional[WorkflowRunner] = None


def build_runner(workflow_settings: WorkflowSettings, client: NearIntentsClient) -> WorkflowRunner:
    """Wire the engine from settings"""
    gateway = IntentsChainGateway(client)
    tokens = TokenRegistry(
        decimals_loader=gateway.get_token_decimals,
        decimals_overrides=workflow_settings.token_decimals,
    )
    poller = StatusPoller(
        interval_seconds=workflow_settings.status_poll_interval_seconds,
        timeout_seconds=workflow_settings.status_poll_timeout_seconds,
    )
    return WorkflowRunner(
        gateway,
        sessions=SessionStore(),
        tokens=tokens,
        poller=poller,
        default_network=workflow_settings.default_network,
        max_slippage_bps=workflow_settings.max_slippage_bps,
        fanout_workers=workflow_settings.fanout_workers,
        pool_page_size=workflow_settings.pool_page_size,
        max_pool_candidates=workflow_settings.max_pool_candidates,
    )


def get_runner() -> WorkflowRunner:
    """Lazily initialize the process-wide runner"""
    global settings, intents_client, runner
    if runner is None:
        settings = load_settings()
        intents_client = NearIntentsClient(
            base_url=settings.intents_api_base_url,
            jwt=settings.intents_jwt,
        )
        runner = build_runner(settings, intents_client)
        logger.info("Workflow runner initialized")
    return runner


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    if intents_client is not None:
        await intents_client.close()


router = APIRouter(prefix="/api/workflow", tags=["Workflow"])


@router.post("/run")
async def run_workflow(
    payload: Dict[str, Any] = Body(...),
    workflow_runner: WorkflowRunner = Depends(get_runner),
):
    """Run one workflow phase (analysis, compose, simulate or execute)"""
    try:
        result = await workflow_runner.run(payload)
        return result.to_dict()
    except ValidationError as e:
        logger.info(f"Workflow request rejected on {e.field or 'request'}: {e}")
        headers = {"X-Invalid-Field": to_camel(e.field)} if e.field else None
        raise HTTPException(status_code=400, detail=str(e), headers=headers)
    except (WorkflowError, pydantic.ValidationError) as e:
        logger.info(f"Workflow request rejected: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except IntentsApiError as e:
        logger.error(f"NEAR Intents API error: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    except Exception as e:
        logger.exception(f"Workflow run failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/health")
async def workflow_health(workflow_runner: WorkflowRunner = Depends(get_runner)):
    """Health check with session count"""
    return {
        "status": "healthy",
        "defaultNetwork": workflow_runner.default_network,
        "sessions": len(workflow_runner.sessions),
        "latestRunId": workflow_runner.sessions.latest_run_id,
    }


app = FastAPI(title="NearFlow Backend API", version="1.0.0", lifespan=lifespan)

# CORS middleware to allow frontend requests
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:8080",
        "http://localhost:5173",
        "http://127.0.0.1:8080",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


@app.get("/")
async def root():
    return {"message": "NearFlow Backend API", "status": "running"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
