from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.responses import FileResponse
from fastapi.security.api_key import APIKeyHeader
from pydantic import BaseModel
import os, logging, time
from pathlib import Path
from typing import Optional, Dict, Any

from prometheus_fastapi_instrumentator import Instrumentator
from batchvision.api import build_resource, run_batch_async
from batchvision.errors import SourceUnavailable, WriteFailure
from batchvision.profiles import BatchConfig, config_from_profile, load_profile, resolve_profile_path
from batchvision.resource import AnalyzerResource

API_KEY_NAME = "x-api-key"
api_key_header = APIKeyHeader(name=API_KEY_NAME, auto_error=False)


def data_dir() -> Path:
    return Path(os.getenv("DATA_DIR", "data"))


def get_api_key(api_key: str = Depends(api_key_header)):
    expected = os.environ.get("API_KEY")
    if not expected:
        # auth disabled when no key is configured (dev)
        return None
    if api_key is None:
        raise HTTPException(status_code=401, detail="Missing API key")
    if api_key != expected:
        raise HTTPException(status_code=403, detail="Forbidden")
    return api_key

app = FastAPI(
    title="batchvision",
    version=os.getenv("APP_VERSION", "0.1.0"),
    description="Batch image classification and dilation.",
)

logger = logging.getLogger("batchvision.http")
handler = logging.StreamHandler()
handler.setFormatter(
    logging.Formatter(
        "%(asctime)s %(levelname)s path=%(path)s method=%(method)s status=%(status)s duration_ms=%(duration_ms)s msg=%(message)s"
    )
)
logger.addHandler(handler)
logger.setLevel(logging.INFO)
logger.propagate = False

@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    dur = (time.time() - start) * 1000
    logger.info(
        "request",
        extra={
            "path": request.url.path,
            "method": request.method,
            "status": response.status_code,
            "duration_ms": round(dur, 2),
        },
    )
    return response

Instrumentator().instrument(app).expose(app, endpoint="/metrics")

# one shared classifier resource per profile file for the life of the process;
# "demo", "demo.json" and "demo@2" all map to the same entry
_RESOURCES: Dict[str, AnalyzerResource] = {}


def profile_key(profile: str) -> str:
    return str(resolve_profile_path(profile).resolve())


def get_resource(key: str, cfg: BatchConfig) -> AnalyzerResource:
    res = _RESOURCES.get(key)
    if res is None:
        res = _RESOURCES[key] = build_resource(cfg)
    return res


def _resolve(path: str) -> Path:
    # request paths must stay inside DATA_DIR
    root = data_dir().resolve()
    p = (root / path).resolve()
    if p != root and root not in p.parents:
        raise HTTPException(status_code=400, detail=f"path escapes data directory: {path}")
    return p

@app.get("/healthz")
def healthz():
    return {"status": "ok"}

@app.get("/version")
def version():
    return {
        "version": os.getenv("APP_VERSION", "0.1.0"),
        "git": os.getenv("GIT_SHA", "unknown"),
    }

@app.get("/v1/health")
def health():
    return {"ok": True}

class BatchRequest(BaseModel):
    source_dir: str
    dest_dir: Optional[str] = None
    profile: str = "default"

class BatchResponse(BaseModel):
    source_dir: str
    dest_dir: str
    items: int
    jobs_total: int
    succeeded: int
    failed: int
    all_terminal: bool
    all_succeeded: bool
    failures_by_kind: Dict[str, int]
    resource_state: Optional[str] = None
    duration_ms: float
    jobs: list
    runtime: Dict[str, Any]

@app.post("/v1/batch", response_model=BatchResponse)
async def batch_endpoint(req: BatchRequest, _api_key: str = Depends(get_api_key)):
    try:
        key = profile_key(req.profile)
        cfg = config_from_profile(load_profile(key))
    except FileNotFoundError as e:
        raise HTTPException(status_code=400, detail=str(e))

    src = _resolve(req.source_dir)
    dest = _resolve(req.dest_dir) if req.dest_dir else data_dir() / "runs" / src.name
    try:
        result = await run_batch_async(
            cfg,
            source_dir=str(src),
            dest_dir=str(dest),
            resource=get_resource(key, cfg),
        )
    except SourceUnavailable as e:
        raise HTTPException(status_code=404, detail=str(e))
    except WriteFailure as e:
        raise HTTPException(status_code=500, detail=str(e))
    return result.to_dict()

@app.get("/v1/resources")
def resources(_api_key: str = Depends(get_api_key)):
    return {
        name: {"state": res.state.value, "constructions": res.constructions}
        for name, res in _RESOURCES.items()
    }

# download a single artifact
@app.get("/v1/artifact")
def artifact(path: str, _api_key: str = Depends(get_api_key)) -> FileResponse:
    p = _resolve(path)
    if not p.is_file():
        raise HTTPException(status_code=404, detail="Not found")
    return FileResponse(str(p))
