"""promptbench API server — questionnaire, prompt versioning, LLM testing and analytics endpoints.

Usage:
    uvicorn promptbench.server:app --host 0.0.0.0 --port 5001
    # or
    promptbench serve --port 5001

Curl:
    curl http://localhost:5001/api/test -d '{"promptId": "...", "jsonData": {"type": "text", "content": "hello"}}'
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from fastapi import FastAPI, File, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from promptbench.env_config import check_api_key, get_env_config
from promptbench.errors import InvalidRequestError, PromptBenchError
from promptbench.models import (
    CompilePreview,
    PromptClone,
    PromptCreate,
    PromptVersionCreate,
    QuestionCreate,
    QuestionUpdate,
    TestRequest,
)
from promptbench.service import PromptBench
from promptbench.uploads import save_upload

logger = logging.getLogger("promptbench.server")

# ============================================================
# Server config from env vars
# ============================================================

_env = get_env_config()

MASTER_KEY = _env.master_key
UPLOAD_DIR = _env.upload_dir
MAX_UPLOAD_BYTES = _env.max_upload_mb * 1024 * 1024

_bench: PromptBench | None = None


def get_bench() -> PromptBench:
    """The service instance; built from the environment on first use."""
    global _bench
    if _bench is None:
        _bench = PromptBench.from_env(_env)
        key_status = check_api_key(_env)
        if key_status["status"] != "configured":
            logger.warning(f"{key_status['detail']} — prompt tests will fail until a valid key is set")
    return _bench


# ============================================================
# Auth middleware (PROMPTBENCH_MASTER_KEY)
# ============================================================

class AuthMiddleware(BaseHTTPMiddleware):
    """Bearer token auth using PROMPTBENCH_MASTER_KEY. Skips auth if key is not set."""

    OPEN_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}

    async def dispatch(self, request: Request, call_next):
        if not MASTER_KEY:
            return await call_next(request)

        if request.url.path in self.OPEN_PATHS or request.method == "OPTIONS":
            return await call_next(request)

        auth = request.headers.get("Authorization", "")
        if auth.startswith("Bearer "):
            token = auth[7:].strip()
        else:
            token = request.headers.get("x-api-key", "")

        if token != MASTER_KEY:
            return JSONResponse(status_code=401, content={"error": "Access token required or invalid"})

        return await call_next(request)


# ============================================================
# FastAPI app
# ============================================================

app = FastAPI(
    title="promptbench API",
    description="Build questionnaire prompts, version them by name, and test them against a completion API.",
    version="0.1.0",
)

app.add_middleware(AuthMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PromptBenchError)
async def _promptbench_error(request: Request, exc: PromptBenchError) -> JSONResponse:
    content: dict[str, Any] = {"error": exc.message}
    if exc.details:
        content["details"] = exc.details
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message} ({exc.details})")
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(RequestValidationError)
async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()) if p != 'body')}: {err.get('msg', '')}"
        for err in exc.errors()
    )
    return JSONResponse(status_code=400, content={"error": "Invalid request", "details": problems})


# ============================================================
# Endpoints — health
# ============================================================

@app.get("/health")
async def health() -> dict[str, Any]:
    import promptbench
    return {"status": "ok", "version": promptbench.__version__, **get_bench().describe()}


# ============================================================
# Endpoints — questions
# ============================================================

@app.get("/api/questions")
async def list_questions() -> list[dict[str, Any]]:
    return [q.to_api() for q in get_bench().list_questions()]


@app.post("/api/questions")
async def create_question(body: QuestionCreate) -> dict[str, Any]:
    return get_bench().create_question(body).to_api()


@app.get("/api/questions/{question_id}")
async def get_question(question_id: str) -> dict[str, Any]:
    return get_bench().get_question(question_id).to_api()


@app.put("/api/questions/{question_id}")
async def update_question(question_id: str, body: QuestionUpdate) -> dict[str, Any]:
    return get_bench().update_question(question_id, body).to_api()


@app.delete("/api/questions/{question_id}")
async def delete_question(question_id: str) -> dict[str, Any]:
    get_bench().delete_question(question_id)
    return {"success": True}


# ============================================================
# Endpoints — prompts
# ============================================================

@app.get("/api/prompts")
async def list_prompts() -> list[dict[str, Any]]:
    return [p.to_api() for p in get_bench().list_prompts()]


@app.post("/api/prompts")
async def create_prompt(body: PromptCreate) -> dict[str, Any]:
    return get_bench().create_prompt(body).to_api()


@app.post("/api/prompts/compile")
async def compile_preview(body: CompilePreview) -> dict[str, Any]:
    """Compile prompt text without saving it (for review and editing)."""
    text = get_bench().compile(body.name, body.questions, body.answers, body.excluded_question_ids)
    return {"generatedPrompt": text}


@app.get("/api/prompts/{prompt_id}")
async def get_prompt(prompt_id: str) -> dict[str, Any]:
    return get_bench().get_prompt(prompt_id).to_api()


@app.delete("/api/prompts/{prompt_id}")
async def delete_prompt(prompt_id: str, cascade: bool = True) -> dict[str, Any]:
    get_bench().delete_prompt(prompt_id, cascade=cascade)
    return {"success": True}


@app.get("/api/prompts/{name}/versions")
async def list_versions(name: str) -> list[dict[str, Any]]:
    return [p.to_api() for p in get_bench().list_versions(name)]


@app.post("/api/prompts/{prompt_id}/versions")
async def create_version(prompt_id: str, body: PromptVersionCreate) -> dict[str, Any]:
    return get_bench().create_version(prompt_id, body).to_api()


@app.post("/api/prompts/{prompt_id}/clone")
async def clone_prompt(prompt_id: str, body: PromptClone | None = None) -> dict[str, Any]:
    return get_bench().clone_prompt(prompt_id, body.name if body else None).to_api()


@app.get("/api/prompts/{prompt_id}/compare/{version_id}")
async def compare_prompts(prompt_id: str, version_id: str) -> dict[str, Any]:
    return get_bench().compare_prompts(prompt_id, version_id).to_api()


# ============================================================
# Endpoints — upload and testing
# ============================================================

@app.post("/api/upload")
async def upload(json_file: UploadFile | None = File(None, alias="jsonFile")) -> dict[str, Any]:
    """Accept one file in the "jsonFile" form field; non-JSON content is returned as text."""
    if json_file is None:
        raise InvalidRequestError("No file uploaded")
    raw = await json_file.read()
    result = save_upload(
        json_file.filename or "",
        raw,
        content_type=json_file.content_type or "",
        upload_dir=UPLOAD_DIR,
        max_bytes=MAX_UPLOAD_BYTES,
    )
    return result.to_api()


@app.post("/api/test")
async def run_test(body: TestRequest) -> dict[str, Any]:
    result = await get_bench().run_test(body)
    return result.to_api()


# ============================================================
# Endpoints — results and analytics
# ============================================================

@app.get("/api/results")
async def list_results() -> list[dict[str, Any]]:
    return [r.to_api() for r in get_bench().list_results()]


@app.get("/api/results/{prompt_id}")
async def list_prompt_results(prompt_id: str) -> list[dict[str, Any]]:
    return [r.to_api() for r in get_bench().list_results(prompt_id)]


@app.get("/api/analytics/overall")
async def overall_analytics() -> list[dict[str, Any]]:
    return [s.to_api() for s in get_bench().overall_analytics()]


@app.get("/api/analytics/prompt/{prompt_id}")
async def prompt_analytics(
    prompt_id: str,
    startDate: date | None = None,
    endDate: date | None = None,
) -> list[dict[str, Any]]:
    return [s.to_api() for s in get_bench().prompt_analytics(prompt_id, startDate, endDate)]


def create_app(
    bench: PromptBench | None = None,
    master_key: str | None = None,
    upload_dir: str | None = None,
    max_upload_mb: int | None = None,
    dotenv_path: str | None = None,
) -> FastAPI:
    """Factory function to configure the API server.

    Reads .env file first, then overrides with explicit args. A pre-built
    ``bench`` (e.g. backed by a MemoryStore) replaces the env-configured one.
    """
    global MASTER_KEY, UPLOAD_DIR, MAX_UPLOAD_BYTES, _env, _bench

    if dotenv_path:
        _env = get_env_config(dotenv_path)
        MASTER_KEY = _env.master_key
        UPLOAD_DIR = _env.upload_dir
        MAX_UPLOAD_BYTES = _env.max_upload_mb * 1024 * 1024
        _bench = None

    if bench is not None:
        _bench = bench
    if master_key is not None:
        MASTER_KEY = master_key
    if upload_dir:
        UPLOAD_DIR = upload_dir
    if max_upload_mb is not None:
        MAX_UPLOAD_BYTES = max_upload_mb * 1024 * 1024
    return app
