from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from dotenv import load_dotenv
from .config import settings
from .db import init_db_pool, close_db_pool, get_pool
from .portal.auth import NotAuthenticated
from .portal.auth_routes import router as auth_router
from .portal.client_routes import router as client_router
from .portal.contract_routes import router as contract_router
from .portal.dashboard_routes import router as dashboard_router
from .portal.expense_routes import router as expense_router
from .portal.file_routes import router as file_router
from .portal.project_routes import router as project_router
from .portal.return_routes import router as return_router
from .portal.task_routes import router as task_router
from .services.returns_check import check_overdue_returns

app = FastAPI(title="Studio Platform", version="0.1.0")
load_dotenv()
app.include_router(auth_router)
app.include_router(client_router)
app.include_router(project_router)
app.include_router(task_router)
app.include_router(expense_router)
app.include_router(return_router)
app.include_router(contract_router)
app.include_router(file_router)
app.include_router(dashboard_router)

@app.on_event("startup")
async def _startup():
    await init_db_pool()

@app.on_event("shutdown")
async def _shutdown():
    await close_db_pool()

@app.exception_handler(NotAuthenticated)
async def _not_authenticated(request: Request, exc: NotAuthenticated):
    return JSONResponse(status_code=401, content={"detail": "Not authenticated"})

@app.get("/health")
async def health():
    return {"ok": True, "service": settings.service_name, "env": settings.env}

@app.post("/worker/returns/check")
async def worker_returns_check():
    pool = await get_pool()
    async with pool.acquire() as conn:
        try:
            result = await check_overdue_returns(conn)
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"overdue returns check failed: {e}")
    return {"ok": True, **result, "worker_id": settings.worker_id}
