"""FastAPI 主入口"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel
from loguru import logger

from .config import settings, configure_logging, Settings
from .lockcycle import BlueBerryService, JsonSecretStore, NotificationLog

# 全局服务实例
service: Optional[BlueBerryService] = None
notifications: Optional[NotificationLog] = None


def create_service(config: Settings) -> tuple[BlueBerryService, NotificationLog]:
    """Build the service wired to the JSON secret store and the notification log."""
    log = NotificationLog()
    svc = BlueBerryService(
        secret_store=JsonSecretStore(config.secret_path),
        notifier=log,
        config_source=Settings.from_env,
    )
    return svc, log


@asynccontextmanager
async def lifespan(app: FastAPI):  # noqa: ARG001
    """应用生命周期管理"""
    global service, notifications

    configure_logging(settings.debug)
    logger.info("=" * 50)
    logger.info("  BlueBerry")
    logger.info(f"  Data dir: {settings.data_dir}")
    logger.info(f"  Mode: {settings.mode}{' (DRY-RUN)' if settings.dry_run else ''}")
    logger.info("=" * 50)

    service, notifications = create_service(settings)

    yield

    # 清理
    logger.info("Shutting down...")
    await service.dispose()
    logger.info("Goodbye!")


app = FastAPI(
    title="BlueBerry",
    description="Session-lock cycling scheduler",
    version="0.1.0",
    lifespan=lifespan,
)


# ============== Pydantic Models ==============

class SecretRequest(BaseModel):
    """设置密码请求"""
    secret: str


def _require_service() -> BlueBerryService:
    if service is None:
        raise HTTPException(status_code=503, detail="Service not ready")
    return service


# ============== REST API ==============

@app.get("/health")
@app.get("/api/health")
async def health():
    """健康检查"""
    svc = _require_service()
    return {
        "status": "ok",
        "version": "0.1.0",
        "scheduler": svc.status().to_dict(),
    }


@app.get("/api/status")
async def status():
    """运行状态"""
    return _require_service().status().to_dict()


@app.post("/api/start")
async def start():
    """启动锁屏循环"""
    svc = _require_service()
    started = await svc.start()
    return {"started": started, "status": svc.status().to_dict()}


@app.post("/api/stop")
async def stop():
    """停止锁屏循环"""
    svc = _require_service()
    await svc.stop()
    return {"stopped": True, "status": svc.status().to_dict()}


@app.put("/api/secret")
async def set_secret(request: SecretRequest):
    """设置密码"""
    svc = _require_service()
    if not await svc.set_secret(request.secret):
        raise HTTPException(status_code=400, detail="Secret must not be blank")
    return {"stored": True}


@app.delete("/api/secret")
async def clear_secret():
    """清除密码"""
    await _require_service().clear_secret()
    return {"cleared": True}


@app.get("/api/notifications")
async def list_notifications(limit: int = Query(20, ge=1, le=100)):
    """最近的通知与事件"""
    svc = _require_service()
    items = notifications.recent(limit) if notifications else []
    return {
        "notifications": [n.to_dict() for n in items],
        "events": [e.to_dict() for e in svc.events.recent(limit)],
    }


# ============== 启动入口 ==============

def main():
    """启动 FastAPI 服务"""
    import uvicorn

    uvicorn.run(
        "blueberry.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
    )


if __name__ == "__main__":
    main()
