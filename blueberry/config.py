"""配置管理 - BlueBerry 服务与锁屏循环配置"""
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from loguru import logger

load_dotenv()


def _env_bool(name: str, default: str = "") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.error(f"Invalid number for {name}: {raw!r}, using {default}")
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.error(f"Invalid integer for {name}: {raw!r}, using {default}")
        return default


@dataclass
class Settings:
    """服务配置"""

    # 服务配置
    host: str = "127.0.0.1"
    port: int = 8790
    debug: bool = False

    # 数据目录
    data_dir: Path = field(default_factory=lambda: Path.home() / ".blueberry")
    secret_path: Optional[Path] = None

    # 运行模式
    dry_run: bool = False
    mode: str = "duration"

    # duration 模式
    duration: str = "1h"
    lock_interval_min: str = "10m"
    lock_interval_max: str = "20m"

    # cycles 模式
    nap_time_s: float = 1800
    weak_time_s: float = 0.5
    stop_after_cycles: int = 0

    def __post_init__(self) -> None:
        if self.secret_path is None:
            self.secret_path = self.data_dir / "secret.json"

    @classmethod
    def from_env(cls) -> "Settings":
        """从环境变量加载配置"""
        data_dir = Path(os.getenv(
            "BLUEBERRY_DATA_DIR", str(Path.home() / ".blueberry")
        )).expanduser()
        secret_path = os.getenv("BLUEBERRY_SECRET_PATH")

        return cls(
            # 服务
            host=os.getenv("HOST", "127.0.0.1"),
            port=_env_int("PORT", 8790),
            debug=_env_bool("BLUEBERRY_DEBUG"),

            # 路径
            data_dir=data_dir,
            secret_path=Path(secret_path).expanduser() if secret_path else None,

            # 模式
            dry_run=_env_bool("BLUEBERRY_DRY_RUN"),
            mode=os.getenv("BLUEBERRY_MODE", "duration").strip().lower(),

            # duration
            duration=os.getenv("BLUEBERRY_DURATION", "1h"),
            lock_interval_min=os.getenv("BLUEBERRY_LOCK_INTERVAL_MIN", "10m"),
            lock_interval_max=os.getenv("BLUEBERRY_LOCK_INTERVAL_MAX", "20m"),

            # cycles
            nap_time_s=_env_float("BLUEBERRY_NAP_TIME_S", 1800),
            weak_time_s=_env_float("BLUEBERRY_WEAK_TIME_S", 0.5),
            stop_after_cycles=_env_int("BLUEBERRY_STOP_AFTER_CYCLES", 0),
        )


def configure_logging(debug: bool) -> None:
    """Reset the loguru sink to stderr at INFO, or DEBUG when requested."""
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if debug else "INFO")


# 全局配置实例
settings = Settings.from_env()
