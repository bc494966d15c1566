"""
Settings Configuration
使用 Pydantic 进行配置验证和管理
"""
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class SearchSettings(BaseSettings):
    """搜索服务 (SerpAPI) 配置"""
    endpoint: str = Field(default="https://serpapi.com/search.json", description="搜索接口地址")
    account_endpoint: str = Field(default="https://serpapi.com/account.json", description="账户信息接口")
    engine: str = Field(default="google", description="搜索引擎")
    max_results: int = Field(default=20, description="每次搜索最大结果数")
    page_size: int = Field(default=10, description="每页结果数")
    default_language: str = Field(default="de", description="默认界面语言 (hl)")
    default_region: str = Field(default="de", description="默认地区 (gl)")
    user_agent: str = Field(default="DailyWebScanner/1.0", description="User Agent")
    request_timeout: float = Field(default=20.0, description="请求超时时间(秒)")

    class Config:
        env_prefix = "SEARCH_"


class FetchSettings(BaseSettings):
    """页面与资源抓取配置"""
    page_timeout: float = Field(default=30.0, description="页面抓取超时(秒)")
    asset_timeout: float = Field(default=30.0, description="资源下载超时(秒)")
    max_assets_per_article: int = Field(default=20, description="每篇文章最多下载资源数")
    max_asset_bytes: int = Field(default=25 * 1024 * 1024, description="单个资源最大字节数")
    user_agent: str = Field(default="DailyWebScanner/1.0", description="User Agent")
    accept: str = Field(
        default="text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        description="Accept 请求头",
    )

    class Config:
        env_prefix = "FETCH_"


class StorageSettings(BaseSettings):
    """存储配置"""
    database_url: str = Field(default="sqlite:///./data/scanner.db", description="数据库连接")
    asset_dir: str = Field(default="./data/assets", description="资源文件目录")
    export_dir: str = Field(default="./data/exports", description="正文导出目录")
    asset_cache_size: int = Field(default=256, description="资源内存缓存条目数")
    asset_cache_ttl: int = Field(default=3600, description="资源缓存过期时间(秒)")
    asset_cache_max_bytes: int = Field(default=64 * 1024 * 1024, description="资源缓存总字节上限")
    asset_cache_item_bytes: int = Field(default=4 * 1024 * 1024, description="单个资源可缓存的最大字节数")

    class Config:
        env_prefix = "STORAGE_"


class SchedulerSettings(BaseSettings):
    """定时调度配置"""
    tick_interval: float = Field(default=1.0, description="调度轮询间隔(秒)")
    tolerance_seconds: float = Field(default=1.0, description="触发容差(秒)")
    default_time: str = Field(default="00:00", description="非法时间的回退值")

    class Config:
        env_prefix = "SCHEDULER_"


class CredentialSettings(BaseSettings):
    """凭据的明文偏好回退值"""
    serpapi_api_key: Optional[str] = Field(default=None, description="SerpAPI API Key")

    class Config:
        env_prefix = "CREDENTIAL_"


class GeneralSettings(BaseSettings):
    """通用设置"""
    max_retries: int = Field(default=3, description="最大重试次数")
    retry_delay: int = Field(default=1, description="重试延迟(秒)")
    log_level: str = Field(default="INFO", description="日志级别")
    log_file: Optional[str] = Field(default=None, description="日志文件名 (logs/ 下)")


class Settings(BaseSettings):
    """主配置类 - 聚合所有子配置"""

    search: SearchSettings = Field(default_factory=SearchSettings)
    fetch: FetchSettings = Field(default_factory=FetchSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    credentials: CredentialSettings = Field(default_factory=CredentialSettings)
    general: GeneralSettings = Field(default_factory=GeneralSettings)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @classmethod
    def load_from_env_file(cls, env_path: Optional[Path] = None) -> "Settings":
        """从指定的 .env 文件加载配置"""
        if env_path is None:
            # 默认查找 config/.env
            env_path = Path(__file__).parent / ".env"

        if env_path.exists():
            from dotenv import load_dotenv
            load_dotenv(env_path)

        return cls(
            search=SearchSettings(),
            fetch=FetchSettings(),
            storage=StorageSettings(),
            scheduler=SchedulerSettings(),
            credentials=CredentialSettings(),
            general=GeneralSettings(),
        )


@lru_cache()
def get_settings() -> Settings:
    """获取全局配置单例"""
    return Settings.load_from_env_file()


# 便捷访问
def get_search_settings() -> SearchSettings:
    return get_settings().search


def get_fetch_settings() -> FetchSettings:
    return get_settings().fetch


def get_storage_settings() -> StorageSettings:
    return get_settings().storage


def get_scheduler_settings() -> SchedulerSettings:
    return get_settings().scheduler
