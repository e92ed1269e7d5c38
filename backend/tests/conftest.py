"""
MTFoundry 测试配置

统一管理测试数据库初始化、全局单例重置与工作区注入。
"""
import os

# 必须在导入 mtfoundry 之前设置，使全局引擎也指向测试数据库
os.environ.setdefault("MT_DB_URL", "sqlite:///./test.db")
os.environ.setdefault("MT_LOG_DIR", "logs")

import logging
import random

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from mtfoundry.api.deps import workspace_dep
from mtfoundry.database.config import Base, get_db
from mtfoundry.logging_config import PACKAGE_LOGGER
from mtfoundry.database import models  # noqa: F401 - 注册模型
from mtfoundry.main import app
from mtfoundry.services.event_service import get_event_broker, reset_event_broker
from mtfoundry.services.simulation.catalog import clear_catalog_cache, get_default_catalog
from mtfoundry.services.workspace_service import MetamorphicWorkspace, set_workspace

# 使用文件数据库进行测试（内存数据库有连接隔离问题）
SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    """覆盖数据库依赖"""
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture
def db():
    """提供数据库会话"""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def setup_database():
    """每个测试前创建所有表，测试后清理"""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def reset_singletons():
    """重置全局事件代理、目录缓存与工作区"""
    reset_event_broker()
    clear_catalog_cache()
    set_workspace(None)
    yield
    set_workspace(None)
    reset_event_broker()
    clear_catalog_cache()


@pytest.fixture(autouse=True)
def restore_package_logger():
    """移除测试中 setup_logging 挂上的处理器"""
    yield
    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def broker(reset_singletons):
    """全局事件代理（每个测试前已重置）"""
    return get_event_broker()


@pytest.fixture
def make_workspace(broker, setup_database):
    """构造工作区；time_unit=0 时循环只让出控制权，不真实等待"""

    def _make(**kwargs) -> MetamorphicWorkspace:
        kwargs.setdefault("catalog", get_default_catalog())
        kwargs.setdefault("broker", broker)
        kwargs.setdefault("session_factory", TestingSessionLocal)
        kwargs.setdefault("time_unit", 0)
        kwargs.setdefault("rng", random.Random(1234))
        return MetamorphicWorkspace(**kwargs)

    return _make


@pytest.fixture
def workspace(make_workspace):
    return make_workspace()


@pytest.fixture
def client(workspace):
    """提供测试客户端（上下文内共享同一个事件循环，后台任务可跨请求运行）"""
    from fastapi.testclient import TestClient

    set_workspace(workspace)
    app.dependency_overrides[workspace_dep] = lambda: workspace
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.pop(workspace_dep, None)
