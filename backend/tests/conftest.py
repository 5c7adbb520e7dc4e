import asyncio
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from cleanquote.domain.formulas.tokenizer import OPERATORS, is_number
from cleanquote.domain.pricing import db_models  # noqa: F401
from cleanquote.domain.pricing.config_loader import (
    ConfigSnapshot,
    SnapshotHolder,
    build_snapshot,
    load_config_snapshot,
)
from cleanquote.domain.pricing.models import (
    CategoryDefault,
    FieldConfig,
    Formula,
    FormulaElement,
    SchedulingRule,
)
from cleanquote.infra.db import Base, get_db_session
from cleanquote.infra.metrics import configure_metrics
from cleanquote.main import app
from cleanquote.settings import settings

DEFAULT_SNAPSHOT_PATH = "pricing/default_v1.json"


def field(category: str, option: str, value: float = 0.0, time: float | None = None, **kwargs) -> FieldConfig:
    return FieldConfig(category=category, option=option, value=value, time=time, **kwargs)


def default(category: str, option: str | None) -> CategoryDefault:
    return CategoryDefault(category=category, default_option=option)


def rule(rule_type: str, price_modifier: float, **kwargs) -> SchedulingRule:
    return SchedulingRule(rule_type=rule_type, price_modifier=price_modifier, **kwargs)


def elements(*tokens: str) -> list[FormulaElement]:
    built = []
    for token in tokens:
        if token in OPERATORS:
            built.append(FormulaElement(kind="operator", value=token))
        elif is_number(token):
            built.append(FormulaElement(kind="number", value=token))
        else:
            built.append(FormulaElement(kind="field", value=token))
    return built


def formula(name: str, *tokens: str, **kwargs) -> Formula:
    return Formula(name=name, elements=elements(*tokens), **kwargs)


def make_snapshot(
    field_configs=(),
    category_defaults=(),
    scheduling_rules=(),
    formulas=(),
    strategies=None,
) -> ConfigSnapshot:
    return build_snapshot(
        config_id="test",
        config_version="t1",
        field_configs=field_configs,
        category_defaults=category_defaults,
        scheduling_rules=scheduling_rules,
        formulas=formulas,
        strategies=strategies,
    )


SCENARIO_CONFIGS = (
    field("Bedrooms", "1 Bedroom", time=45),
    field("Bedrooms", "3 Bedrooms", time=90),
    field("Bathrooms", "1 Bathroom", time=30),
    field("Bathrooms", "2 Bathrooms", time=60),
    field("Service Type", "checkin-checkout", value=15, time=1),
)


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture()
def scenario_snapshot() -> ConfigSnapshot:
    return make_snapshot(field_configs=SCENARIO_CONFIGS)


@pytest.fixture(scope="session")
def default_snapshot() -> ConfigSnapshot:
    return load_config_snapshot(DEFAULT_SNAPSHOT_PATH)


@pytest.fixture(scope="session")
def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async def init_models() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(init_models())
    yield engine
    asyncio.run(engine.dispose())


@pytest.fixture(scope="session")
def async_session_maker(test_engine):
    return async_sessionmaker(test_engine, expire_on_commit=False)


@pytest.fixture(autouse=True)
def clean_database(test_engine):
    async def truncate_tables() -> None:
        async with test_engine.begin() as conn:
            for table in reversed(Base.metadata.sorted_tables):
                await conn.execute(table.delete())

    asyncio.run(truncate_tables())
    yield


@pytest.fixture(autouse=True)
def restore_settings():
    original = {
        name: getattr(settings, name)
        for name in (
            "app_env",
            "metrics_enabled",
            "metrics_token",
            "pricing_source",
            "quote_timezone",
            "minimum_booking_hours",
            "default_domestic_hourly_rate",
            "short_notice_tiers_raw",
            "override_epsilon_hours",
        )
    }
    settings.app_env = "dev"
    yield
    for name, value in original.items():
        setattr(settings, name, value)


@pytest.fixture(autouse=True)
def restore_app_state(default_snapshot):
    original_metrics = getattr(app.state, "metrics", None)
    original_app_settings = getattr(app.state, "app_settings", None)
    app.state.snapshot_holder = SnapshotHolder(default_snapshot)
    yield
    app.state.metrics = original_metrics
    app.state.app_settings = original_app_settings
    app.state.snapshot_holder = SnapshotHolder(default_snapshot)
    configure_metrics(True)


@pytest.fixture()
def client(async_session_maker):
    async def override_db_session():
        async with async_session_maker() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_db_session
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def client_no_raise(async_session_maker):
    async def override_db_session():
        async with async_session_maker() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_db_session
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()
