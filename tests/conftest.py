"""Shared fakes for the lock cycle tests."""
import pytest
from loguru import logger

from blueberry.config import Settings
from blueberry.lockcycle import BlueBerryService, CommandExecutor, MemorySecretStore
from blueberry.lockcycle.secret_store import SECRET_KEY

SECRET = "hunter2"


class RecordingExecutor(CommandExecutor):
    """Dry-run executor that records every invocation.

    Programs listed in `fail` raise the given exception instead.
    """

    def __init__(self, fail: dict | None = None):
        super().__init__(dry_run=True)
        self.calls: list[list[str]] = []
        self.fail = fail or {}

    async def run(self, program, args=None, sensitive=False):
        self.calls.append([program, *(args or [])])
        if program in self.fail:
            raise self.fail[program]
        return await super().run(program, args, sensitive)

    async def output(self, program, args=None):
        self.calls.append([program, *(args or [])])
        if program in self.fail:
            raise self.fail[program]
        return await super().output(program, args)

    def count(self, *command: str) -> int:
        return sum(1 for call in self.calls if call == list(command))


class RecordingNotifier:
    """Notifier that remembers what the operator would have seen."""

    def __init__(self, secret_reply: str | None = None):
        self.infos: list[str] = []
        self.errors: list[str] = []
        self.prompts: list[str] = []
        self.secret_reply = secret_reply

    def info(self, message: str) -> None:
        self.infos.append(message)

    def error(self, message: str) -> None:
        self.errors.append(message)

    def debug(self, message: str) -> None:
        pass

    async def request_secret(self, message: str) -> str | None:
        self.prompts.append(message)
        return self.secret_reply


class ConfigHolder:
    """Mutable configuration source."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def __call__(self) -> Settings:
        return self.settings


def make_settings(tmp_path, **overrides) -> Settings:
    values = dict(
        data_dir=tmp_path,
        dry_run=True,
        mode="duration",
        duration="1h",
        lock_interval_min="10m",
        lock_interval_max="20m",
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def executor():
    return RecordingExecutor()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def secret_store():
    return MemorySecretStore({SECRET_KEY: SECRET})


@pytest.fixture
def config(tmp_path):
    return ConfigHolder(make_settings(tmp_path))


@pytest.fixture
def service(executor, notifier, secret_store, config):
    return BlueBerryService(
        secret_store=secret_store,
        notifier=notifier,
        executor=executor,
        config_source=config,
    )


@pytest.fixture
def log_messages():
    """Collect loguru messages emitted during a test."""
    messages: list[str] = []
    handler_id = logger.add(lambda m: messages.append(m.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)
