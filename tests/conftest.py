import pytest

from common.events import EventEmitter
from colloquy.chat import ChatController
from colloquy.client_state import ClientState
from tests.fakes import EventLog, FakeChatService


@pytest.fixture
def service() -> FakeChatService:
    return FakeChatService()


@pytest.fixture
def client_state(tmp_path) -> ClientState:
    return ClientState(tmp_path / "state.json")


@pytest.fixture
def event_log() -> EventLog:
    return EventLog()


@pytest.fixture
def chat(service, client_state, event_log) -> ChatController:
    controller = ChatController(service, client_state, EventEmitter())
    controller.subscribe(event_log)
    return controller
