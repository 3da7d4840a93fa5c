import pytest

from steprail.registry.handler_registry import HandlerRegistry
from steprail.schema.models import StepType
from steprail.tests.builders import RecordingHandler


@pytest.fixture
def recorder() -> RecordingHandler:
    return RecordingHandler()


@pytest.fixture
def handlers(recorder: RecordingHandler) -> HandlerRegistry:
    return HandlerRegistry(
        {
            StepType.tool_call: recorder,
            StepType.custom_code: recorder,
            StepType.query_table: recorder,
            StepType.write_table: recorder,
        }
    )
