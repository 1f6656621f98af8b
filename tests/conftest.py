"""Global test fixtures: reset singletons between tests."""
import pytest


@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset module-level singletons before and after each test."""
    _do_reset()
    yield
    _do_reset()


def _do_reset():
    import app.orchestrator as orchestrator_mod
    orchestrator_mod._orchestrator = None
