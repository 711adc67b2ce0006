import pytest

from lazystack.context import StackContext, reset_context, set_context


@pytest.fixture
def context():
    """A fresh update-mode context, installed as the current one."""
    ctx = StackContext(project="proj", stack="dev")
    set_context(ctx)
    return ctx


@pytest.fixture
def preview_context():
    """A fresh dry-run context, installed as the current one."""
    ctx = StackContext(project="proj", stack="dev", dry_run=True)
    set_context(ctx)
    return ctx


@pytest.fixture(autouse=True)
def clean_context(monkeypatch):
    # Never pick up config from the developer's environment
    monkeypatch.delenv("LAZYSTACK_CONFIG", raising=False)
    monkeypatch.delenv("LAZYSTACK_DRY_RUN", raising=False)
    reset_context()
    yield
    reset_context()
