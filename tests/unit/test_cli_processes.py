import asyncio

from typer.testing import CliRunner

import procflow.persistence as persistence
from procflow.cli import app
from procflow.persistence import InMemoryWorkflowRepository
from procflow.runtime import ProcessService


def _setup_repo() -> InMemoryWorkflowRepository:
    repo = InMemoryWorkflowRepository()
    persistence._repository_instance = repo
    return repo


def _run_approval(repo, graph):
    async def scenario():
        await repo.save_graph(graph)
        service = ProcessService(repo)
        first = await service.start("wf-approval", initiator_id="alice")
        await service.advance(
            first.instance.id, {"item": "Laptop", "amount": 900}, actor_id="alice"
        )
        second = await service.start("wf-approval", initiator_id="bob", name="Second")
        await service.cancel(second.instance.id, actor_id="bob", comment="Duplicate")
        return first.instance.id, second.instance.id

    return asyncio.run(scenario())


def test_process_list_and_filters(approval_graph):
    repo = _setup_repo()
    first, second = _run_approval(repo, approval_graph)

    runner = CliRunner()
    result = runner.invoke(app, ["process", "list"])
    assert (
        result.exit_code == 0
    ), f"Command failed with exit code {result.exit_code}. Output: {result.stdout}"
    assert f"{first}\tactive\tPurchase Laptop\treview" in result.stdout
    assert f"{second}\tcancelled\tSecond\trequest" in result.stdout

    active = runner.invoke(app, ["process", "list", "--status", "active"])
    assert first in active.stdout
    assert second not in active.stdout

    other = runner.invoke(app, ["process", "list", "--workflow", "wf-other"])
    assert "No processes found" in other.stdout


def test_process_show_and_missing(approval_graph):
    repo = _setup_repo()
    first, second = _run_approval(repo, approval_graph)

    runner = CliRunner()
    result = runner.invoke(app, ["process", "show", first])
    assert (
        result.exit_code == 0
    ), f"Command failed with exit code {result.exit_code}. Output: {result.stdout}"
    output = result.stdout
    assert f"Process {first}: active" in output
    assert "Name: Purchase Laptop" in output
    assert "Current activity: Review" in output
    assert "Assigned to pool: pos-mgr" in output
    assert "started Request by alice: Process started" in output
    assert "completed Request by alice" in output
    assert "started Review by alice" in output

    cancelled = runner.invoke(app, ["process", "show", second])
    assert "Assigned to: bob" in cancelled.stdout
    assert "commented Request by bob: Duplicate" in cancelled.stdout

    missing = runner.invoke(app, ["process", "show", "missing-id"])
    assert (
        missing.exit_code == 1
    ), f"Expected exit code 1 for missing process, got {missing.exit_code}. Output: {missing.stdout}"
    assert "Process not found" in missing.stdout
