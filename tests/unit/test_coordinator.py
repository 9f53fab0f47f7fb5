import asyncio

import pytest

from crm_enrichment.features.enrichment.domain import JobStatus
from crm_enrichment.features.enrichment.services import (
    EnrichmentJobCoordinator,
    EnrichmentWorker,
    job_key,
)
from tests.conftest import OWNER_ID, make_contact, make_person


async def _settle(delay: float = 0.01) -> None:
    await asyncio.sleep(delay)


@pytest.mark.asyncio
async def test_start_runs_in_background_and_completes(coordinator, provider, contacts_repo):
    contacts_repo.add(make_contact("c1", "a@gmail.com"))
    contacts_repo.add(make_contact("c2", "b@gmail.com"))
    provider.people_by_email["a@gmail.com"] = make_person()

    result = await coordinator.start(OWNER_ID)

    assert result.started
    assert result.job_key == job_key(OWNER_ID)
    assert result.progress["done"] is False

    await coordinator.wait_for(OWNER_ID)
    progress = await coordinator.progress(OWNER_ID)

    assert progress["done"] is True
    assert progress["error"] is None
    assert (progress["total"], progress["enriched"], progress["skipped"]) == (2, 1, 1)


@pytest.mark.asyncio
async def test_second_start_while_running_is_rejected(coordinator, provider, contacts_repo):
    contacts_repo.add(make_contact("c1", "a@gmail.com"))
    provider.gate = asyncio.Event()

    first = await coordinator.start(OWNER_ID)
    await provider.entered.wait()
    second = await coordinator.start(OWNER_ID, force=True)

    assert first.started
    assert not second.started
    assert second.progress["done"] is False
    assert second.progress["total"] == 1

    provider.gate.set()
    await coordinator.wait_for(OWNER_ID)
    assert len(contacts_repo.find_calls) == 1


@pytest.mark.asyncio
async def test_concurrent_starts_admit_one_run(coordinator, contacts_repo, provider):
    contacts_repo.add(make_contact("c1", "a@gmail.com"))
    provider.gate = asyncio.Event()

    results = await asyncio.gather(*(coordinator.start(OWNER_ID) for _ in range(5)))

    assert sum(result.started for result in results) == 1
    provider.gate.set()
    await coordinator.wait_for(OWNER_ID)


@pytest.mark.asyncio
async def test_stop_freezes_progress_immediately(coordinator, provider, contacts_repo):
    contacts_repo.add(make_contact("c1", "a@gmail.com"))
    contacts_repo.add(make_contact("c2", "b@gmail.com"))
    provider.people_by_email["a@gmail.com"] = make_person()
    provider.gate = asyncio.Event()

    await coordinator.start(OWNER_ID)
    await provider.entered.wait()

    stopped = await coordinator.stop(OWNER_ID)
    assert stopped.stopped
    assert stopped.progress["done"] is True
    assert stopped.progress["total"] == 2

    provider.gate.set()
    await coordinator.wait_for(OWNER_ID)

    after = await coordinator.progress(OWNER_ID)
    assert after == stopped.progress
    assert provider.count("person_email") == 1
    job = await coordinator.get_job(OWNER_ID)
    assert job.status is JobStatus.DONE


@pytest.mark.asyncio
async def test_stop_without_job(coordinator):
    result = await coordinator.stop(OWNER_ID)

    assert not result.stopped
    assert result.progress is None


@pytest.mark.asyncio
async def test_stop_after_completion_is_a_no_op(coordinator, contacts_repo):
    contacts_repo.add(make_contact("c1", "a@gmail.com"))
    await coordinator.start(OWNER_ID)
    await coordinator.wait_for(OWNER_ID)

    result = await coordinator.stop(OWNER_ID)

    assert not result.stopped
    assert result.progress["done"] is True


@pytest.mark.asyncio
async def test_restart_after_stop_is_not_clobbered_by_old_run(
    enrichment_worker, provider, contacts_repo
):
    coordinator = EnrichmentJobCoordinator(enrichment_worker, retention_seconds=0.05)
    contacts_repo.add(make_contact("c1", "a@gmail.com"))
    provider.gate = asyncio.Event()

    await coordinator.start(OWNER_ID)
    await provider.entered.wait()
    await coordinator.stop(OWNER_ID)
    old_job = await coordinator.get_job(OWNER_ID)

    restarted = await coordinator.start(OWNER_ID)
    assert restarted.started
    new_job = await coordinator.get_job(OWNER_ID)
    assert new_job.run_id != old_job.run_id

    # Old run's eviction window passes while the new run is still blocked
    await _settle(0.1)
    assert (await coordinator.get_job(OWNER_ID)).run_id == new_job.run_id

    provider.gate.set()
    await _settle()
    await coordinator.wait_for(OWNER_ID)

    progress = await coordinator.progress(OWNER_ID)
    assert progress["done"] is True
    assert progress["skipped"] == 1
    assert (await coordinator.get_job(OWNER_ID)).run_id == new_job.run_id


@pytest.mark.asyncio
async def test_finished_job_is_evicted_after_retention(coordinator, contacts_repo):
    contacts_repo.add(make_contact("c1", "a@gmail.com"))

    await coordinator.start(OWNER_ID)
    await coordinator.wait_for(OWNER_ID)
    assert await coordinator.progress(OWNER_ID) is not None

    await _settle(0.1)
    assert await coordinator.progress(OWNER_ID) is None


@pytest.mark.asyncio
async def test_restart_within_retention_cancels_eviction(coordinator, contacts_repo, provider):
    contacts_repo.add(make_contact("c1", "a@gmail.com"))

    await coordinator.start(OWNER_ID)
    await coordinator.wait_for(OWNER_ID)

    provider.gate = asyncio.Event()
    provider.entered.clear()
    restarted = await coordinator.start(OWNER_ID, force=True)
    assert restarted.started

    await _settle(0.1)
    progress = await coordinator.progress(OWNER_ID)
    assert progress is not None
    assert progress["done"] is False

    provider.gate.set()
    await coordinator.wait_for(OWNER_ID)


@pytest.mark.asyncio
async def test_run_failure_is_reported_as_error(coordinator, contacts_repo):
    contacts_repo.fail_find = RuntimeError("database unavailable")

    await coordinator.start(OWNER_ID)
    await coordinator.wait_for(OWNER_ID)

    progress = await coordinator.progress(OWNER_ID)
    assert progress["done"] is True
    assert progress["error"] == "database unavailable"
    assert progress["error_message"] == "database unavailable"
    job = await coordinator.get_job(OWNER_ID)
    assert job.status is JobStatus.ERROR


@pytest.mark.asyncio
async def test_owners_are_independent(coordinator, contacts_repo, provider):
    contacts_repo.add(make_contact("c1", "a@gmail.com"))
    contacts_repo.add(make_contact("c2", "b@gmail.com", owner_id="user-456"))
    provider.gate = asyncio.Event()

    assert (await coordinator.start(OWNER_ID)).started
    assert (await coordinator.start("user-456")).started

    await coordinator.stop(OWNER_ID)
    other = await coordinator.progress("user-456")
    assert other["done"] is False

    provider.gate.set()
    await coordinator.wait_for("user-456")
    assert (await coordinator.progress("user-456"))["done"] is True


@pytest.mark.asyncio
async def test_shutdown_cancels_running_jobs(coordinator, contacts_repo, provider):
    contacts_repo.add(make_contact("c1", "a@gmail.com"))
    provider.gate = asyncio.Event()

    await coordinator.start(OWNER_ID)
    await provider.entered.wait()
    await coordinator.shutdown()

    await coordinator.wait_for(OWNER_ID)
    progress = await coordinator.progress(OWNER_ID)
    assert progress["done"] is False


@pytest.mark.asyncio
async def test_three_contacts_two_matches(coordinator, provider, contacts_repo):
    for index, email in enumerate(("a@gmail.com", "b@gmail.com", "c@gmail.com")):
        contacts_repo.add(make_contact(f"c{index}", email))
    provider.people_by_email["a@gmail.com"] = make_person()
    provider.people_by_email["c@gmail.com"] = make_person()

    await coordinator.start(OWNER_ID)
    await coordinator.wait_for(OWNER_ID)

    progress = await coordinator.progress(OWNER_ID)
    assert progress == {
        "total": 3,
        "enriched": 2,
        "skipped": 1,
        "errors": 0,
        "error_message": None,
        "done": True,
        "error": None,
    }


@pytest.mark.asyncio
async def test_stop_between_contacts_makes_no_further_calls(
    provider, company_service, contacts_repo
):
    worker = EnrichmentWorker(provider, company_service, contacts=contacts_repo, request_delay=0.2)
    coordinator = EnrichmentJobCoordinator(worker, retention_seconds=5)
    for index, email in enumerate(("a@gmail.com", "b@gmail.com", "c@gmail.com")):
        contacts_repo.add(make_contact(f"c{index}", email))

    await coordinator.start(OWNER_ID)
    for _ in range(100):
        if (await coordinator.progress(OWNER_ID))["skipped"] == 1:
            break
        await _settle()

    stopped = await coordinator.stop(OWNER_ID)
    await coordinator.wait_for(OWNER_ID)

    assert stopped.progress["skipped"] == 1
    assert stopped.progress["total"] == 3
    assert await coordinator.progress(OWNER_ID) == stopped.progress
    assert provider.count("person_email") == 1
    await coordinator.shutdown()
